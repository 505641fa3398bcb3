from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional, Sequence

from sqlalchemy.dialects.mysql.base import MySQLDialect as _SAMySQLDialect
from sqlalchemy.dialects.postgresql.base import PGDialect as _SAPGDialect
from sqlalchemy.dialects.sqlite.base import SQLiteDialect as _SASQLiteDialect
from sqlalchemy.engine import Dialect

from ..errors import ConfigurationError

# Bound parameter names shared by every renderer. Column values bind as
# c0, c1, ... in the order the columns are passed.
PK_PARAM = "pk"
USER_PARAM = "user_id"
CLIENT_PARAM = "client_id"


def value_param(index: int) -> str:
    return f"c{index}"


class SqlDialect(ABC):
    """
    Backend-specific statement text for the three row operations and the
    checkpoint upsert.

    Renderers only produce SQL text; identifiers they receive must already be
    validated. Each identifier is quoted with the backend's own rules.
    """

    name: str

    def __init__(self) -> None:
        self._preparer = self._sqlalchemy_dialect().identifier_preparer

    @abstractmethod
    def _sqlalchemy_dialect(self) -> Dialect:
        ...

    def quote(self, identifier: str) -> str:
        return self._preparer.quote_identifier(identifier)

    @abstractmethod
    def upsert(self, table: str, id_column: str, columns: Sequence[str]) -> str:
        """
        INSERT the row (``id_column`` bound as ``:pk``, ``columns`` as ``:c0..``)
        or, on primary-key conflict, overwrite exactly ``columns``.
        """
        ...

    def update(self, table: str, id_column: str, columns: Sequence[str]) -> str:
        set_sql = ", ".join(
            f"{self.quote(col)} = :{value_param(i)}" for i, col in enumerate(columns)
        )
        return (
            f"UPDATE {self.quote(table)} SET {set_sql} "
            f"WHERE {self.quote(id_column)} = :{PK_PARAM}"
        )

    def delete(self, table: str, id_column: str) -> str:
        return f"DELETE FROM {self.quote(table)} WHERE {self.quote(id_column)} = :{PK_PARAM}"

    @abstractmethod
    def checkpoint_upsert(self, table: str) -> str:
        """
        Single statement that creates the (user, client) row at 1 or adds 1 to it.
        """
        ...

    def checkpoint_readback(self) -> Optional[str]:
        """
        Statement that reads the value produced by ``checkpoint_upsert`` on the
        same connection, or None when the upsert itself returns it.
        """
        return None

    def _insert_head(self, table: str, id_column: str, columns: Sequence[str]) -> str:
        col_sql = ", ".join(self.quote(c) for c in [id_column, *columns])
        placeholders = ", ".join(
            [f":{PK_PARAM}", *(f":{value_param(i)}" for i in range(len(columns)))]
        )
        return f"INSERT INTO {self.quote(table)} ({col_sql}) VALUES ({placeholders})"


class PostgresDialect(SqlDialect):
    name = "postgresql"

    def _sqlalchemy_dialect(self) -> Dialect:
        return _SAPGDialect()

    def upsert(self, table: str, id_column: str, columns: Sequence[str]) -> str:
        head = self._insert_head(table, id_column, columns)
        if not columns:
            return f"{head} ON CONFLICT ({self.quote(id_column)}) DO NOTHING"
        set_sql = ", ".join(f"{self.quote(c)} = EXCLUDED.{self.quote(c)}" for c in columns)
        return f"{head} ON CONFLICT ({self.quote(id_column)}) DO UPDATE SET {set_sql}"

    def checkpoint_upsert(self, table: str) -> str:
        t = self.quote(table)
        return (
            f"INSERT INTO {t} (user_id, client_id, checkpoint) "
            f"VALUES (:{USER_PARAM}, :{CLIENT_PARAM}, 1) "
            f"ON CONFLICT (user_id, client_id) "
            f"DO UPDATE SET checkpoint = {t}.checkpoint + 1 "
            f"RETURNING checkpoint"
        )


class SqliteDialect(SqlDialect):
    """Needs SQLite 3.35+ for RETURNING."""

    name = "sqlite"

    def _sqlalchemy_dialect(self) -> Dialect:
        return _SASQLiteDialect()

    def upsert(self, table: str, id_column: str, columns: Sequence[str]) -> str:
        head = self._insert_head(table, id_column, columns)
        if not columns:
            return f"{head} ON CONFLICT ({self.quote(id_column)}) DO NOTHING"
        set_sql = ", ".join(f"{self.quote(c)} = excluded.{self.quote(c)}" for c in columns)
        return f"{head} ON CONFLICT ({self.quote(id_column)}) DO UPDATE SET {set_sql}"

    def checkpoint_upsert(self, table: str) -> str:
        return (
            f"INSERT INTO {self.quote(table)} (user_id, client_id, checkpoint) "
            f"VALUES (:{USER_PARAM}, :{CLIENT_PARAM}, 1) "
            f"ON CONFLICT (user_id, client_id) "
            f"DO UPDATE SET checkpoint = checkpoint + 1 "
            f"RETURNING checkpoint"
        )


class MySQLDialect(SqlDialect):
    """
    MySQL has no RETURNING. The checkpoint upsert stores its result with
    LAST_INSERT_ID(expr), which is per-connection, and the readback fetches it
    on the same connection. The checkpoint table must not have an
    AUTO_INCREMENT column.
    """

    name = "mysql"

    def _sqlalchemy_dialect(self) -> Dialect:
        return _SAMySQLDialect()

    def upsert(self, table: str, id_column: str, columns: Sequence[str]) -> str:
        head = self._insert_head(table, id_column, columns)
        if not columns:
            pk = self.quote(id_column)
            return f"{head} ON DUPLICATE KEY UPDATE {pk} = {pk}"
        set_sql = ", ".join(f"{self.quote(c)} = VALUES({self.quote(c)})" for c in columns)
        return f"{head} ON DUPLICATE KEY UPDATE {set_sql}"

    def checkpoint_upsert(self, table: str) -> str:
        return (
            f"INSERT INTO {self.quote(table)} (user_id, client_id, checkpoint) "
            f"VALUES (:{USER_PARAM}, :{CLIENT_PARAM}, LAST_INSERT_ID(1)) "
            f"ON DUPLICATE KEY UPDATE checkpoint = LAST_INSERT_ID(checkpoint + 1)"
        )

    def checkpoint_readback(self) -> Optional[str]:
        return "SELECT LAST_INSERT_ID()"


DIALECTS: dict[str, type[SqlDialect]] = {
    PostgresDialect.name: PostgresDialect,
    MySQLDialect.name: MySQLDialect,
    SqliteDialect.name: SqliteDialect,
    "mariadb": MySQLDialect,
}


def make_dialect(name: str) -> SqlDialect:
    """
    Create the renderer for a backend family name (``engine.dialect.name``).

    Raises:
        ConfigurationError: If the backend is not supported
    """
    try:
        return DIALECTS[name]()
    except KeyError:
        raise ConfigurationError(
            f"Unsupported database backend {name!r}; expected one of {', '.join(DIALECTS)}"
        ) from None
