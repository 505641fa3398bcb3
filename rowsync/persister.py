from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .config import PersisterConfig
from .db.applier import BatchApplier
from .db.checkpoints import CheckpointStore
from .db.dialects import make_dialect
from .db.fragments import FragmentBuilder
from .db.models import Operation
from .db.schema import SchemaRegistry
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

SQLITE_BUSY_TIMEOUT_S = 30


def make_engine(config: PersisterConfig) -> Engine:
    """
    Create the long-lived, pooled engine shared by every request.

    Raises:
        ConfigurationError: If the URL is malformed or its driver is missing
    """
    kwargs: dict[str, Any] = {"pool_pre_ping": config.pool_pre_ping}
    if config.database_type == "sqlite":
        kwargs["connect_args"] = {"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT_S}
    else:
        kwargs["pool_size"] = config.pool_size
        kwargs["max_overflow"] = config.max_overflow

    try:
        engine = create_engine(config.database_uri, **kwargs)
    except (SQLAlchemyError, ImportError) as exc:
        raise ConfigurationError(f"Cannot create database engine: {exc}") from exc

    if engine.dialect.name == "sqlite":
        _begin_immediate(engine)
    return engine


def _begin_immediate(engine: Engine) -> None:
    """
    Make every SQLite transaction take the write lock up front.

    With pysqlite's default deferred BEGIN, a writer that already holds a read
    lock gets SQLITE_BUSY immediately instead of waiting, which breaks
    concurrent checkpoint bumps.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class Persister:
    """
    Facade over the batch applier and the checkpoint store.

    Owns the engine (and therefore the connection pool). Construct one per
    process and share it between threads; each call checks out its own
    connection for the length of one transaction.

    Usage:
        with Persister.from_uri("postgres://user:pw@host/db") as persister:
            persister.apply_batch([Operation(OperationKind.PUT, "todos", "1", {"text": "x"})])
            checkpoint = persister.create_checkpoint("u1", "c1")
    """

    def __init__(self, engine: Engine, config: PersisterConfig) -> None:
        self.engine = engine
        self.config = config
        self.dialect = make_dialect(engine.dialect.name)

        if config.tables is not None:
            self.registry = SchemaRegistry.static(config.tables)
        else:
            self.registry = SchemaRegistry.reflect(engine, exclude=[config.checkpoint_table])

        builder = FragmentBuilder(self.dialect, self.registry, config.id_column)
        self._applier = BatchApplier(engine, builder)
        self._checkpoints = CheckpointStore(engine, self.dialect, config.checkpoint_table)

        logger.info("Using %s persister", self.dialect.name)

    @classmethod
    def from_config(cls, config: PersisterConfig) -> "Persister":
        return cls(make_engine(config), config)

    @classmethod
    def from_uri(cls, uri: str, **overrides: Any) -> "Persister":
        return cls.from_config(PersisterConfig(database_uri=uri, **overrides))

    @classmethod
    def from_env(cls) -> "Persister":
        return cls.from_config(PersisterConfig.from_env())

    def apply_batch(self, batch: Sequence[Operation]) -> list[int]:
        """
        Apply every operation in ``batch`` in one transaction, or none of them.

        Returns the affected row count of each operation.

        Raises:
            ValidationError: If an operation is malformed or names an unknown
                table or column
            BackendError: If the database rejects a statement
        """
        return self._applier.apply(batch)

    def create_checkpoint(
        self,
        user_id: Optional[str] = None,
        client_id: Optional[str] = None,
    ) -> int:
        """
        Advance and return the checkpoint for (user_id, client_id).

        Missing ids fall back to ``config.default_user_id`` and
        ``config.default_client_id``.
        """
        if user_id is None:
            user_id = self.config.default_user_id
        if client_id is None:
            client_id = self.config.default_client_id
        return self._checkpoints.bump(user_id, client_id)

    def close(self) -> None:
        self.engine.dispose()

    def __enter__(self) -> "Persister":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False


def create_persister(config: PersisterConfig) -> Persister:
    return Persister.from_config(config)
