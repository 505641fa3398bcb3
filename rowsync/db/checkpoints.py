from __future__ import annotations

import logging
import time

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ..errors import BackendError, ValidationError
from .dialects import CLIENT_PARAM, USER_PARAM, SqlDialect
from .helpers import _validate_identifier
from .metrics import observe_checkpoint
from .session import DbSession

logger = logging.getLogger(__name__)


class CheckpointStore:
    """
    Per-(user, client) monotonic counter.

    ``bump`` is one atomic upsert: the row is created at 1 on first use and
    incremented by 1 afterwards, and the new value comes back from the same
    statement (or, on MySQL, from LAST_INSERT_ID on the same connection).
    Concurrent callers for the same pair are serialized by the database's row
    lock, so no value is ever returned twice and no increment is lost.

    Expected table:

        CREATE TABLE checkpoints (
            user_id   VARCHAR(255) NOT NULL,
            client_id VARCHAR(255) NOT NULL,
            checkpoint BIGINT NOT NULL,
            PRIMARY KEY (user_id, client_id)
        )
    """

    def __init__(self, engine: Engine, dialect: SqlDialect, table: str = "checkpoints") -> None:
        self.engine = engine
        self.dialect = dialect
        self.table = _validate_identifier(table, "checkpoint_table")
        self._upsert_sql = dialect.checkpoint_upsert(self.table)
        self._readback_sql = dialect.checkpoint_readback()

    def bump(self, user_id: str, client_id: str) -> int:
        """
        Increment the checkpoint for (user_id, client_id) and return the new value.

        Raises:
            ValidationError: If user_id or client_id is empty
            BackendError: If the upsert fails
        """
        for name, value in (("user_id", user_id), ("client_id", client_id)):
            if not isinstance(value, str) or not value:
                raise ValidationError(f"{name} must be a non-empty string")

        start_time = time.monotonic()
        status = "error"
        params = {USER_PARAM: user_id, CLIENT_PARAM: client_id}

        try:
            with DbSession(self.engine) as session:
                if self._readback_sql is None:
                    value = session.execute_scalar(self._upsert_sql, params)
                else:
                    session.execute(self._upsert_sql, params)
                    value = session.execute_scalar(self._readback_sql)
            status = "success"
        except (SQLAlchemyError, OverflowError) as exc:
            raise BackendError(str(exc)) from exc
        finally:
            observe_checkpoint(status, time.monotonic() - start_time)

        if value is None:
            raise BackendError(
                f"Checkpoint upsert on {self.table!r} returned no value"
            )
        return int(value)
