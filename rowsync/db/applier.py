from __future__ import annotations

import logging
import time
from typing import Sequence

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ..errors import BackendError, ValidationError
from .fragments import FragmentBuilder
from .metrics import observe_batch, observe_db_write
from .models import Operation, OperationKind
from .session import DbSession

logger = logging.getLogger(__name__)


class BatchApplier:
    """
    All-or-nothing execution of an ordered batch of row operations.

    Every operation is rendered before the transaction opens, so a malformed
    operation anywhere in the batch fails it without touching the database.
    The rendered statements then run in order inside one DbSession; the first
    database error rolls the whole batch back and is raised as BackendError.
    There are no retries.
    """

    def __init__(self, engine: Engine, builder: FragmentBuilder) -> None:
        self.engine = engine
        self.builder = builder

    def apply(self, batch: Sequence[Operation]) -> list[int]:
        """
        Apply ``batch`` atomically.

        Returns:
            Affected row count per operation, in batch order. A PATCH or DELETE
            that matched nothing reports 0.

        Raises:
            ValidationError: If any operation is malformed (nothing executed)
            BackendError: If the database rejects any statement (rolled back)
        """
        try:
            fragments = [self.builder.build(op) for op in batch]
        except ValidationError:
            observe_batch("invalid", len(batch))
            raise

        if not fragments:
            return []

        status = "error"
        started: list[float] = []
        rowcounts: list[int] = []

        try:
            with DbSession(self.engine) as session:
                for fragment in fragments:
                    started.append(time.monotonic())
                    rowcounts.append(session.execute(fragment.sql, fragment.params))
            status = "success"
        except (SQLAlchemyError, OverflowError) as exc:
            # pysqlite raises OverflowError unwrapped for ints wider than 64 bits
            logger.warning(
                "Batch of %d operations rolled back at operation %d: %s",
                len(fragments),
                len(started),
                exc,
            )
            raise BackendError(str(exc)) from exc
        finally:
            end_time = time.monotonic()
            observe_batch(status, len(fragments))
            for op, start in zip(batch, started):
                observe_db_write(
                    table=op.table,
                    op_type=OperationKind.parse(op.kind).value.lower(),
                    status=status,
                    latency_s=end_time - start,
                )

        logger.debug("Committed batch of %d operations", len(fragments))
        return rowcounts
