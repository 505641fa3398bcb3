from __future__ import annotations

from ..metrics.registry import (
    BATCH_SIZE,
    BATCH_TOTAL,
    CHECKPOINT_LATENCY_SECONDS,
    CHECKPOINT_TOTAL,
    DB_WRITE_LATENCY_SECONDS,
    DB_WRITE_TOTAL,
)


def observe_db_write(table: str, op_type: str, status: str, latency_s: float) -> None:
    DB_WRITE_TOTAL.labels(table=table, op_type=op_type, status=status).inc()
    DB_WRITE_LATENCY_SECONDS.labels(table=table, op_type=op_type).observe(latency_s)


def observe_batch(status: str, size: int) -> None:
    BATCH_TOTAL.labels(status=status).inc()
    BATCH_SIZE.observe(size)


def observe_checkpoint(status: str, latency_s: float) -> None:
    CHECKPOINT_TOTAL.labels(status=status).inc()
    CHECKPOINT_LATENCY_SECONDS.observe(latency_s)
