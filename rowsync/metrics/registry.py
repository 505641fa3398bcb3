from prometheus_client import Counter, Histogram

DB_WRITE_TOTAL = Counter(
    "rowsync_db_write_total",
    "Row operations applied as part of a batch, by outcome of the batch",
    ["table", "op_type", "status"],
)

DB_WRITE_LATENCY_SECONDS = Histogram(
    "rowsync_db_write_latency_seconds",
    "Time from executing a row operation to the end of its transaction",
    ["table", "op_type"],
)

BATCH_TOTAL = Counter(
    "rowsync_batch_total",
    "Batches applied, by outcome",
    ["status"],
)

BATCH_SIZE = Histogram(
    "rowsync_batch_size",
    "Operations per batch",
    buckets=(1, 2, 5, 10, 25, 50, 100, 250, 500, 1000),
)

CHECKPOINT_TOTAL = Counter(
    "rowsync_checkpoint_total",
    "Checkpoint increments, by outcome",
    ["status"],
)

CHECKPOINT_LATENCY_SECONDS = Histogram(
    "rowsync_checkpoint_latency_seconds",
    "Latency of the checkpoint upsert including commit",
)
