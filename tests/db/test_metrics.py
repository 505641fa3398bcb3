from __future__ import annotations

import pytest

from rowsync.db.metrics import observe_batch, observe_checkpoint, observe_db_write
from rowsync.db.models import Operation, OperationKind
from rowsync.errors import BackendError, ValidationError
from rowsync.metrics.registry import (
    BATCH_TOTAL,
    CHECKPOINT_LATENCY_SECONDS,
    CHECKPOINT_TOTAL,
    DB_WRITE_LATENCY_SECONDS,
    DB_WRITE_TOTAL,
)


def _write_count(table: str, op_type: str, status: str) -> float:
    return DB_WRITE_TOTAL.labels(table=table, op_type=op_type, status=status)._value.get()


def _batch_count(status: str) -> float:
    return BATCH_TOTAL.labels(status=status)._value.get()


def _histogram_count(histogram) -> int:
    for family in histogram.collect():
        for sample in family.samples:
            if sample.name.endswith("_count"):
                return int(sample.value)
    return 0


class TestObserveFunctions:
    def test_observe_db_write_increments_counter(self) -> None:
        initial = _write_count("metrics_t", "put", "success")

        observe_db_write(table="metrics_t", op_type="put", status="success", latency_s=0.1)

        assert _write_count("metrics_t", "put", "success") == initial + 1

    def test_observe_db_write_records_latency(self) -> None:
        histogram = DB_WRITE_LATENCY_SECONDS.labels(table="metrics_t", op_type="patch")
        initial = _histogram_count(histogram)

        observe_db_write(table="metrics_t", op_type="patch", status="success", latency_s=0.25)

        assert _histogram_count(histogram) == initial + 1

    def test_error_status_tracked_separately(self) -> None:
        success = _write_count("metrics_t", "delete", "success")

        observe_db_write(table="metrics_t", op_type="delete", status="error", latency_s=0.1)

        assert _write_count("metrics_t", "delete", "success") == success

    def test_observe_batch(self) -> None:
        initial = _batch_count("success")

        observe_batch("success", 3)

        assert _batch_count("success") == initial + 1

    def test_observe_checkpoint(self) -> None:
        initial = CHECKPOINT_TOTAL.labels(status="success")._value.get()
        initial_latency = _histogram_count(CHECKPOINT_LATENCY_SECONDS)

        observe_checkpoint("success", 0.01)

        assert CHECKPOINT_TOTAL.labels(status="success")._value.get() == initial + 1
        assert _histogram_count(CHECKPOINT_LATENCY_SECONDS) == initial_latency + 1


class TestPersisterMetrics:
    def test_committed_batch_counts_each_operation(self, persister, todos_table: str) -> None:
        initial_put = _write_count(todos_table, "put", "success")
        initial_patch = _write_count(todos_table, "patch", "success")

        persister.apply_batch(
            [
                Operation(OperationKind.PUT, todos_table, "1", {"text": "a"}),
                Operation(OperationKind.PUT, todos_table, "2", {"text": "b"}),
                Operation(OperationKind.PATCH, todos_table, "1", {"done": True}),
            ]
        )

        assert _write_count(todos_table, "put", "success") == initial_put + 2
        assert _write_count(todos_table, "patch", "success") == initial_patch + 1

    def test_rolled_back_batch_is_counted_as_error(self, persister, todos_table: str) -> None:
        initial_errors = _batch_count("error")

        with pytest.raises(BackendError):
            persister.apply_batch(
                [
                    Operation(OperationKind.PUT, todos_table, "1", {"text": "a"}),
                    Operation(OperationKind.PUT, todos_table, "2", {"priority": None}),
                ]
            )

        assert _batch_count("error") == initial_errors + 1
        assert _write_count(todos_table, "put", "error") == 2
        assert _write_count(todos_table, "put", "success") == 0

    def test_invalid_batch_is_counted_as_invalid(self, persister, todos_table: str) -> None:
        initial = _batch_count("invalid")

        with pytest.raises(ValidationError):
            persister.apply_batch([Operation(OperationKind.DELETE, todos_table, None)])

        assert _batch_count("invalid") == initial + 1

    def test_checkpoint_emits_metrics(self, persister) -> None:
        initial = CHECKPOINT_TOTAL.labels(status="success")._value.get()

        persister.create_checkpoint("u1", "c1")

        assert CHECKPOINT_TOTAL.labels(status="success")._value.get() == initial + 1
