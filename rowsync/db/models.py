from __future__ import annotations

import numbers
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional

from ..errors import ValidationError


def is_scalar(value: Any) -> bool:
    """str, bool, None, or any real number (int, float, Decimal, ...)."""
    return value is None or isinstance(value, (str, bool, numbers.Real)) or (
        isinstance(value, numbers.Number) and not isinstance(value, numbers.Complex)
    )


class OperationKind(str, Enum):
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"

    @classmethod
    def parse(cls, value: Any) -> "OperationKind":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().upper())
            except ValueError:
                pass
        raise ValidationError(
            f"Unknown operation type {value!r}; expected one of "
            f"{', '.join(k.value for k in cls)}"
        )


@dataclass(frozen=True)
class Operation:
    """
    A single row mutation.

    ``id`` addresses the row through the configured primary-key column. For PUT
    it is merged into the inserted row; for PATCH and DELETE it only locates the
    row. ``data`` maps column names to scalar values and is unused by DELETE.
    """
    kind: OperationKind
    table: str
    id: Optional[str] = None
    data: Optional[Mapping[str, Any]] = None

    @classmethod
    def from_dict(
        cls,
        payload: Mapping[str, Any],
        kind: OperationKind | str | None = None,
    ) -> "Operation":
        """
        Build an operation from a decoded JSON body.

        Keys are matched case-insensitively. ``kind`` overrides the payload's
        ``op`` field, which is how the per-kind endpoints tag their bodies.
        """
        if not isinstance(payload, Mapping):
            raise ValidationError(
                f"Operation must be an object, got {type(payload).__name__}"
            )
        fields = {str(k).lower(): v for k, v in payload.items()}

        raw_kind = kind if kind is not None else fields.get("op")
        if raw_kind is None:
            raise ValidationError("Operation type ('op') is required")
        op_kind = OperationKind.parse(raw_kind)

        data = fields.get("data")
        if data is not None and not isinstance(data, Mapping):
            raise ValidationError(
                f"'data' must be an object, got {type(data).__name__}"
            )

        row_id = fields.get("id")
        if row_id is None and data is not None:
            row_id = data.get("id")

        return cls(
            kind=op_kind,
            table=fields.get("table"),
            id=None if row_id is None else str(row_id),
            data=None if data is None else dict(data),
        )


# Applied in order, inside one transaction.
Batch = list[Operation]


def parse_batch(payload: Any) -> Batch:
    """
    Parse a batch request body: ``{"batch": [...]}`` or a bare list of operations.
    """
    if isinstance(payload, Mapping):
        fields = {str(k).lower(): v for k, v in payload.items()}
        if "batch" not in fields:
            raise ValidationError("Invalid body provided: 'batch' is required")
        payload = fields["batch"]

    if not isinstance(payload, list):
        raise ValidationError(
            f"'batch' must be a list of operations, got {type(payload).__name__}"
        )

    return [Operation.from_dict(item) for item in payload]


@dataclass(frozen=True)
class Fragment:
    """One rendered statement and its bound parameters."""
    sql: str
    params: dict[str, Any] = field(default_factory=dict)
