from .config import PersisterConfig
from .db.models import Batch, Operation, OperationKind, parse_batch
from .errors import (
    BackendError,
    ConfigurationError,
    RowsyncError,
    UnknownIdentifierError,
    ValidationError,
)
from .persister import Persister, create_persister

__all__ = [
    "Persister",
    "PersisterConfig",
    "create_persister",
    "Operation",
    "OperationKind",
    "Batch",
    "parse_batch",
    "RowsyncError",
    "ValidationError",
    "UnknownIdentifierError",
    "BackendError",
    "ConfigurationError",
]
