from .applier import BatchApplier
from .checkpoints import CheckpointStore
from .dialects import MySQLDialect, PostgresDialect, SqlDialect, SqliteDialect, make_dialect
from .fragments import FragmentBuilder
from .models import Fragment, Operation, OperationKind
from .schema import SchemaRegistry
from .session import DbSession

__all__ = [
    "DbSession",
    "BatchApplier",
    "CheckpointStore",
    "FragmentBuilder",
    "Fragment",
    "Operation",
    "OperationKind",
    "SchemaRegistry",
    "SqlDialect",
    "PostgresDialect",
    "MySQLDialect",
    "SqliteDialect",
    "make_dialect",
]
