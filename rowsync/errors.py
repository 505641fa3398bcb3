class RowsyncError(Exception):
    """Base exception for rowsync errors."""


class ValidationError(RowsyncError, ValueError):
    """Operation or batch is malformed; rejected before any statement runs."""


class UnknownIdentifierError(ValidationError):
    """Table or column is not in the schema allow-list."""


class BackendError(RowsyncError):
    """Any failure raised by the database while executing a batch or checkpoint."""


class ConfigurationError(RowsyncError, ValueError):
    """Invalid configuration or a backend that cannot be constructed."""
