from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from sqlalchemy.engine import URL

from .db.helpers import _validate_identifier
from .errors import ConfigurationError

SUPPORTED_DATABASE_TYPES = ("postgresql", "mysql", "mariadb", "sqlite")

_URI_SCHEME_REWRITES = {
    "postgres://": "postgresql+psycopg://",
    "postgresql://": "postgresql+psycopg://",
    "mysql://": "mysql+pymysql://",
}

# Npgsql connection-string keys -> URL.create() arguments
_CONNECTION_STRING_KEYS = {
    "host": "host",
    "server": "host",
    "port": "port",
    "database": "database",
    "username": "username",
    "user id": "username",
    "userid": "username",
    "password": "password",
}


def normalize_database_uri(uri: str) -> str:
    """
    Turn a provider-style database URI into a SQLAlchemy URL.

    Hosted Postgres services hand out ``postgres://user:pw@host/db``; SQLAlchemy
    needs an explicit driver. URLs that already name a driver are returned as is.
    A ``Host=...;Database=...`` PostgreSQL connection string is converted too.

    Raises:
        ConfigurationError: If ``uri`` is neither a URL nor a connection string
    """
    uri = uri.strip()
    if "://" not in uri:
        return _connection_string_to_url(uri)
    for prefix, replacement in _URI_SCHEME_REWRITES.items():
        if uri.startswith(prefix):
            return replacement + uri[len(prefix):]
    return uri


def _connection_string_to_url(conn_str: str) -> str:
    if "=" not in conn_str:
        raise ConfigurationError(
            "database_uri is neither a URL (scheme://...) nor a "
            "Host=...;Database=... connection string"
        )

    args: dict[str, object] = {}
    for item in conn_str.split(";"):
        if not item.strip():
            continue
        key, sep, value = item.partition("=")
        key = key.strip().lower()
        if not sep or key not in _CONNECTION_STRING_KEYS:
            raise ConfigurationError(
                f"Unsupported connection string entry {item.strip().split('=', 1)[0]!r}; "
                f"supported keys are {', '.join(sorted(_CONNECTION_STRING_KEYS))}"
            )
        args[_CONNECTION_STRING_KEYS[key]] = value.strip() or None

    if not args.get("host"):
        raise ConfigurationError("Connection string is missing Host")
    if args.get("port") is not None:
        try:
            args["port"] = int(args["port"])
        except ValueError as exc:
            raise ConfigurationError(f"Connection string Port must be an integer, got {args['port']!r}") from exc

    url = URL.create("postgresql+psycopg", **args)
    return url.render_as_string(hide_password=False)


def database_type_of(uri: str) -> str:
    """Backend family of a SQLAlchemy URL: ``postgresql``, ``mysql`` or ``sqlite``."""
    scheme = uri.split(":", 1)[0]
    return scheme.split("+", 1)[0]


@dataclass
class PersisterConfig:
    database_uri: str
    database_type: Optional[str] = None
    id_column: str = "id"
    checkpoint_table: str = "checkpoints"
    # table -> allowed columns; None means reflect from the live database
    tables: Optional[Mapping[str, tuple[str, ...]]] = None
    default_user_id: str = "UserID"
    default_client_id: str = "1"
    pool_size: int = 5
    max_overflow: int = 10
    pool_pre_ping: bool = True

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if not self.database_uri or not self.database_uri.strip():
            raise ConfigurationError("database_uri is required")
        self.database_uri = normalize_database_uri(self.database_uri)

        inferred = database_type_of(self.database_uri)
        if self.database_type is None:
            self.database_type = inferred
        else:
            self.database_type = self.database_type.strip().lower()
            if self.database_type == "postgres":
                self.database_type = "postgresql"
            if self.database_type != inferred:
                raise ConfigurationError(
                    f"database_type {self.database_type!r} does not match "
                    f"database_uri backend {inferred!r}"
                )

        if self.database_type not in SUPPORTED_DATABASE_TYPES:
            raise ConfigurationError(
                f"Unsupported database type {self.database_type!r}; "
                f"expected one of {', '.join(SUPPORTED_DATABASE_TYPES)}"
            )

        try:
            _validate_identifier(self.id_column, "id_column")
            _validate_identifier(self.checkpoint_table, "checkpoint_table")
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(str(exc)) from exc

        if self.pool_size <= 0:
            raise ConfigurationError("pool_size must be > 0")
        if self.max_overflow < 0:
            raise ConfigurationError("max_overflow must be >= 0")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "PersisterConfig":
        """
        Build a config from ``ROWSYNC_*`` environment variables.

        Only ``ROWSYNC_DATABASE_URI`` is required; everything else keeps its default.
        """
        env = os.environ if environ is None else environ

        uri = env.get("ROWSYNC_DATABASE_URI")
        if not uri:
            raise ConfigurationError("ROWSYNC_DATABASE_URI is not set")

        kwargs: dict = {"database_uri": uri}
        if env.get("ROWSYNC_DATABASE_TYPE"):
            kwargs["database_type"] = env["ROWSYNC_DATABASE_TYPE"]
        if env.get("ROWSYNC_ID_COLUMN"):
            kwargs["id_column"] = env["ROWSYNC_ID_COLUMN"]
        if env.get("ROWSYNC_CHECKPOINT_TABLE"):
            kwargs["checkpoint_table"] = env["ROWSYNC_CHECKPOINT_TABLE"]
        for name, key in (("pool_size", "ROWSYNC_POOL_SIZE"), ("max_overflow", "ROWSYNC_MAX_OVERFLOW")):
            raw = env.get(key)
            if raw:
                try:
                    kwargs[name] = int(raw)
                except ValueError as exc:
                    raise ConfigurationError(f"{key} must be an integer, got {raw!r}") from exc

        return cls(**kwargs)
