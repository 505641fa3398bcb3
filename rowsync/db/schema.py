from __future__ import annotations

import logging
from typing import Iterable, Mapping, Optional

from sqlalchemy import inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ..errors import BackendError, UnknownIdentifierError
from .helpers import _validate_identifier

logger = logging.getLogger(__name__)


class SchemaRegistry:
    """
    Allow-list of writable tables and their columns.

    Two modes:

    - explicit: built from a ``{table: columns}`` mapping; never reloads.
    - reflected: reads the live catalogue through SQLAlchemy's inspector, one
      table at a time, on first use. A table that is not found is re-inspected
      on the next lookup, so tables created after start-up become writable
      without a restart. ``refresh()`` drops everything cached.

    Usage:
        registry = SchemaRegistry.reflect(engine, exclude=["checkpoints"])
        registry.check("todos", ["id", "text", "done"])
    """

    def __init__(
        self,
        tables: Optional[Mapping[str, Iterable[str]]] = None,
        engine: Optional[Engine] = None,
        exclude: Iterable[str] = (),
    ) -> None:
        if tables is None and engine is None:
            raise ValueError("SchemaRegistry needs either explicit tables or an engine to reflect")

        self.engine = engine
        self.exclude = frozenset(exclude)
        self._explicit = tables is not None
        self._tables: dict[str, frozenset[str]] = {}

        if tables is not None:
            for table, columns in tables.items():
                _validate_identifier(table, "table")
                cols = frozenset(_validate_identifier(c, "column") for c in columns)
                self._tables[table] = cols

    @classmethod
    def static(cls, tables: Mapping[str, Iterable[str]]) -> "SchemaRegistry":
        return cls(tables=tables)

    @classmethod
    def reflect(cls, engine: Engine, exclude: Iterable[str] = ()) -> "SchemaRegistry":
        return cls(engine=engine, exclude=exclude)

    def refresh(self) -> None:
        """Forget reflected tables; they are re-read on next use."""
        if not self._explicit:
            self._tables.clear()

    def columns(self, table: str) -> frozenset[str]:
        """
        Return the columns of an allow-listed table.

        Raises:
            UnknownIdentifierError: If the table is not writable
            BackendError: If reflecting the table fails
        """
        cols = self._tables.get(table)
        if cols is not None:
            return cols

        if self._explicit or table in self.exclude:
            raise UnknownIdentifierError(f"Unknown table {table!r}")

        cols = self._reflect_table(table)
        if cols is None:
            raise UnknownIdentifierError(f"Unknown table {table!r}")

        self._tables[table] = cols
        return cols

    def check(self, table: str, columns: Iterable[str]) -> None:
        """
        Ensure every column belongs to ``table``.

        Raises:
            UnknownIdentifierError: On an unknown table or column
        """
        known = self.columns(table)
        unknown = sorted(c for c in columns if c not in known)
        if unknown:
            raise UnknownIdentifierError(
                f"Unknown column(s) for table {table!r}: {', '.join(unknown)}"
            )

    def _reflect_table(self, table: str) -> frozenset[str] | None:
        try:
            inspector = inspect(self.engine)
            if not inspector.has_table(table):
                return None
            cols = frozenset(col["name"] for col in inspector.get_columns(table))
        except SQLAlchemyError as exc:
            raise BackendError(str(exc)) from exc

        logger.debug("Reflected table %s with %d columns", table, len(cols))
        return cols
