from __future__ import annotations

from typing import Any, Mapping

from ..errors import ValidationError
from .dialects import PK_PARAM, SqlDialect, value_param
from .helpers import _validate_identifier
from .models import Fragment, Operation, OperationKind, is_scalar
from .schema import SchemaRegistry


class FragmentBuilder:
    """
    Translates one Operation into a statement and its bound parameters.

    Nothing is executed here. Every table and column name is checked for
    format and against the schema registry before it reaches the SQL text;
    every value is a bound parameter.

    Usage:
        builder = FragmentBuilder(PostgresDialect(), registry)
        fragment = builder.build(op)
        session.execute(fragment.sql, fragment.params)
    """

    def __init__(
        self,
        dialect: SqlDialect,
        registry: SchemaRegistry,
        id_column: str = "id",
    ) -> None:
        self.dialect = dialect
        self.registry = registry
        self.id_column = _validate_identifier(id_column, "id_column")

    def build(self, op: Operation) -> Fragment:
        """
        Render ``op``.

        Raises:
            ValidationError: If the operation is malformed, references an unknown
                table or column, or (PATCH) has no updatable columns
        """
        table = self._table(op)
        kind = OperationKind.parse(op.kind)
        pk = self._require_id(op, kind)

        if kind == OperationKind.DELETE:
            self.registry.check(table, [self.id_column])
            return Fragment(self.dialect.delete(table, self.id_column), {PK_PARAM: pk})

        data = self._require_data(op, kind)
        columns = [
            col
            for col in (self._identifier(c, "column name") for c in data)
            if col.lower() != self.id_column.lower()
        ]
        self.registry.check(table, [self.id_column, *columns])

        params: dict[str, Any] = {PK_PARAM: pk}
        for i, col in enumerate(columns):
            params[value_param(i)] = data[col]

        if kind == OperationKind.PUT:
            sql = self.dialect.upsert(table, self.id_column, columns)
        else:
            if not columns:
                raise ValidationError("No updatable columns provided")
            sql = self.dialect.update(table, self.id_column, columns)

        return Fragment(sql, params)

    def _table(self, op: Operation) -> str:
        if op.table is None or (isinstance(op.table, str) and not op.table.strip()):
            raise ValidationError("Table name cannot be empty")
        return self._identifier(op.table, "table")

    def _require_id(self, op: Operation, kind: OperationKind) -> Any:
        row_id = op.id
        if row_id is None or isinstance(row_id, bool) or not str(row_id).strip():
            raise ValidationError(f"Id is required for {kind.value} operation")
        if not isinstance(row_id, (str, int)):
            raise ValidationError(
                f"Id must be a string, got {type(row_id).__name__}"
            )
        return row_id

    def _require_data(self, op: Operation, kind: OperationKind) -> Mapping[str, Any]:
        data = op.data
        if not data:
            raise ValidationError(f"Data is required for {kind.value} operation")
        for col, val in data.items():
            if not is_scalar(val):
                raise ValidationError(
                    f"Value for column {col!r} must be a scalar, got {type(val).__name__}"
                )
        return data

    @staticmethod
    def _identifier(name: Any, identifier_type: str) -> str:
        try:
            return _validate_identifier(name, identifier_type)
        except (TypeError, ValueError) as exc:
            raise ValidationError(str(exc)) from exc
