"""Translate operation descriptors into parameterized SQL statements.

Everything here is pure: no I/O, no connection. Values always travel as
positional parameters ($1, $2, ...). Table names and the WHERE, ORDER BY and
column-list texts are caller-supplied SQL fragments and are interpolated as
given; only inserted and updated column names are double-quoted. Callers must
not pass untrusted input in those fragments.
"""

from typing import Any, Optional

import orjson

from pg_ops_mcp.errors import ValidationError
from pg_ops_mcp.models.operations import (
    ColumnValueMap,
    Delete,
    ExecuteQuery,
    Insert,
    OperationDescriptor,
    Select,
    Update,
)
from pg_ops_mcp.models.query import BuiltStatement


def split_params(params_csv: Optional[str]) -> list[str]:
    """
    Split a comma-separated parameter string.

    Args:
        params_csv: Values such as "123, active"

    Returns:
        Trimmed values in order; empty input gives an empty list
    """
    if not params_csv:
        return []
    return [p.strip() for p in params_csv.split(",")]


def quote_identifier(name: str) -> str:
    """Double-quote a column name to keep its case and allow reserved words."""
    return f'"{name}"'


def filter_column_map(columns_map: ColumnValueMap, operation: str) -> dict[str, Any]:
    """
    Parse and filter a column-value map.

    Entries whose value is None or an empty string are dropped; insertion
    order is kept.

    Args:
        columns_map: Mapping or JSON object string
        operation: Operation name used in error messages

    Returns:
        Filtered mapping

    Raises:
        ValidationError: On malformed JSON, bad column names, or no remaining data
    """
    if isinstance(columns_map, str):
        try:
            data = orjson.loads(columns_map) if columns_map.strip() else {}
        except orjson.JSONDecodeError as e:
            raise ValidationError(f"Invalid JSON in columns map: {e}") from e
    else:
        data = columns_map or {}

    if not isinstance(data, dict):
        raise ValidationError(
            f"Columns map must be an object of column/value pairs, got {type(data).__name__}"
        )

    filtered: dict[str, Any] = {}
    for column, value in data.items():
        if value is None or (isinstance(value, str) and value == ""):
            continue
        if not isinstance(column, str) or not column:
            raise ValidationError("Column names in the columns map must be non-empty")
        filtered[column] = value

    if not filtered:
        raise ValidationError(
            f"No data provided for {operation}. Please map at least one column."
        )
    return filtered


def _positive_limit(limit: Any) -> int:
    if isinstance(limit, bool):
        raise ValidationError(f"Limit must be a positive integer, got {limit!r}")
    if isinstance(limit, float) and limit.is_integer():
        limit = int(limit)
    if isinstance(limit, str) and limit.strip().isdigit():
        limit = int(limit.strip())
    if not isinstance(limit, int) or limit < 1:
        raise ValidationError(f"Limit must be a positive integer, got {limit!r}")
    return limit


def build_execute_query(descriptor: ExecuteQuery) -> BuiltStatement:
    return BuiltStatement(
        sql=descriptor.query, params=tuple(split_params(descriptor.query_params))
    )


def build_select(descriptor: Select) -> BuiltStatement:
    sql = f"SELECT {descriptor.columns or '*'} FROM {descriptor.table}"
    params: list[Any] = []

    if descriptor.where:
        sql += f" WHERE {descriptor.where}"
        params = split_params(descriptor.where_params)

    if descriptor.order_by:
        sql += f" ORDER BY {descriptor.order_by}"

    if not descriptor.return_all:
        sql += f" LIMIT {_positive_limit(descriptor.limit)}"

    return BuiltStatement(sql=sql, params=tuple(params))


def build_insert(descriptor: Insert) -> BuiltStatement:
    data = filter_column_map(descriptor.columns_map, "insert")

    columns = ", ".join(quote_identifier(col) for col in data)
    placeholders = ", ".join(f"${i}" for i in range(1, len(data) + 1))
    sql = (
        f"INSERT INTO {descriptor.table} ({columns}) VALUES ({placeholders}) "
        f"RETURNING {descriptor.return_fields or '*'}"
    )
    return BuiltStatement(sql=sql, params=tuple(data.values()))


def build_update(descriptor: Update) -> BuiltStatement:
    if not descriptor.where:
        raise ValidationError(
            "WHERE clause is required for UPDATE operation to prevent accidental updates"
        )
    data = filter_column_map(descriptor.columns_map, "update")

    set_clause = ", ".join(
        f"{quote_identifier(col)} = ${i}" for i, col in enumerate(data, start=1)
    )
    # The where text must already number its placeholders after the SET ones
    params = [*data.values(), *split_params(descriptor.where_params)]
    sql = (
        f"UPDATE {descriptor.table} SET {set_clause} WHERE {descriptor.where} "
        f"RETURNING {descriptor.return_fields or '*'}"
    )
    return BuiltStatement(sql=sql, params=tuple(params))


def build_delete(descriptor: Delete) -> BuiltStatement:
    if not descriptor.where:
        raise ValidationError(
            "WHERE clause is required for DELETE operation to prevent accidental deletion"
        )
    return BuiltStatement(
        sql=f"DELETE FROM {descriptor.table} WHERE {descriptor.where}",
        params=tuple(split_params(descriptor.where_params)),
    )


_BUILDERS = {
    ExecuteQuery: build_execute_query,
    Select: build_select,
    Insert: build_insert,
    Update: build_update,
    Delete: build_delete,
}


def build_statement(descriptor: OperationDescriptor) -> BuiltStatement:
    """
    Build the SQL statement for an operation descriptor.

    Args:
        descriptor: One of the operation descriptor variants

    Returns:
        SQL text and its positional parameters

    Raises:
        ValidationError: If the descriptor violates an operation invariant
    """
    builder = _BUILDERS.get(type(descriptor))
    if builder is None:
        raise ValidationError(
            f"Unsupported operation descriptor: {type(descriptor).__name__}"
        )
    return builder(descriptor)
