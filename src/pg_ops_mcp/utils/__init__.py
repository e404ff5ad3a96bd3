"""Utility modules for the PostgreSQL operations server."""

from pg_ops_mcp.utils.serialization import (
    convert_row_to_json_safe,
    convert_rows_to_json_safe,
    convert_value_to_json_safe,
    dumps,
)

__all__ = [
    "convert_value_to_json_safe",
    "convert_row_to_json_safe",
    "convert_rows_to_json_safe",
    "dumps",
]
