"""JSON serialization utilities using orjson.

orjson handles datetime, date, time (ISO format) and UUID natively. The
default handler below covers the remaining values asyncpg hands back:
Decimal (string, keeps precision), timedelta, bytes, ranges, network types.
"""

import base64
import datetime
import decimal
import ipaddress
import uuid
from typing import Any

import orjson
from asyncpg import Range


def _default_handler(obj: Any) -> Any:
    """
    Custom default handler for types orjson doesn't handle natively.

    Raises:
        TypeError: If object cannot be serialized
    """
    # Decimal - string keeps numeric precision
    if isinstance(obj, decimal.Decimal):
        return str(obj)

    # timedelta (interval) - total seconds
    if isinstance(obj, datetime.timedelta):
        return obj.total_seconds()

    # asyncpg's UUID type is not always a uuid.UUID subclass
    if isinstance(obj, uuid.UUID) or type(obj).__name__ == "UUID":
        return str(obj)

    # bytea - try UTF-8 decode, fall back to base64
    if isinstance(obj, (bytes, bytearray, memoryview)):
        data = bytes(obj)
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError:
            return base64.b64encode(data).decode("ascii")

    if isinstance(obj, (set, frozenset)):
        return list(obj)

    # inet / cidr
    if isinstance(
        obj,
        (
            ipaddress.IPv4Address,
            ipaddress.IPv6Address,
            ipaddress.IPv4Network,
            ipaddress.IPv6Network,
            ipaddress.IPv4Interface,
            ipaddress.IPv6Interface,
        ),
    ):
        return str(obj)

    # int4range, tstzrange, ...
    if isinstance(obj, Range):
        return {
            "lower": obj.lower,
            "upper": obj.upper,
            "lower_inc": obj.lower_inc,
            "upper_inc": obj.upper_inc,
            "isempty": obj.isempty,
        }

    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")


def convert_value_to_json_safe(value: Any) -> Any:
    """
    Convert a value to JSON-serializable format.

    Serializes with orjson and decodes back, so the value matches what will
    actually be emitted.
    """
    try:
        return orjson.loads(orjson.dumps(value, default=_default_handler))
    except TypeError:
        # If orjson can't handle it, convert to string as fallback
        return str(value)


def convert_row_to_json_safe(row: dict[str, Any]) -> dict[str, Any]:
    """Convert all values in a row dict to JSON-serializable formats."""
    return {key: convert_value_to_json_safe(value) for key, value in row.items()}


def convert_rows_to_json_safe(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [convert_row_to_json_safe(row) for row in rows]


def dumps(obj: Any, *, indent: bool = False) -> str:
    """
    Serialize object to JSON string using orjson.

    Args:
        obj: Object to serialize
        indent: Pretty-print with two-space indentation

    Returns:
        JSON string
    """
    option = orjson.OPT_INDENT_2 if indent else 0
    return orjson.dumps(obj, default=_default_handler, option=option).decode("utf-8")
