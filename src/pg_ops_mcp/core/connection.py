"""Database connection management with SQLAlchemy over asyncpg."""

import datetime
import logging
import re
import ssl
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any, AsyncGenerator, Callable, Optional

import orjson
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from pg_ops_mcp.core.diagnostics import (
    DRIVER_ERRORS,
    classify,
    describe_connection_failure,
    to_query_error,
)
from pg_ops_mcp.errors import QueryError
from pg_ops_mcp.models.config import ConnectionCredentials, EffectiveConfig
from pg_ops_mcp.models.health import ConnectionTestResult
from pg_ops_mcp.utils import dumps

logger = logging.getLogger(__name__)

CONNECTION_TEST_TIMEOUT_MS = 5000
CONNECTION_TEST_QUERY = "SELECT NOW() AS current_time, version() AS version"


def _decode_bool(value: str) -> bool:
    return value == "t"


def _encode_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime.timedelta):
        return f"{value.total_seconds()} seconds"
    return str(value)


def _encode_json(value: Any) -> str:
    """JSON text is passed through as written; other values are serialized."""
    if isinstance(value, str):
        return value
    return dumps(value)


_FRACTION = re.compile(r"\.(\d{1,6})")
_SHORT_OFFSET = re.compile(r"([+-]\d{2})$")


def _pad_fraction(value: str) -> str:
    return _FRACTION.sub(lambda m: "." + m.group(1).ljust(6, "0"), value, count=1)


def _iso_with_offset(value: str) -> str:
    return _SHORT_OFFSET.sub(r"\1:00", _pad_fraction(value))


def _parsed_or_text(parse: Callable[[str], Any], normalize: Callable[[str], str]):
    """Decoder returning a Python value, or the server text when it has no
    Python equivalent (infinity, BC dates)."""

    def decode(value: str) -> Any:
        try:
            return parse(normalize(value))
        except ValueError:
            return value

    return decode


# Types exchanged in text format, so that string parameters such as
# where-params "123" or "2024-01-01" are cast by the server like untyped
# literals. Intervals decode to PostgreSQL's text form.
_TEXT_CODECS: dict[str, tuple[Callable[[Any], str], Callable[[str], Any]]] = {
    "int2": (_encode_text, int),
    "int4": (_encode_text, int),
    "int8": (_encode_text, int),
    "float4": (_encode_text, float),
    "float8": (_encode_text, float),
    "numeric": (_encode_text, Decimal),
    "bool": (_encode_text, _decode_bool),
    "text": (_encode_text, str),
    "varchar": (_encode_text, str),
    "bpchar": (_encode_text, str),
    "date": (_encode_text, _parsed_or_text(datetime.date.fromisoformat, str)),
    "time": (_encode_text, _parsed_or_text(datetime.time.fromisoformat, _pad_fraction)),
    "timetz": (
        _encode_text,
        _parsed_or_text(datetime.time.fromisoformat, _iso_with_offset),
    ),
    "timestamp": (
        _encode_text,
        _parsed_or_text(datetime.datetime.fromisoformat, _pad_fraction),
    ),
    "timestamptz": (
        _encode_text,
        _parsed_or_text(datetime.datetime.fromisoformat, _iso_with_offset),
    ),
    "interval": (_encode_text, str),
    "json": (_encode_json, orjson.loads),
    "jsonb": (_encode_json, orjson.loads),
}


async def _register_text_codecs(conn: Any) -> None:
    for typename, (encoder, decoder) in _TEXT_CODECS.items():
        await conn.set_type_codec(
            typename,
            schema="pg_catalog",
            encoder=encoder,
            decoder=decoder,
            format="text",
        )


def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
    dbapi_connection.run_async(_register_text_codecs)


def _ssl_context() -> ssl.SSLContext:
    """TLS without certificate verification."""
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


class DatabaseConnection:
    """Owns one SQLAlchemy async engine and its connection pool.

    Used as an async context manager: entering creates the pool, leaving
    disposes it, whether or not a query ever ran.

    The configured idle timeout is applied as pool_recycle: it caps how long
    a pooled connection lives in total and is not idle eviction. Idle
    connections stay open until they reach that age or the pool is disposed.
    """

    def __init__(self, config: EffectiveConfig):
        """
        Initialize database connection.

        Args:
            config: Resolved connection and pool settings
        """
        self.config = config
        self.engine: Optional[AsyncEngine] = None

    async def initialize(self) -> None:
        """Create the engine. No connection is opened until first checkout."""
        if self.engine is not None:
            return  # Already initialized

        timeout = self.config.connection_timeout_seconds
        connect_args: dict[str, Any] = {
            "timeout": timeout,
            "ssl": _ssl_context() if self.config.ssl else False,
        }

        self.engine = create_async_engine(
            self.config.url,
            pool_size=self.config.pool_max,
            max_overflow=0,
            pool_timeout=timeout,
            pool_recycle=max(1, self.config.idle_timeout_ms // 1000),
            pool_pre_ping=True,  # Verify connections before using
            isolation_level="AUTOCOMMIT",  # Each statement commits on its own
            connect_args=connect_args,
        )

        event.listen(self.engine.sync_engine, "connect", _on_connect)

        logger.debug(
            f"Created pool for {self.config.sanitized_url} "
            f"(max={self.config.pool_max}, timeout={self.config.connection_timeout_ms}ms, "
            f"ssl={self.config.ssl})"
        )

    async def dispose(self) -> None:
        """Dispose of the connection pool and cleanup resources."""
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None

    @asynccontextmanager
    async def get_connection(self) -> AsyncGenerator[AsyncConnection, None]:
        """
        Check out a connection from the pool as an async context manager.

        Yields:
            AsyncConnection in autocommit mode

        Raises:
            RuntimeError: If engine not initialized
            QueryError: If the checkout fails (refused, timeout, auth, ...)
        """
        if self.engine is None:
            raise RuntimeError(
                "DatabaseConnection not initialized. Call initialize() first."
            )

        try:
            conn = await self.engine.connect()
        except DRIVER_ERRORS as e:
            raise to_query_error(e) from e

        try:
            yield conn
        finally:
            await conn.close()

    @property
    def is_initialized(self) -> bool:
        """Check if engine is initialized."""
        return self.engine is not None

    async def __aenter__(self) -> "DatabaseConnection":
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.dispose()


async def check_connectivity(
    credentials: ConnectionCredentials,
    timeout_ms: int = CONNECTION_TEST_TIMEOUT_MS,
) -> ConnectionTestResult:
    """
    Connectivity self-test.

    Runs one query on a pool capped at a single connection and translates
    failures into specific diagnoses instead of raising.

    Args:
        credentials: Connection parameters to test
        timeout_ms: Connection timeout

    Returns:
        Test result with a human-readable message
    """
    missing = credentials.missing_fields()
    if missing:
        return ConnectionTestResult(
            success=False,
            message="Host, database, user, and password are required",
        )

    config = EffectiveConfig(
        host=credentials.host,
        port=credentials.port,
        database=credentials.database,
        user=credentials.user,
        password=credentials.password,
        ssl=credentials.ssl,
        connection_timeout_ms=timeout_ms,
        pool_max=1,
    )

    try:
        async with DatabaseConnection(config) as db:
            async with db.get_connection() as conn:
                result = await conn.exec_driver_sql(CONNECTION_TEST_QUERY)
                row = result.fetchone()
    except Exception as e:
        code = e.code if isinstance(e, QueryError) else classify(e)[0]
        logger.warning(f"Connection test to {credentials.address} failed: {e}")
        return ConnectionTestResult(
            success=False,
            message=describe_connection_failure(
                code,
                str(e),
                host=credentials.host,
                port=credentials.port,
                database=credentials.database,
            ),
            code=code,
        )

    if row is None:
        return ConnectionTestResult(success=True, message="Connection successful")

    match = re.search(r"PostgreSQL ([\d.]+)", str(row[1]))
    version = match.group(1) if match else "Unknown"
    return ConnectionTestResult(
        success=True,
        message=f"Connected successfully to PostgreSQL {version} at {credentials.address}",
        version=version,
    )
