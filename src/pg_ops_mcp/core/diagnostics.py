"""Classify driver failures and turn them into human-readable diagnoses."""

import asyncio
import errno
import socket
from typing import Iterator, Optional

from sqlalchemy import exc as sa_exc

from pg_ops_mcp.errors import QueryError

# Failures raised by the driver stack at checkout or execution time
DRIVER_ERRORS = (sa_exc.SQLAlchemyError, OSError, asyncio.TimeoutError)

TIMEOUT = "ETIMEDOUT"
REFUSED = "ECONNREFUSED"
NOT_FOUND = "ENOTFOUND"

# SQLSTATE codes the connectivity test reports specifically
INVALID_PASSWORD = "28P01"
INVALID_AUTHORIZATION = "28000"
INVALID_CATALOG = "3D000"
UNABLE_TO_CONNECT = "08001"
QUERY_CANCELED = "57014"


def _error_chain(exc: BaseException) -> Iterator[BaseException]:
    """Walk exc, its DBAPI original and its causes, each once."""
    seen: set[int] = set()
    pending: list[Optional[BaseException]] = [exc]
    while pending:
        current = pending.pop(0)
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        pending.append(getattr(current, "orig", None))
        pending.append(current.__cause__)
        pending.append(current.__context__)


def find_sqlstate(exc: BaseException) -> Optional[str]:
    """SQLSTATE reported by the server, if any exception in the chain carries one."""
    for current in _error_chain(exc):
        for attr in ("sqlstate", "pgcode"):
            code = getattr(current, attr, None)
            if isinstance(code, str) and code:
                return code
    return None


def classify(exc: BaseException) -> tuple[Optional[str], str]:
    """
    Classify a driver failure.

    Args:
        exc: Exception raised by SQLAlchemy, asyncpg or the socket layer

    Returns:
        Tuple of (code, kind). code is the SQLSTATE when the server answered,
        otherwise an errno-style symbol. kind is one of query, connection,
        auth or timeout.
    """
    sqlstate = find_sqlstate(exc)
    if sqlstate:
        if sqlstate.startswith("28"):
            return sqlstate, "auth"
        if sqlstate.startswith("08") or sqlstate == INVALID_CATALOG:
            return sqlstate, "connection"
        if sqlstate == QUERY_CANCELED:
            return sqlstate, "timeout"
        return sqlstate, "query"

    for current in _error_chain(exc):
        if isinstance(current, (asyncio.TimeoutError, TimeoutError, sa_exc.TimeoutError)):
            return TIMEOUT, "timeout"
        if isinstance(current, socket.gaierror):
            return NOT_FOUND, "connection"
        if isinstance(current, ConnectionRefusedError):
            return REFUSED, "connection"
        if isinstance(current, OSError) and current.errno in errno.errorcode:
            symbol = errno.errorcode[current.errno]
            kind = "timeout" if symbol == TIMEOUT else "connection"
            return symbol, kind

    if isinstance(exc, sa_exc.InterfaceError):
        return None, "connection"
    return None, "query"


def _driver_message(exc: BaseException) -> str:
    """Most specific message in the chain, without SQLAlchemy's wrapper text."""
    orig = getattr(exc, "orig", None)
    message = str(orig) if orig is not None else str(exc)
    if not message:
        message = type(exc).__name__
    return message


def to_query_error(exc: BaseException) -> QueryError:
    """Convert a driver failure into a QueryError carrying its code and kind."""
    if isinstance(exc, QueryError):
        return exc
    code, kind = classify(exc)
    message = _driver_message(exc)
    if code == TIMEOUT:
        message = f"Connection timeout: {message}"
    return QueryError(message, sqlstate=find_sqlstate(exc), code=code, kind=kind)


def describe_connection_failure(
    code: Optional[str],
    message: str,
    *,
    host: str,
    port: int,
    database: str,
) -> str:
    """
    Map a connectivity-test failure to a specific user-facing diagnosis.

    Args:
        code: Code from classify()
        message: Driver message, used for the generic fallback
        host: Server host that was tried
        port: Server port that was tried
        database: Database name that was requested

    Returns:
        Diagnosis text
    """
    if code == REFUSED:
        return f"Cannot connect to database server at {host}:{port}. Connection refused."
    if code == NOT_FOUND:
        return f"Cannot resolve host: {host}. Please check the hostname."
    if code == TIMEOUT:
        return (
            f"Connection timeout to {host}:{port}. "
            "Please check firewall and network settings."
        )
    if code == INVALID_PASSWORD:
        return "Authentication failed. Invalid username or password."
    if code == INVALID_CATALOG:
        return f'Database "{database}" does not exist.'
    if code == INVALID_AUTHORIZATION:
        return "Authorization failed. User does not have access to this database."
    if code == UNABLE_TO_CONNECT:
        return "Unable to establish connection. Please check server settings."
    return f"Connection failed: {message or 'Unknown error'}"
