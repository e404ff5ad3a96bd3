"""Statement execution and result normalization."""

import logging
import re
import time
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncConnection

from pg_ops_mcp.core.diagnostics import DRIVER_ERRORS, to_query_error
from pg_ops_mcp.models.operations import (
    Delete,
    ExecuteQuery,
    Insert,
    OperationDescriptor,
    Select,
    Update,
)
from pg_ops_mcp.models.query import BuiltStatement, ExecutionResult, FieldInfo
from pg_ops_mcp.utils import convert_rows_to_json_safe

logger = logging.getLogger(__name__)

_MAIN_VERBS = ("SELECT", "INSERT", "UPDATE", "DELETE", "MERGE")


def command_tag(sql: str) -> Optional[str]:
    """
    Command keyword of a statement, read from its text.

    Comments are ignored; for a WITH query the verb following the last CTE
    is used. The driver does not expose the server's status tag, so text with
    several statements is reported by its first one.

    Args:
        sql: SQL text

    Returns:
        Upper-case command such as SELECT, or None for empty text
    """
    normalized = re.sub(r"--[^\n]*", "", sql)
    normalized = re.sub(r"/\*.*?\*/", "", normalized, flags=re.DOTALL)
    normalized = normalized.strip().upper()

    words = normalized.split()
    if not words:
        return None

    first_keyword = re.sub(r"[^A-Z_]", "", words[0]) or words[0]
    if first_keyword != "WITH":
        return first_keyword

    verbs = re.findall(r"\)\s*(" + "|".join(_MAIN_VERBS) + r")\b", normalized)
    return verbs[-1] if verbs else "SELECT"


class QueryExecutor:
    """Sends built statements through a driver connection."""

    async def execute(
        self, conn: AsyncConnection, statement: BuiltStatement
    ) -> ExecutionResult:
        """
        Execute a statement and normalize the driver result.

        Args:
            conn: Connection checked out from the pool
            statement: SQL text and positional parameters

        Returns:
            Normalized execution result

        Raises:
            QueryError: On any driver-level failure
        """
        start_time = time.time()

        try:
            result = await conn.exec_driver_sql(statement.sql, statement.params)

            rows: list[dict[str, Any]] = []
            fields: Optional[list[FieldInfo]] = None
            if result.returns_rows:
                columns = list(result.keys())
                description = getattr(result.cursor, "description", None) or []
                fields = [
                    FieldInfo(name=col[0], type_id=col[1] if len(col) > 1 else None)
                    for col in description
                ] or [FieldInfo(name=name) for name in columns]
                rows = [dict(zip(columns, row)) for row in result.fetchall()]

            rowcount = result.rowcount
        except DRIVER_ERRORS as e:
            error = to_query_error(e)
            logger.debug(f"Statement failed ({error.code}): {error}")
            raise error from e

        execution_time = (time.time() - start_time) * 1000  # Convert to ms
        logger.debug(
            f"Executed {command_tag(statement.sql)} with {statement.param_count} "
            f"params in {execution_time:.1f}ms"
        )

        return ExecutionResult(
            rows=convert_rows_to_json_safe(rows),
            row_count=rowcount if rowcount is not None and rowcount >= 0 else len(rows),
            command=command_tag(statement.sql),
            fields=fields,
        )


def shape_result(
    descriptor: OperationDescriptor, result: ExecutionResult
) -> dict[str, Any]:
    """
    Caller-facing data for one executed operation.

    Args:
        descriptor: The operation that produced the result
        result: Normalized execution result

    Returns:
        JSON-ready mapping whose keys depend on the operation
    """
    if isinstance(descriptor, ExecuteQuery):
        return {
            "rows": result.rows,
            "rowCount": result.row_count,
            "command": result.command,
            "fields": [f.model_dump(by_alias=True) for f in result.fields or []],
        }
    if isinstance(descriptor, Select):
        return {"rows": result.rows, "rowCount": result.row_count}
    if isinstance(descriptor, Insert):
        return {"inserted": result.first_row, "rowCount": result.row_count}
    if isinstance(descriptor, Update):
        return {"updated": result.rows, "rowCount": result.row_count}
    if isinstance(descriptor, Delete):
        return {"deleted": True, "rowCount": result.row_count}
    raise TypeError(f"Unsupported operation descriptor: {type(descriptor).__name__}")
