"""PostgreSQL operations MCP Server

A Model Context Protocol (MCP) server exposing parameterized select, insert,
update, delete and raw-query operations over PostgreSQL, plus table and
column discovery and a connectivity self-test.
"""

import asyncio
import logging
import os
from typing import Any, Optional

from dotenv import load_dotenv
from mcp.server import Server
from mcp.types import TextContent, Tool

from pg_ops_mcp.core import BatchProcessor, SchemaInspector, check_connectivity
from pg_ops_mcp.errors import CredentialError
from pg_ops_mcp.models.config import (
    ConnectionCredentials,
    ExecutionSettings,
    resolve_config,
)
from pg_ops_mcp.models.operations import OperationType
from pg_ops_mcp.utils import dumps

# Load environment variables
load_dotenv()

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Response size limits (in characters) for MCP tool responses
MAX_RESPONSE_TEST_CONNECTION = 2000
MAX_RESPONSE_LIST_TABLES = 5000
MAX_RESPONSE_LIST_COLUMNS = 8000
MAX_RESPONSE_EXECUTE_OPERATION = 10000

# Item-independent parameters accepted by execute_operation
_OPERATION_PARAMETERS = (
    "query",
    "queryParams",
    "table",
    "columns",
    "where",
    "whereParams",
    "orderBy",
    "returnAll",
    "limit",
    "columnsMap",
    "returnFields",
)


# List fields that may be shortened to fit a response limit
_TRIMMABLE_KEYS = ("rows", "updated", "tables", "columns")


def _trim_record(record: Any, keep: int) -> Any:
    if not isinstance(record, dict):
        return record

    trimmed = dict(record)
    for key in _TRIMMABLE_KEYS:
        values = record.get(key)
        if isinstance(values, list) and len(values) > keep:
            trimmed[key] = values[:keep]
            trimmed["truncated"] = True
            trimmed["originalCount"] = len(values)
    return trimmed


def _trim_payload(payload: Any, keep: int) -> Any:
    if isinstance(payload, list):
        return [_trim_record(record, keep) for record in payload]
    return _trim_record(payload, keep)


def _longest_list(payload: Any) -> int:
    records = payload if isinstance(payload, list) else [payload]
    lengths = [
        len(record[key])
        for record in records
        if isinstance(record, dict)
        for key in _TRIMMABLE_KEYS
        if isinstance(record.get(key), list)
    ]
    return max(lengths, default=0)


def fit_json_response(payload: Any, max_length: int) -> str:
    """
    Serialize a payload, shortening its row lists to fit a size limit.

    The result is always a complete JSON document. Records whose row list
    was shortened carry "truncated": true and "originalCount"; the number
    and order of records never change.

    Args:
        payload: Tool response (an outcome list or a listing object)
        max_length: Maximum length in characters

    Returns:
        JSON text no longer than max_length, or an error object when even
        empty row lists do not fit
    """
    response = dumps(payload, indent=True)
    if len(response) <= max_length:
        return response

    # Largest per-list row count that still fits
    best: Optional[str] = None
    low, high = 0, _longest_list(payload) - 1
    while low <= high:
        keep = (low + high) // 2
        candidate = dumps(_trim_payload(payload, keep), indent=True)
        if len(candidate) <= max_length:
            best = candidate
            low = keep + 1
        else:
            high = keep - 1

    if best is not None:
        logger.info(
            f"Response trimmed to fit {max_length} chars ({len(response)} chars before)"
        )
        return best

    return dumps(
        {
            "error": "Response too large",
            "original_size": len(response),
            "limit": max_length,
            "message": "Response exceeds size limit. Narrow the query or use fewer items.",
        },
        indent=True,
    )


def _text(payload: Any, max_length: int) -> list[TextContent]:
    return [TextContent(type="text", text=fit_json_response(payload, max_length))]


class PostgresOperationsServer:
    """MCP server for PostgreSQL operations."""

    def __init__(
        self,
        credentials: Optional[ConnectionCredentials],
        settings: Optional[ExecutionSettings] = None,
    ):
        """
        Initialize the server.

        Args:
            credentials: Connection parameters (None until configured)
            settings: Default execution settings
        """
        self.credentials = credentials
        self.settings = settings or ExecutionSettings()
        self.server = Server("pg-ops-mcp")

    def list_tools(self) -> list[Tool]:
        return [
            self._create_execute_operation_tool(),
            self._create_list_tables_tool(),
            self._create_list_columns_tool(),
            self._create_test_connection_tool(),
        ]

    def _create_execute_operation_tool(self) -> Tool:
        """Create execute_operation tool."""
        return Tool(
            name="execute_operation",
            description=(
                "Run a parameterized PostgreSQL operation (executeQuery, select, insert, "
                "update, delete) once per item. Values are bound as $1..$N parameters; "
                "table, columns, where and orderBy are inserted into the SQL as written."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "operation": {
                        "type": "string",
                        "enum": [op.value for op in OperationType],
                        "description": "Operation to perform",
                    },
                    "query": {
                        "type": "string",
                        "description": "SQL text for executeQuery",
                    },
                    "queryParams": {
                        "type": "string",
                        "description": "Comma-separated parameters for executeQuery",
                    },
                    "table": {"type": "string", "description": "Table name"},
                    "columns": {
                        "type": "string",
                        "description": "Columns to select (comma-separated or *)",
                        "default": "*",
                    },
                    "where": {
                        "type": "string",
                        "description": "WHERE clause without the keyword, e.g. id = $1",
                    },
                    "whereParams": {
                        "type": "string",
                        "description": "Comma-separated WHERE parameters, e.g. 123,active",
                    },
                    "orderBy": {
                        "type": "string",
                        "description": "ORDER BY clause, e.g. created_at DESC",
                    },
                    "returnAll": {
                        "type": "boolean",
                        "description": "Return all rows (select)",
                        "default": True,
                    },
                    "limit": {
                        "type": "integer",
                        "description": "Maximum rows when returnAll is false",
                        "default": 50,
                    },
                    "columnsMap": {
                        "type": "object",
                        "description": "Column/value pairs for insert and update",
                    },
                    "returnFields": {
                        "type": "string",
                        "description": "RETURNING fields for insert and update",
                        "default": "*",
                    },
                    "items": {
                        "type": "array",
                        "items": {"type": "object"},
                        "description": "Per-item parameter overrides; one run per item",
                    },
                    "continueOnFail": {
                        "type": "boolean",
                        "description": "Record item errors and continue instead of stopping",
                    },
                },
                "required": ["operation"],
            },
        )

    def _create_list_tables_tool(self) -> Tool:
        """Create list_tables tool."""
        return Tool(
            name="list_tables",
            description="List base tables in a schema",
            inputSchema={
                "type": "object",
                "properties": {
                    "schema": {
                        "type": "string",
                        "description": "Schema name (default: public)",
                    },
                },
                "required": [],
            },
        )

    def _create_list_columns_tool(self) -> Tool:
        """Create list_columns tool."""
        return Tool(
            name="list_columns",
            description="List a table's columns with type, nullability and default",
            inputSchema={
                "type": "object",
                "properties": {
                    "table": {"type": "string", "description": "Table name"},
                    "schema": {
                        "type": "string",
                        "description": "Schema name (default: public)",
                    },
                },
                "required": ["table"],
            },
        )

    def _create_test_connection_tool(self) -> Tool:
        """Create test_connection tool."""
        return Tool(
            name="test_connection",
            description="Check that the configured PostgreSQL server is reachable",
            inputSchema={"type": "object", "properties": {}, "required": []},
        )

    # Tool handlers
    async def handle_execute_operation(
        self, arguments: dict[str, Any]
    ) -> list[TextContent]:
        """Handle execute_operation request."""
        settings = self.settings
        if "continueOnFail" in arguments:
            settings = settings.model_copy(
                update={"continue_on_fail": bool(arguments["continueOnFail"])}
            )

        config = resolve_config(self.credentials, settings)
        processor = BatchProcessor(config, continue_on_fail=settings.continue_on_fail)

        base = {k: arguments[k] for k in _OPERATION_PARAMETERS if k in arguments}
        outcomes = await processor.run(
            arguments["operation"], arguments.get("items") or [], base
        )

        return _text(
            [outcome.to_output() for outcome in outcomes],
            MAX_RESPONSE_EXECUTE_OPERATION,
        )

    async def handle_list_tables(self, arguments: dict[str, Any]) -> list[TextContent]:
        """Handle list_tables request."""
        inspector = SchemaInspector(
            self.credentials, self.settings, schema=arguments.get("schema") or "public"
        )
        listing = await inspector.list_tables()

        payload = {
            "tables": [
                {"name": t.name, "value": t.name, "description": t.description}
                for t in listing.tables
            ],
            "diagnostic": listing.diagnostic,
        }
        return _text(payload, MAX_RESPONSE_LIST_TABLES)

    async def handle_list_columns(self, arguments: dict[str, Any]) -> list[TextContent]:
        """Handle list_columns request."""
        inspector = SchemaInspector(
            self.credentials, self.settings, schema=arguments.get("schema") or "public"
        )
        listing = await inspector.list_columns(arguments.get("table"))

        payload = {
            "table": listing.table,
            "columns": [
                {**column.model_dump(), "description": column.description}
                for column in listing.columns
            ],
            "diagnostic": listing.diagnostic,
        }
        return _text(payload, MAX_RESPONSE_LIST_COLUMNS)

    async def handle_test_connection(
        self, arguments: dict[str, Any]
    ) -> list[TextContent]:
        """Handle test_connection request."""
        if self.credentials is None:
            raise CredentialError("No PostgreSQL credentials configured")

        credentials = self.credentials
        if self.settings.ssl is not None:
            credentials = credentials.model_copy(update={"ssl": self.settings.ssl})

        result = await check_connectivity(credentials)
        return _text(result.model_dump(), MAX_RESPONSE_TEST_CONNECTION)

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> list[TextContent]:
        """Dispatch a tool call to its handler."""
        handlers = {
            "execute_operation": self.handle_execute_operation,
            "list_tables": self.handle_list_tables,
            "list_columns": self.handle_list_columns,
            "test_connection": self.handle_test_connection,
        }

        handler = handlers.get(name)
        if handler is None:
            raise ValueError(f"Unknown tool: {name}")

        return await handler(arguments)


async def main() -> None:
    """Main entry point for the MCP server."""
    credentials = ConnectionCredentials.from_env()
    if credentials is None:
        raise ValueError("DATABASE_URL or PGHOST environment variable must be set")

    ops_server = PostgresOperationsServer(credentials, ExecutionSettings.from_env())

    @ops_server.server.list_tools()
    async def list_tools() -> list[Tool]:
        """List available tools."""
        return ops_server.list_tools()

    @ops_server.server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
        """Handle tool calls."""
        return await ops_server.call_tool(name, arguments)

    logger.info(f"Starting pg-ops-mcp for {credentials.address}")

    from mcp.server.stdio import stdio_server

    async with stdio_server() as (read_stream, write_stream):
        await ops_server.server.run(
            read_stream,
            write_stream,
            ops_server.server.create_initialization_options(),
        )


def cli_entry() -> None:
    """
    Synchronous entry point for console script.

    This function is called by the 'pg-ops-mcp' console script.
    """
    # Windows-specific event loop policy
    if os.name == "nt":
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())  # type: ignore[attr-defined]

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except Exception as e:
        logger.error(f"Server error: {e}", exc_info=True)
        raise


if __name__ == "__main__":
    cli_entry()
