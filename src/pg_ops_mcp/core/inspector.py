"""Live catalog introspection for table and column pickers."""

import logging
from typing import Optional

from pg_ops_mcp.core.connection import DatabaseConnection
from pg_ops_mcp.errors import CredentialError
from pg_ops_mcp.models.config import (
    ConnectionCredentials,
    EffectiveConfig,
    ExecutionSettings,
    resolve_config,
)
from pg_ops_mcp.models.table import ColumnListing, ColumnMeta, TableListing, TableSummary

logger = logging.getLogger(__name__)

INTROSPECTION_TIMEOUT_MS = 5000

TABLES_QUERY = """
    SELECT table_name
    FROM information_schema.tables
    WHERE table_schema = $1
      AND table_type = 'BASE TABLE'
    ORDER BY table_name
"""

COLUMNS_QUERY = """
    SELECT
        column_name,
        data_type,
        is_nullable,
        column_default,
        character_maximum_length,
        numeric_precision,
        numeric_scale
    FROM information_schema.columns
    WHERE table_schema = $1
      AND table_name = $2
    ORDER BY ordinal_position
"""


class SchemaInspector:
    """Best-effort table and column discovery.

    Every call opens its own single-connection pool, runs one read-only
    catalog query and disposes the pool. Nothing is cached. Failures come
    back as an empty listing with a diagnostic; nothing is raised.
    """

    def __init__(
        self,
        credentials: Optional[ConnectionCredentials],
        settings: Optional[ExecutionSettings] = None,
        *,
        schema: str = "public",
        connection_factory=DatabaseConnection,
    ):
        """
        Initialize schema inspector.

        Args:
            credentials: Connection parameters, may be None when not selected yet
            settings: Optional settings (timeout and SSL overrides)
            schema: Schema to inspect
            connection_factory: Creates the pool owner for each call
        """
        self.credentials = credentials
        self.settings = settings
        self.schema = schema
        self.connection_factory = connection_factory

    def _config(self) -> EffectiveConfig:
        return resolve_config(
            self.credentials,
            self.settings,
            default_timeout_ms=INTROSPECTION_TIMEOUT_MS,
            pool_max=1,
        )

    async def list_tables(self) -> TableListing:
        """
        List base tables in the inspected schema, ordered by name.

        Returns:
            Tables, or an empty listing with a diagnostic
        """
        try:
            config = self._config()
        except CredentialError as e:
            return TableListing(diagnostic=f"No credentials selected: {e}")

        try:
            async with self.connection_factory(config) as db:
                async with db.get_connection() as conn:
                    result = await conn.exec_driver_sql(TABLES_QUERY, (self.schema,))
                    rows = result.fetchall()
        except Exception as e:
            logger.warning(f"Failed to load tables from {config.sanitized_url}: {e}")
            return TableListing(diagnostic=f"Error loading tables: {e}")

        return TableListing(
            tables=[TableSummary(name=row[0], schema=self.schema) for row in rows]
        )

    async def list_columns(self, table: Optional[str]) -> ColumnListing:
        """
        List the columns of a table in ordinal order.

        Args:
            table: Table name; empty or None returns an empty listing without
                connecting

        Returns:
            Columns, or an empty listing with a diagnostic
        """
        if not table:
            return ColumnListing(table=table)

        try:
            config = self._config()
        except CredentialError as e:
            return ColumnListing(table=table, diagnostic=f"No credentials selected: {e}")

        try:
            async with self.connection_factory(config) as db:
                async with db.get_connection() as conn:
                    result = await conn.exec_driver_sql(
                        COLUMNS_QUERY, (self.schema, table)
                    )
                    rows = result.fetchall()
        except Exception as e:
            logger.warning(f"Failed to load columns for {self.schema}.{table}: {e}")
            return ColumnListing(table=table, diagnostic=f"Error loading columns: {e}")

        return ColumnListing(table=table, columns=[self._column_from_row(row) for row in rows])

    def _column_from_row(self, row) -> ColumnMeta:
        """Convert an information_schema.columns row to ColumnMeta."""
        return ColumnMeta(
            column_name=row[0],
            data_type=row[1],
            nullable=row[2] == "YES",
            default_expr=row[3],
            max_length=row[4],
            precision=row[5],
            scale=row[6],
        )
