"""
pg_ops_mcp - PostgreSQL operations MCP server

Builds parameterized SQL for select, insert, update, delete and raw queries,
runs them in sequential batches with continue-on-fail handling, and exposes
live table/column discovery.
"""

__version__ = "1.0.0"

from .errors import (
    ConfigurationError,
    CredentialError,
    PgOpsError,
    QueryError,
    ValidationError,
)
from .models.config import ConnectionCredentials, EffectiveConfig, ExecutionSettings
from .models.operations import OperationType
from .models.query import BatchItemOutcome, BuiltStatement, ExecutionResult

__all__ = [
    "PgOpsError",
    "ValidationError",
    "CredentialError",
    "QueryError",
    "ConfigurationError",
    "ConnectionCredentials",
    "ExecutionSettings",
    "EffectiveConfig",
    "OperationType",
    "BuiltStatement",
    "ExecutionResult",
    "BatchItemOutcome",
]
