"""Core statement building, execution and introspection components."""

from pg_ops_mcp.core.batch import BatchProcessor, BatchState, merge_item_parameters
from pg_ops_mcp.core.builder import build_statement, split_params
from pg_ops_mcp.core.connection import DatabaseConnection, check_connectivity
from pg_ops_mcp.core.executor import QueryExecutor, shape_result
from pg_ops_mcp.core.inspector import SchemaInspector

__all__ = [
    "BatchProcessor",
    "BatchState",
    "merge_item_parameters",
    "build_statement",
    "split_params",
    "DatabaseConnection",
    "check_connectivity",
    "QueryExecutor",
    "shape_result",
    "SchemaInspector",
]
