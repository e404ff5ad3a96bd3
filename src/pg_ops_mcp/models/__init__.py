"""Pydantic models for configuration, operations, results and metadata."""

from .config import (
    ConnectionCredentials,
    EffectiveConfig,
    ExecutionSettings,
    resolve_config,
)
from .health import ConnectionTestResult
from .operations import (
    Delete,
    ExecuteQuery,
    Insert,
    OperationDescriptor,
    OperationType,
    Select,
    Update,
    descriptor_from_params,
    parse_operation,
)
from .query import (
    BatchItemOutcome,
    BuiltStatement,
    ErrorInfo,
    ExecutionResult,
    FieldInfo,
)
from .table import ColumnListing, ColumnMeta, TableListing, TableSummary

__all__ = [
    "ConnectionCredentials",
    "ExecutionSettings",
    "EffectiveConfig",
    "resolve_config",
    "ConnectionTestResult",
    "OperationType",
    "OperationDescriptor",
    "ExecuteQuery",
    "Select",
    "Insert",
    "Update",
    "Delete",
    "descriptor_from_params",
    "parse_operation",
    "BuiltStatement",
    "ExecutionResult",
    "FieldInfo",
    "ErrorInfo",
    "BatchItemOutcome",
    "TableSummary",
    "ColumnMeta",
    "TableListing",
    "ColumnListing",
]
