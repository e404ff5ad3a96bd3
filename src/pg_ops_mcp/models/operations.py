"""Operation descriptors: the closed set of actions the batch can perform."""

from enum import Enum
from typing import Annotated, Any, Literal, Mapping, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from pg_ops_mcp.errors import ConfigurationError, ValidationError

# A column map arrives either as a mapping or as a JSON object string
ColumnValueMap = Union[dict[str, Any], str, None]


class OperationType(str, Enum):
    """Operation tags accepted by the batch processor."""

    EXECUTE_QUERY = "executeQuery"
    SELECT = "select"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class _Descriptor(BaseModel):
    model_config = {"frozen": True, "extra": "ignore", "populate_by_name": True}


class ExecuteQuery(_Descriptor):
    """Run exactly this SQL text."""

    operation: Literal["executeQuery"] = "executeQuery"
    query: str = Field(..., description="SQL text, executed verbatim")
    query_params: Optional[str] = Field(
        default="",
        alias="queryParams",
        description="Comma-separated positional parameters ($1, $2, ...)",
    )


class Select(_Descriptor):
    operation: Literal["select"] = "select"
    table: str
    columns: Optional[str] = Field(default="*", description="Columns or *")
    where: Optional[str] = Field(
        default="", description="WHERE clause without the keyword"
    )
    where_params: Optional[str] = Field(default="", alias="whereParams")
    order_by: Optional[str] = Field(default="", alias="orderBy")
    return_all: bool = Field(default=True, alias="returnAll")
    limit: Any = Field(default=50, description="Row limit when return_all is false")


class Insert(_Descriptor):
    operation: Literal["insert"] = "insert"
    table: str
    columns_map: ColumnValueMap = Field(default=None, alias="columnsMap")
    return_fields: Optional[str] = Field(default="*", alias="returnFields")


class Update(_Descriptor):
    """Update rows; where must be non-empty and use absolute placeholder positions."""

    operation: Literal["update"] = "update"
    table: str
    columns_map: ColumnValueMap = Field(default=None, alias="columnsMap")
    where: Optional[str] = ""
    where_params: Optional[str] = Field(default="", alias="whereParams")
    return_fields: Optional[str] = Field(default="*", alias="returnFields")


class Delete(_Descriptor):
    operation: Literal["delete"] = "delete"
    table: str
    where: Optional[str] = ""
    where_params: Optional[str] = Field(default="", alias="whereParams")


OperationDescriptor = Annotated[
    Union[ExecuteQuery, Select, Insert, Update, Delete],
    Field(discriminator="operation"),
]

_descriptor_adapter: TypeAdapter[OperationDescriptor] = TypeAdapter(
    OperationDescriptor
)


def parse_operation(operation: Union[str, OperationType]) -> OperationType:
    """
    Resolve an operation tag.

    Raises:
        ConfigurationError: If the tag is not one of the known operations
    """
    if isinstance(operation, OperationType):
        return operation
    try:
        return OperationType(operation)
    except ValueError:
        known = ", ".join(op.value for op in OperationType)
        raise ConfigurationError(
            f"Unknown operation: {operation}. Supported operations: {known}"
        ) from None


def descriptor_from_params(
    operation: Union[str, OperationType], params: Mapping[str, Any]
) -> OperationDescriptor:
    """
    Build a typed descriptor from loosely-typed parameter values.

    Args:
        operation: Operation tag
        params: Parameter values, snake_case or camelCase keys

    Returns:
        The matching descriptor variant

    Raises:
        ConfigurationError: If the operation tag is unknown
        ValidationError: If required fields are missing or mistyped
    """
    op = parse_operation(operation)
    data = {key: value for key, value in params.items() if key != "operation"}
    data["operation"] = op.value

    try:
        return _descriptor_adapter.validate_python(data)
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'][1:]) or 'input'}: {err['msg']}"
            for err in e.errors()
        )
        raise ValidationError(f"Invalid {op.value} parameters: {problems}") from e
