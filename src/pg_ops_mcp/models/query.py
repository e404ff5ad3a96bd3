"""Statement, execution result and batch outcome models."""

from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator
from pydantic.alias_generators import to_camel

from pg_ops_mcp.errors import PgOpsError


class BuiltStatement(BaseModel):
    """Parameterized SQL text plus its ordered argument list."""

    sql: str = Field(..., description="SQL text with $1..$N placeholders")
    params: tuple[Any, ...] = Field(
        default=(), description="Positional parameters, $1 first"
    )

    model_config = {"frozen": True}

    @property
    def param_count(self) -> int:
        return len(self.params)


class FieldInfo(BaseModel):
    """Result column name and PostgreSQL type OID."""

    name: str
    type_id: Optional[int] = None

    model_config = {"alias_generator": to_camel, "populate_by_name": True}


class ExecutionResult(BaseModel):
    """Driver result normalized into one shape."""

    rows: list[dict[str, Any]] = Field(default_factory=list)
    row_count: int = Field(default=0, description="Rows returned or affected")
    command: Optional[str] = Field(
        None,
        description=(
            "Command keyword read from the SQL text, e.g. SELECT; not the server's "
            "status tag, so COPY or multi-statement text may be reported by its "
            "first keyword"
        ),
    )
    fields: Optional[list[FieldInfo]] = None

    model_config = {"alias_generator": to_camel, "populate_by_name": True}

    @property
    def is_empty(self) -> bool:
        return not self.rows

    @property
    def first_row(self) -> Optional[dict[str, Any]]:
        return self.rows[0] if self.rows else None


class ErrorInfo(BaseModel):
    message: str
    details: str
    code: Optional[str] = None

    @classmethod
    def from_exception(cls, exc: Exception) -> "ErrorInfo":
        if isinstance(exc, PgOpsError):
            details = exc.details
        else:
            details = f"{type(exc).__name__}: {exc}"
        return cls(message=str(exc), details=details, code=getattr(exc, "code", None))


class BatchItemOutcome(BaseModel):
    """Result of one batch item: data on success, error otherwise."""

    index: int = Field(..., ge=0, description="Position of the item in the input")
    success: bool
    data: Optional[dict[str, Any]] = None
    error: Optional[ErrorInfo] = None

    @model_validator(mode="after")
    def check_data_or_error(self) -> "BatchItemOutcome":
        """A successful outcome has no error; a failed one has error details."""
        if self.success and self.error is not None:
            raise ValueError("A successful outcome cannot carry an error")
        if not self.success and (self.error is None or self.data is not None):
            raise ValueError("A failed outcome needs error details and no data")
        return self

    @classmethod
    def ok(cls, index: int, data: dict[str, Any]) -> "BatchItemOutcome":
        return cls(index=index, success=True, data=data)

    @classmethod
    def failed(cls, index: int, exc: Exception) -> "BatchItemOutcome":
        return cls(index=index, success=False, error=ErrorInfo.from_exception(exc))

    def to_output(self) -> dict[str, Any]:
        """Caller-facing record: the data itself, or an error object."""
        if self.success:
            return dict(self.data or {})
        output: dict[str, Any] = {
            "error": True,
            "errorMessage": self.error.message,
            "errorDetails": self.error.details,
        }
        if self.error.code:
            output["errorCode"] = self.error.code
        return output
