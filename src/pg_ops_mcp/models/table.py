"""Table and column metadata models used for capability discovery."""

import warnings
from typing import Optional

from pydantic import BaseModel, Field

# Suppress the specific warning about field 'schema' shadowing
warnings.filterwarnings(
    "ignore",
    message='Field name "schema" in "TableSummary" shadows an attribute in parent',
    category=UserWarning,
)


class TableSummary(BaseModel):
    """A base table visible to the configured user."""

    name: str = Field(..., description="Table name")
    schema: str = Field(default="public", description="Schema name")

    @property
    def description(self) -> str:
        return f"Table: {self.name}"


class ColumnMeta(BaseModel):
    """Catalog metadata for one column."""

    column_name: str = Field(..., description="Column name")
    data_type: str = Field(..., description="Column data type")
    nullable: bool = Field(..., description="Whether column allows NULL")
    default_expr: Optional[str] = Field(None, description="Default value expression")
    max_length: Optional[int] = Field(
        None, description="Maximum length for string types"
    )
    precision: Optional[int] = Field(None, description="Precision for numeric types")
    scale: Optional[int] = Field(None, description="Scale for numeric types")

    @property
    def description(self) -> str:
        """Picker label, e.g. 'character varying (255) nullable default: ...'."""
        parts = [self.data_type]
        if self.max_length:
            parts.append(f"({self.max_length})")
        elif self.precision:
            scale = f",{self.scale}" if self.scale else ""
            parts.append(f"({self.precision}{scale})")
        if self.nullable:
            parts.append("nullable")
        if self.default_expr:
            parts.append(f"default: {self.default_expr}")
        return " ".join(parts)


class TableListing(BaseModel):
    """Tables found, or an empty list with the reason discovery failed."""

    tables: list[TableSummary] = Field(default_factory=list)
    diagnostic: Optional[str] = Field(None, description="Why discovery failed")

    @property
    def ok(self) -> bool:
        return self.diagnostic is None

    def __len__(self) -> int:
        return len(self.tables)


class ColumnListing(BaseModel):
    """Columns of one table, or an empty list with a diagnostic."""

    table: Optional[str] = None
    columns: list[ColumnMeta] = Field(default_factory=list)
    diagnostic: Optional[str] = Field(None, description="Why discovery failed")

    @property
    def ok(self) -> bool:
        return self.diagnostic is None

    def __len__(self) -> int:
        return len(self.columns)
