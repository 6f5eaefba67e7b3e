"""Table, column, and index metadata snapshots."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class KeyRole(str, Enum):
    """Role a column plays in the table's keys."""

    NONE = "none"
    PRIMARY = "primary"
    UNIQUE = "unique"
    INDEX = "index"

    @classmethod
    def from_mysql(cls, value: Optional[str]) -> "KeyRole":
        """Map information_schema COLUMN_KEY values (PRI/UNI/MUL)."""
        return {
            "PRI": cls.PRIMARY,
            "UNI": cls.UNIQUE,
            "MUL": cls.INDEX,
        }.get((value or "").upper(), cls.NONE)


class ColumnMeta(BaseModel):
    """Information about a table column."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Column name")
    data_type: str = Field(..., description="Declared column type")
    nullable: bool = Field(default=True, description="Whether column allows NULL")
    key: KeyRole = Field(default=KeyRole.NONE, description="Key role of the column")
    default: Optional[str] = Field(None, description="Default value expression")
    ordinal_position: int = Field(..., ge=1, description="1-based physical position")
    comment: Optional[str] = Field(None, description="Column comment/description")
    extra: Optional[str] = Field(
        None, description="Dialect extras such as auto_increment"
    )

    @property
    def is_primary_key(self) -> bool:
        return self.key is KeyRole.PRIMARY


class IndexMeta(BaseModel):
    """Information about a table index."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Index name")
    table: str = Field(..., description="Owning table")
    columns: tuple[str, ...] = Field(..., description="Indexed column names in order")
    unique: bool = Field(default=False, description="Whether index enforces uniqueness")
    primary: bool = Field(
        default=False, description="Whether this is the primary key index"
    )
    index_type: Optional[str] = Field(
        None, description="Index type (btree, hash, fulltext, etc.)"
    )


class TableMeta(BaseModel):
    """Snapshot of a table and, when described, its ordered columns."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Table name")
    comment: Optional[str] = Field(None, description="Table comment/description")
    row_count: Optional[int] = Field(None, description="Approximate row count")
    data_length: Optional[int] = Field(None, description="Data size in bytes")
    auto_increment: Optional[int] = Field(
        None, description="Next AUTO_INCREMENT value"
    )
    row_format: Optional[str] = Field(None, description="Storage row format")
    columns: tuple[ColumnMeta, ...] = Field(
        default=(), description="Columns in physical order"
    )

    @model_validator(mode="after")
    def _check_ordinals(self) -> "TableMeta":
        positions = [column.ordinal_position for column in self.columns]
        if positions != list(range(1, len(positions) + 1)):
            raise ValueError(
                f"Column ordinal positions for {self.name} must be contiguous "
                f"and start at 1, got {positions}"
            )
        return self

    @property
    def primary_key_columns(self) -> list[str]:
        """Get primary key column names."""
        return [col.name for col in self.columns if col.is_primary_key]

    @property
    def column_names(self) -> list[str]:
        return [col.name for col in self.columns]

    def get_column(self, name: str) -> Optional[ColumnMeta]:
        """Get column by name."""
        for col in self.columns:
            if col.name == name:
                return col
        return None

    def with_columns(self, columns: list[ColumnMeta]) -> "TableMeta":
        """Return a new snapshot carrying the given columns."""
        return TableMeta(**{**dict(self), "columns": tuple(columns)})
