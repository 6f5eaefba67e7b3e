"""Structured operation descriptors rendered to SQL by a dialect."""

from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class ObjectKind(str, Enum):
    """Kinds of schema objects the dump engine knows about."""

    TABLE = "table"
    VIEW = "view"
    PROCEDURE = "procedure"
    FUNCTION = "function"
    TRIGGER = "trigger"

    @property
    def label(self) -> str:
        return self.value.capitalize()


class _Operation(BaseModel):
    model_config = ConfigDict(frozen=True)

    schema_name: Optional[str] = Field(
        None, description="Schema/database name (None for the connection default)"
    )


class _TableOperation(_Operation):
    table: str = Field(..., description="Target table name")


class ShowColumns(_TableOperation):
    op: Literal["show_columns"] = "show_columns"


class ShowIndex(_TableOperation):
    op: Literal["show_index"] = "show_index"


class ShowTableSource(_TableOperation):
    op: Literal["show_table_source"] = "show_table_source"


class ShowObjectSource(_Operation):
    """DDL source of a view, procedure, function or trigger."""

    op: Literal["show_object_source"] = "show_object_source"
    kind: ObjectKind
    name: str


class ListObjects(_Operation):
    op: Literal["list_objects"] = "list_objects"
    kind: ObjectKind


class ColumnDefinition(BaseModel):
    """Column shape used when adding or changing a column."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Column name")
    data_type: str = Field(..., description="Declared type, e.g. varchar(255)")
    nullable: bool = Field(default=True)
    default: Optional[str] = Field(
        None, description="Default value; keywords like CURRENT_TIMESTAMP pass through"
    )
    comment: Optional[str] = None
    after: Optional[str] = Field(
        None, description="Place the column after this one (MySQL only)"
    )


class AddColumn(_TableOperation):
    op: Literal["add_column"] = "add_column"
    column: ColumnDefinition


class UpdateTable(_TableOperation):
    """Rename a table and/or change its comment."""

    op: Literal["update_table"] = "update_table"
    new_table_name: Optional[str] = None
    comment: Optional[str] = Field(None, description="Current comment")
    new_comment: Optional[str] = None


class UpdateColumn(_TableOperation):
    """
    Change an existing column.

    Fields left as None keep their current value.
    """

    op: Literal["update_column"] = "update_column"
    column_name: str
    new_column_name: Optional[str] = None
    data_type: Optional[str] = None
    nullable: Optional[bool] = None
    default: Optional[str] = None
    comment: Optional[str] = None


class CreateIndex(_TableOperation):
    op: Literal["create_index"] = "create_index"
    columns: tuple[str, ...] = Field(..., min_length=1)
    index_name: Optional[str] = Field(
        None, description="Defaults to idx_<table>_<columns>"
    )
    unique: bool = False
    index_type: Optional[str] = Field(
        None, description="btree, hash or fulltext where the dialect supports it"
    )


class DropIndex(_TableOperation):
    op: Literal["drop_index"] = "drop_index"
    index_name: str


class BuildPageQuery(_TableOperation):
    """Bounded SELECT over a table."""

    op: Literal["build_page_query"] = "build_page_query"
    page_size: Optional[int] = Field(
        None, gt=0, description="Row limit (dialect default when omitted)"
    )
    offset: Optional[int] = Field(None, ge=0)
    order_by: tuple[str, ...] = Field(
        default=(), description="Columns giving a deterministic row order"
    )


class SelectRows(_TableOperation):
    """Unbounded SELECT over a table, read through a streaming cursor."""

    op: Literal["select_rows"] = "select_rows"
    order_by: tuple[str, ...] = Field(
        default=(), description="Columns giving a deterministic row order"
    )


class DropTable(_TableOperation):
    op: Literal["drop_table"] = "drop_table"
    if_exists: bool = False


class TruncateTable(_TableOperation):
    op: Literal["truncate_table"] = "truncate_table"


class MaxPrimaryKey(_TableOperation):
    op: Literal["max_primary_key"] = "max_primary_key"
    column: str


class CountRows(_TableOperation):
    op: Literal["count_rows"] = "count_rows"


DialectOperation = Annotated[
    Union[
        ShowColumns,
        ShowIndex,
        ShowTableSource,
        ShowObjectSource,
        ListObjects,
        AddColumn,
        UpdateTable,
        UpdateColumn,
        CreateIndex,
        DropIndex,
        BuildPageQuery,
        SelectRows,
        DropTable,
        TruncateTable,
        MaxPrimaryKey,
        CountRows,
    ],
    Field(discriminator="op"),
]

operation_adapter: TypeAdapter[DialectOperation] = TypeAdapter(DialectOperation)


def parse_operation(data: dict) -> DialectOperation:
    """Validate a tagged operation dict such as ``{"op": "show_columns", ...}``."""
    return operation_adapter.validate_python(data)
