"""Pydantic models for dialect operations, metadata and dump results."""

from .capabilities import DialectCapabilities
from .config import DatabaseConfig, DumpSettings
from .dump import (
    DumpFailure,
    DumpObject,
    DumpResult,
    DumpSelection,
    DumpStatus,
    DumpTarget,
    WriteResult,
    default_dump_name,
)
from .operations import (
    AddColumn,
    BuildPageQuery,
    ColumnDefinition,
    CountRows,
    CreateIndex,
    DialectOperation,
    DropIndex,
    DropTable,
    ListObjects,
    MaxPrimaryKey,
    SelectRows,
    ObjectKind,
    ShowColumns,
    ShowIndex,
    ShowObjectSource,
    ShowTableSource,
    TruncateTable,
    UpdateColumn,
    UpdateTable,
    parse_operation,
)
from .table import ColumnMeta, IndexMeta, KeyRole, TableMeta

__all__ = [
    "DialectCapabilities",
    "DatabaseConfig",
    "DumpSettings",
    "DumpFailure",
    "DumpObject",
    "DumpResult",
    "DumpSelection",
    "DumpStatus",
    "DumpTarget",
    "WriteResult",
    "default_dump_name",
    "AddColumn",
    "BuildPageQuery",
    "ColumnDefinition",
    "CountRows",
    "CreateIndex",
    "DialectOperation",
    "DropIndex",
    "DropTable",
    "ListObjects",
    "MaxPrimaryKey",
    "SelectRows",
    "ObjectKind",
    "ShowColumns",
    "ShowIndex",
    "ShowObjectSource",
    "ShowTableSource",
    "TruncateTable",
    "UpdateColumn",
    "UpdateTable",
    "parse_operation",
    "ColumnMeta",
    "IndexMeta",
    "KeyRole",
    "TableMeta",
]
