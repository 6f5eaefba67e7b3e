"""Base dialect defining how logical operations become SQL text."""

import datetime
import decimal
import math
import re
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from db_dump_mcp.dialects.quoting import IdentifierQuoter, StringEscaper
from db_dump_mcp.errors import UnsupportedOperation
from db_dump_mcp.models.capabilities import DialectCapabilities
from db_dump_mcp.models.operations import (
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
    ObjectKind,
    SelectRows,
    ShowColumns,
    ShowIndex,
    ShowObjectSource,
    ShowTableSource,
    TruncateTable,
    UpdateColumn,
    UpdateTable,
)
from db_dump_mcp.models.table import ColumnMeta, IndexMeta, KeyRole, TableMeta
from db_dump_mcp.utils import dumps

Row = dict[str, Any]

DEFAULT_KEYWORDS = {
    "NULL",
    "TRUE",
    "FALSE",
    "CURRENT_TIMESTAMP",
    "CURRENT_DATE",
    "CURRENT_TIME",
    "LOCALTIME",
    "LOCALTIMESTAMP",
}
_NUMBER_RE = re.compile(r"[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?")


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().upper() in {"YES", "Y", "TRUE", "T", "1"}
    return bool(value)


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


class BaseDialect(ABC):
    """
    One database family's SQL rendering rules.

    ``render`` is total over the operation tags: a dialect either returns SQL
    text for an operation or raises ``UnsupportedOperation``. Nothing here
    performs I/O; the ``parse_*``/``extract_*`` helpers interpret rows produced
    by this dialect's own introspection queries.
    """

    name = "base"

    def __init__(self, default_page_size: int = 100):
        """
        Args:
            default_page_size: Row limit for page queries without a page size
        """
        if default_page_size < 1:
            raise ValueError("default_page_size must be a positive integer")
        self.default_page_size = default_page_size
        self._renderers: dict[str, Callable[[Any], str]] = {
            "show_columns": self.render_show_columns,
            "show_index": self.render_show_index,
            "show_table_source": self.render_show_table_source,
            "show_object_source": self.render_show_object_source,
            "list_objects": self.render_list_objects,
            "add_column": self.render_add_column,
            "update_table": self.render_update_table,
            "update_column": self.render_update_column,
            "create_index": self.render_create_index,
            "drop_index": self.render_drop_index,
            "build_page_query": self.render_build_page_query,
            "select_rows": self.render_select_rows,
            "drop_table": self.render_drop_table,
            "truncate_table": self.render_truncate_table,
            "max_primary_key": self.render_max_primary_key,
            "count_rows": self.render_count_rows,
        }

    @property
    @abstractmethod
    def capabilities(self) -> DialectCapabilities:
        """Get capabilities for this database family."""
        ...

    @property
    @abstractmethod
    def quoter(self) -> IdentifierQuoter:
        ...

    @property
    @abstractmethod
    def string_escaper(self) -> StringEscaper:
        ...

    def render(self, operation: DialectOperation) -> str:
        """
        Render an operation descriptor to SQL text.

        Raises:
            UnsupportedOperation: If this dialect has no rendering for it
            InvalidIdentifier: If a name cannot be quoted
        """
        renderer = self._renderers.get(operation.op)
        if renderer is None:
            raise UnsupportedOperation(self.name, operation.op)
        return renderer(operation)

    def _unsupported(self, operation: str, detail: Optional[str] = None):
        raise UnsupportedOperation(self.name, operation, detail)

    # Quoting

    def quote(self, identifier: str) -> str:
        return self.quoter.quote(identifier)

    def parse_identifier(self, quoted: str) -> str:
        return self.quoter.parse(quoted)

    def _schema_part(self, schema: Optional[str]) -> Optional[str]:
        return schema

    def qualify(self, schema: Optional[str], name: str) -> str:
        """Schema-qualified, quoted object reference."""
        return self.quoter.qualify(self._schema_part(schema), name)

    def escape_literal(self, value: Any) -> str:
        """Render a Python value as a SQL literal for this dialect."""
        if value is None:
            return "NULL"
        if isinstance(value, str):
            return self.string_escaper.escape(value)
        if isinstance(value, bool):
            return self._bool_literal(value)
        if isinstance(value, int):
            return str(int(value))
        if isinstance(value, float):
            if math.isfinite(value):
                return repr(value)
            return self._non_finite_literal(value)
        if isinstance(value, decimal.Decimal):
            if value.is_finite():
                return str(value)
            return self._non_finite_literal(value)
        if isinstance(value, (bytes, bytearray, memoryview)):
            return self._bytes_literal(bytes(value))
        if isinstance(value, datetime.datetime):
            return self.string_escaper.escape(value.isoformat(sep=" "))
        if isinstance(value, (datetime.date, datetime.time)):
            return self.string_escaper.escape(value.isoformat())
        if isinstance(value, datetime.timedelta):
            return self._interval_literal(value)
        if isinstance(value, (list, tuple)):
            return self._array_literal(list(value))
        if isinstance(value, dict):
            return self.string_escaper.escape(dumps(value))
        return self.string_escaper.escape(str(value))

    def _bool_literal(self, value: bool) -> str:
        return "TRUE" if value else "FALSE"

    def _non_finite_literal(self, value: Any) -> str:
        return "NULL"

    def _bytes_literal(self, value: bytes) -> str:
        return f"X'{value.hex()}'"

    def _interval_literal(self, value: datetime.timedelta) -> str:
        return self.string_escaper.escape(str(value))

    def _array_literal(self, value: list) -> str:
        return self.string_escaper.escape(dumps(value))

    def render_default(self, value: str) -> str:
        """Default clause value: keywords and numbers pass through, text is quoted."""
        stripped = value.strip()
        upper = stripped.upper()
        if upper in DEFAULT_KEYWORDS or re.fullmatch(r"CURRENT_TIMESTAMP\(\d\)", upper):
            return upper
        if _NUMBER_RE.fullmatch(stripped):
            return stripped
        return self.escape_literal(value)

    def default_index_name(self, table: str, columns: tuple[str, ...]) -> str:
        return f"idx_{table}_{'_'.join(columns)}"[:60]

    def column_definition(self, column: ColumnDefinition) -> str:
        parts = [self.quote(column.name), column.data_type]
        if not column.nullable:
            parts.append("NOT NULL")
        if column.default is not None:
            parts.append(f"DEFAULT {self.render_default(column.default)}")
        return " ".join(parts)

    # Introspection renderers

    def render_show_columns(self, op: ShowColumns) -> str:
        self._unsupported(op.op)

    def render_show_index(self, op: ShowIndex) -> str:
        self._unsupported(op.op)

    def render_show_table_source(self, op: ShowTableSource) -> str:
        self._unsupported(op.op)

    def render_show_object_source(self, op: ShowObjectSource) -> str:
        self._unsupported(op.op)

    def render_list_objects(self, op: ListObjects) -> str:
        self._unsupported(op.op)

    # Structural renderers

    def render_add_column(self, op: AddColumn) -> str:
        if op.column.after is not None:
            self._unsupported(op.op, "column placement (AFTER)")
        if op.column.comment is not None and not self.capabilities.comments:
            self._unsupported(op.op, "column comments")
        return (
            f"ALTER TABLE {self.qualify(op.schema_name, op.table)} "
            f"ADD COLUMN {self.column_definition(op.column)}"
        )

    def render_update_table(self, op: UpdateTable) -> str:
        self._unsupported(op.op)

    def render_update_column(self, op: UpdateColumn) -> str:
        self._unsupported(op.op)

    def render_create_index(self, op: CreateIndex) -> str:
        index_type = (op.index_type or "").lower()
        if index_type and index_type != "btree":
            self._unsupported(op.op, f"{index_type} indexes")
        name = op.index_name or self.default_index_name(op.table, op.columns)
        unique = "UNIQUE " if op.unique else ""
        columns = ", ".join(self.quote(column) for column in op.columns)
        return (
            f"CREATE {unique}INDEX {self.quote(name)} "
            f"ON {self.qualify(op.schema_name, op.table)} ({columns})"
        )

    def render_drop_index(self, op: DropIndex) -> str:
        return f"DROP INDEX {self.qualify(op.schema_name, op.index_name)}"

    def render_drop_table(self, op: DropTable) -> str:
        if_exists = "IF EXISTS " if op.if_exists else ""
        return f"DROP TABLE {if_exists}{self.qualify(op.schema_name, op.table)}"

    def render_truncate_table(self, op: TruncateTable) -> str:
        return f"TRUNCATE TABLE {self.qualify(op.schema_name, op.table)}"

    # Query renderers

    def render_build_page_query(self, op: BuildPageQuery) -> str:
        page_size = op.page_size or self.default_page_size
        sql = f"SELECT * FROM {self.qualify(op.schema_name, op.table)}"
        if op.order_by:
            sql += " ORDER BY " + ", ".join(self.quote(col) for col in op.order_by)
        sql += f" LIMIT {page_size}"
        if op.offset:
            sql += f" OFFSET {op.offset}"
        return sql

    def render_select_rows(self, op: SelectRows) -> str:
        sql = f"SELECT * FROM {self.qualify(op.schema_name, op.table)}"
        if op.order_by:
            sql += " ORDER BY " + ", ".join(self.quote(col) for col in op.order_by)
        return sql

    def render_max_primary_key(self, op: MaxPrimaryKey) -> str:
        return (
            f"SELECT MAX({self.quote(op.column)}) AS max_value "
            f"FROM {self.qualify(op.schema_name, op.table)}"
        )

    def render_count_rows(self, op: CountRows) -> str:
        return (
            f"SELECT COUNT(*) AS row_count "
            f"FROM {self.qualify(op.schema_name, op.table)}"
        )

    # Row interpretation

    def parse_columns(self, rows: list[Row]) -> list[ColumnMeta]:
        """Turn ShowColumns rows into ordered column metadata."""
        columns = []
        for position, row in enumerate(rows, start=1):
            default = row.get("default_value")
            columns.append(
                ColumnMeta(
                    name=row["name"],
                    data_type=str(row["type"]),
                    nullable=_truthy(row.get("nullable", True)),
                    key=self._key_role(row.get("key_role")),
                    default=None if default is None else str(default),
                    # Catalogs can leave gaps after dropped columns
                    ordinal_position=position,
                    comment=row.get("comment") or None,
                    extra=row.get("extra") or None,
                )
            )
        return columns

    def _key_role(self, value: Any) -> KeyRole:
        if not value:
            return KeyRole.NONE
        try:
            return KeyRole(str(value).lower())
        except ValueError:
            return KeyRole.from_mysql(str(value))

    def parse_indexes(self, table: str, rows: list[Row]) -> list[IndexMeta]:
        """Group ShowIndex rows (one per indexed column) into indexes."""
        grouped: dict[str, dict[str, Any]] = {}
        for row in rows:
            name = row["index_name"]
            entry = grouped.setdefault(
                name,
                {
                    "columns": [],
                    "unique": _truthy(row.get("is_unique")),
                    "primary": _truthy(row.get("is_primary")),
                    "index_type": row.get("index_type"),
                },
            )
            entry["columns"].append(row["column_name"])

        return [
            IndexMeta(
                name=name,
                table=table,
                columns=tuple(entry["columns"]),
                unique=entry["unique"] or entry["primary"],
                primary=entry["primary"],
                index_type=(entry["index_type"] or None)
                and str(entry["index_type"]).lower(),
            )
            for name, entry in grouped.items()
        ]

    def parse_tables(self, rows: list[Row]) -> list[TableMeta]:
        """Turn ListObjects(TABLE) rows into table snapshots."""
        return [
            TableMeta(
                name=row["name"],
                comment=row.get("comment") or None,
                row_count=_optional_int(row.get("row_count")),
                data_length=_optional_int(row.get("data_length")),
                auto_increment=_optional_int(row.get("auto_increment")),
                row_format=row.get("row_format") or None,
            )
            for row in rows
        ]

    def parse_names(self, rows: list[Row]) -> list[str]:
        return [row["name"] for row in rows]

    def extract_table_source(self, rows: list[Row]) -> Optional[str]:
        """CREATE TABLE text from ShowTableSource rows, None if absent."""
        self._unsupported("show_table_source")

    def extract_object_source(
        self, kind: ObjectKind, name: str, rows: list[Row]
    ) -> Optional[str]:
        """DDL text from ShowObjectSource rows, None if absent."""
        self._unsupported("show_object_source")

    def normalize_source(self, source: str) -> str:
        return source

    def parse_scalar(self, rows: list[Row], column: str) -> Any:
        if not rows:
            return None
        return rows[0].get(column)

    # DDL reconstruction

    def _column_clause(self, column: ColumnMeta) -> str:
        parts = [self.quote(column.name), column.data_type]
        if column.default is not None:
            parts.append(f"DEFAULT {column.default}")
        if not column.nullable:
            parts.append("NOT NULL")
        return " ".join(parts)

    def _comment_statements(self, table: TableMeta) -> list[str]:
        return []

    def build_create_table(self, table: TableMeta, indexes: list[IndexMeta]) -> str:
        """
        Rebuild CREATE TABLE (plus secondary indexes) from metadata.

        Used for dialects that cannot return native table source. Multiple
        statements are joined with ``;\\n`` and the last one is left
        unterminated.
        """
        lines = [f"    {self._column_clause(column)}" for column in table.columns]
        primary_key = table.primary_key_columns
        if primary_key:
            columns = ", ".join(self.quote(name) for name in primary_key)
            lines.append(f"    PRIMARY KEY ({columns})")

        statements = [
            f"CREATE TABLE {self.quote(table.name)} (\n" + ",\n".join(lines) + "\n)"
        ]
        for index in indexes:
            if index.primary:
                continue
            statements.append(
                self.render_create_index(
                    CreateIndex(
                        table=table.name,
                        columns=index.columns,
                        index_name=index.name,
                        unique=index.unique,
                        index_type=index.index_type,
                    )
                )
            )
        statements.extend(self._comment_statements(table))
        return ";\n".join(statements)

    # Dump framing

    def dump_header(self, schema: Optional[str], whole_schema: bool) -> list[str]:
        """Statements written before any object."""
        return []

    def dump_footer(self) -> list[str]:
        """Statements written after every object."""
        return []

    def drop_statement(self, kind: ObjectKind, name: str) -> Optional[str]:
        """DROP ... IF EXISTS for an object, or None if the dialect cannot."""
        keyword = {
            ObjectKind.TABLE: "TABLE",
            ObjectKind.VIEW: "VIEW",
            ObjectKind.PROCEDURE: "PROCEDURE",
            ObjectKind.FUNCTION: "FUNCTION",
            ObjectKind.TRIGGER: "TRIGGER",
        }[kind]
        return f"DROP {keyword} IF EXISTS {self.quote(name)};"

    def after_data_statements(self, table: TableMeta) -> list[str]:
        """Statements written after a table's rows, such as sequence resets."""
        return []

    def object_statement(self, kind: ObjectKind, ddl: str) -> str:
        """Terminate DDL text so a standard client can replay it."""
        return ddl.rstrip().rstrip(";").rstrip() + ";"

    def insert_statement(
        self, table: str, columns: list[str], rows: list[Row]
    ) -> str:
        """
        Serialize one batch of rows.

        Renders a single multi-row INSERT, or one INSERT per row when the
        dialect lacks multi-row VALUES.
        """
        target = self.quote(table)
        column_list = ", ".join(self.quote(column) for column in columns)
        values = [
            "(" + ", ".join(self.escape_literal(row[column]) for column in columns) + ")"
            for row in rows
        ]
        if self.capabilities.multi_row_insert:
            return (
                f"INSERT INTO {target} ({column_list}) VALUES\n  "
                + ",\n  ".join(values)
                + ";"
            )
        return "\n".join(
            f"INSERT INTO {target} ({column_list}) VALUES {value};" for value in values
        )

    def table_tooltip(self, table: TableMeta) -> str:
        """Short storage description shown next to a table."""
        return ""
