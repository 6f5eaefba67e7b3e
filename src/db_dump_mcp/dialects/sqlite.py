"""SQLite dialect."""

from typing import Optional

from db_dump_mcp.dialects.base import BaseDialect, Row, _truthy
from db_dump_mcp.dialects.quoting import IdentifierQuoter, StringEscaper
from db_dump_mcp.models.capabilities import DialectCapabilities
from db_dump_mcp.models.operations import (
    CreateIndex,
    DropIndex,
    ListObjects,
    ObjectKind,
    ShowColumns,
    ShowIndex,
    ShowObjectSource,
    ShowTableSource,
    TruncateTable,
    UpdateColumn,
    UpdateTable,
)
from db_dump_mcp.models.table import ColumnMeta, KeyRole

_MASTER_TYPES = {
    ObjectKind.TABLE: "table",
    ObjectKind.VIEW: "view",
    ObjectKind.TRIGGER: "trigger",
}


class SQLiteDialect(BaseDialect):
    """
    SQLite rendering: PRAGMA introspection and sqlite_master DDL.

    The attached database ``main`` is the default schema and is never
    written out explicitly.
    """

    name = "sqlite"

    _capabilities = DialectCapabilities(
        schemas=False,
        views=True,
        stored_procedures=False,
        functions=False,
        triggers=True,
        comments=False,
        auto_increment=False,
        native_table_source=True,
        multi_row_insert=True,
        fulltext_indexes=False,
        alter_column=False,
        column_key_roles=False,
    )
    _quoter = IdentifierQuoter('"')
    _escaper = StringEscaper(backslash_escapes=False)

    @property
    def capabilities(self) -> DialectCapabilities:
        return self._capabilities

    @property
    def quoter(self) -> IdentifierQuoter:
        return self._quoter

    @property
    def string_escaper(self) -> StringEscaper:
        return self._escaper

    def _schema_part(self, schema: Optional[str]) -> Optional[str]:
        if schema is None or schema.lower() == "main":
            return None
        return schema

    def _master(self, schema: Optional[str]) -> str:
        return self.quoter.qualify(self._schema_part(schema), "sqlite_master")

    def _pragma_args(self, name: str, schema: Optional[str]) -> str:
        args = [self.escape_literal(name)]
        if self._schema_part(schema):
            args.append(self.escape_literal(schema))
        return ", ".join(args)

    # Introspection

    def render_show_columns(self, op: ShowColumns) -> str:
        schema = self._schema_part(op.schema_name)
        prefix = f"{self.quote(schema)}." if schema else ""
        return f"PRAGMA {prefix}table_info({self.quote(op.table)})"

    def render_show_index(self, op: ShowIndex) -> str:
        schema = self._schema_part(op.schema_name)
        info_args = "il.name" + (f", {self.escape_literal(schema)}" if schema else "")
        return f"""
            SELECT
                il.name AS index_name,
                ii.name AS column_name,
                il."unique" AS is_unique,
                il.origin = 'pk' AS is_primary,
                NULL AS index_type
            FROM pragma_index_list({self._pragma_args(op.table, op.schema_name)}) AS il
            JOIN pragma_index_info({info_args}) AS ii
            WHERE ii.name IS NOT NULL
            ORDER BY il.name, ii.seqno
        """

    def render_show_table_source(self, op: ShowTableSource) -> str:
        return f"""
            SELECT type, name, sql
            FROM {self._master(op.schema_name)}
            WHERE tbl_name = {self.escape_literal(op.table)}
                AND type IN ('table', 'index')
                AND sql IS NOT NULL
            ORDER BY CASE type WHEN 'table' THEN 0 ELSE 1 END, name
        """

    def render_show_object_source(self, op: ShowObjectSource) -> str:
        if op.kind not in _MASTER_TYPES:
            self._unsupported(op.op, f"{op.kind.value} objects")
        if op.kind is ObjectKind.TABLE:
            return self.render_show_table_source(
                ShowTableSource(schema_name=op.schema_name, table=op.name)
            )
        return f"""
            SELECT type, name, sql
            FROM {self._master(op.schema_name)}
            WHERE type = {self.escape_literal(_MASTER_TYPES[op.kind])}
                AND name = {self.escape_literal(op.name)}
        """

    def render_list_objects(self, op: ListObjects) -> str:
        if op.kind not in _MASTER_TYPES:
            self._unsupported(op.op, f"{op.kind.value} objects")
        return f"""
            SELECT name
            FROM {self._master(op.schema_name)}
            WHERE type = {self.escape_literal(_MASTER_TYPES[op.kind])}
                AND name NOT LIKE 'sqlite\\_%' ESCAPE '\\'
            ORDER BY name
        """

    # Structure

    def render_update_table(self, op: UpdateTable) -> str:
        if op.new_comment is not None and op.new_comment != op.comment:
            self._unsupported(op.op, "table comments")
        if not op.new_table_name or op.new_table_name == op.table:
            raise ValueError(f"Nothing to change for table {op.table}")
        return (
            f"ALTER TABLE {self.qualify(op.schema_name, op.table)} "
            f"RENAME TO {self.quote(op.new_table_name)}"
        )

    def render_update_column(self, op: UpdateColumn) -> str:
        if op.data_type is not None or op.nullable is not None or op.default is not None:
            self._unsupported(op.op, "only column rename is supported")
        if op.comment is not None:
            self._unsupported(op.op, "column comments")
        if not op.new_column_name or op.new_column_name == op.column_name:
            raise ValueError(f"Nothing to change for column {op.column_name}")
        return (
            f"ALTER TABLE {self.qualify(op.schema_name, op.table)} "
            f"RENAME COLUMN {self.quote(op.column_name)} "
            f"TO {self.quote(op.new_column_name)}"
        )

    def render_create_index(self, op: CreateIndex) -> str:
        index_type = (op.index_type or "").lower()
        if index_type and index_type != "btree":
            self._unsupported(op.op, f"{index_type} indexes")
        name = op.index_name or self.default_index_name(op.table, op.columns)
        unique = "UNIQUE " if op.unique else ""
        columns = ", ".join(self.quote(column) for column in op.columns)
        # The index is qualified, its table never is
        return (
            f"CREATE {unique}INDEX {self.qualify(op.schema_name, name)} "
            f"ON {self.quote(op.table)} ({columns})"
        )

    def render_drop_index(self, op: DropIndex) -> str:
        return f"DROP INDEX {self.qualify(op.schema_name, op.index_name)}"

    def render_truncate_table(self, op: TruncateTable) -> str:
        return f"DELETE FROM {self.qualify(op.schema_name, op.table)}"

    # Rows

    def parse_columns(self, rows: list[Row]) -> list[ColumnMeta]:
        columns = []
        for position, row in enumerate(rows, start=1):
            default = row.get("dflt_value")
            columns.append(
                ColumnMeta(
                    name=row["name"],
                    data_type=row.get("type") or "",
                    nullable=not _truthy(row.get("notnull")),
                    key=KeyRole.PRIMARY if row.get("pk") else KeyRole.NONE,
                    default=None if default is None else str(default),
                    ordinal_position=position,
                )
            )
        return columns

    def normalize_source(self, source: str) -> str:
        # Some tools store DDL with escaped newlines
        if "\\n" in source and "\n" not in source:
            return source.replace("\\n", "\n")
        return source

    def extract_table_source(self, rows: list[Row]) -> Optional[str]:
        if not rows or rows[0].get("type") != "table":
            return None
        return ";\n".join(
            self.normalize_source(row["sql"]).rstrip().rstrip(";") for row in rows
        )

    def extract_object_source(
        self, kind: ObjectKind, name: str, rows: list[Row]
    ) -> Optional[str]:
        if kind is ObjectKind.TABLE:
            return self.extract_table_source(rows)
        if not rows or not rows[0].get("sql"):
            return None
        return self.normalize_source(rows[0]["sql"])

    # Literals

    def _bool_literal(self, value: bool) -> str:
        return "1" if value else "0"

    # Dump framing

    def dump_header(self, schema: Optional[str], whole_schema: bool) -> list[str]:
        return ["PRAGMA foreign_keys = OFF;", "BEGIN TRANSACTION;"]

    def dump_footer(self) -> list[str]:
        return ["COMMIT;"]

    def drop_statement(self, kind: ObjectKind, name: str) -> Optional[str]:
        if kind not in _MASTER_TYPES:
            return None
        return super().drop_statement(kind, name)
