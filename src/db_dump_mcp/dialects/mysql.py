"""MySQL / MariaDB dialect."""

import datetime
from typing import Optional

from db_dump_mcp.dialects.base import BaseDialect, Row
from db_dump_mcp.dialects.quoting import IdentifierQuoter, StringEscaper
from db_dump_mcp.models.capabilities import DialectCapabilities
from db_dump_mcp.models.operations import (
    AddColumn,
    ColumnDefinition,
    CreateIndex,
    DropIndex,
    ListObjects,
    ObjectKind,
    ShowColumns,
    ShowIndex,
    ShowObjectSource,
    ShowTableSource,
    UpdateColumn,
    UpdateTable,
)
from db_dump_mcp.models.table import TableMeta

# Result column carrying the DDL in SHOW CREATE output
_SOURCE_KEYS = {
    ObjectKind.VIEW: "Create View",
    ObjectKind.PROCEDURE: "Create Procedure",
    ObjectKind.FUNCTION: "Create Function",
    ObjectKind.TRIGGER: "SQL Original Statement",
}

_ROUTINE_KINDS = {ObjectKind.PROCEDURE, ObjectKind.FUNCTION, ObjectKind.TRIGGER}


class MySQLDialect(BaseDialect):
    """MySQL rendering: backtick identifiers, information_schema introspection."""

    name = "mysql"

    _capabilities = DialectCapabilities(
        schemas=True,
        views=True,
        stored_procedures=True,
        functions=True,
        triggers=True,
        comments=True,
        auto_increment=True,
        native_table_source=True,
        multi_row_insert=True,
        fulltext_indexes=True,
        alter_column=True,
        column_key_roles=True,
    )
    _quoter = IdentifierQuoter("`", max_length=64)
    _escaper = StringEscaper(backslash_escapes=True)

    @property
    def capabilities(self) -> DialectCapabilities:
        return self._capabilities

    @property
    def quoter(self) -> IdentifierQuoter:
        return self._quoter

    @property
    def string_escaper(self) -> StringEscaper:
        return self._escaper

    def _schema_filter(self, column: str, schema: Optional[str]) -> str:
        if schema:
            return f"{column} = {self.escape_literal(schema)}"
        return f"{column} = DATABASE()"

    # Introspection

    def render_show_columns(self, op: ShowColumns) -> str:
        return f"""
            SELECT
                COLUMN_NAME AS name,
                COLUMN_TYPE AS type,
                IS_NULLABLE AS nullable,
                COLUMN_KEY AS key_role,
                COLUMN_DEFAULT AS default_value,
                EXTRA AS extra,
                COLUMN_COMMENT AS comment,
                ORDINAL_POSITION AS ordinal_position
            FROM information_schema.COLUMNS
            WHERE {self._schema_filter("TABLE_SCHEMA", op.schema_name)}
                AND TABLE_NAME = {self.escape_literal(op.table)}
            ORDER BY ORDINAL_POSITION
        """

    def render_show_index(self, op: ShowIndex) -> str:
        return f"""
            SELECT
                INDEX_NAME AS index_name,
                COLUMN_NAME AS column_name,
                NON_UNIQUE = 0 AS is_unique,
                INDEX_NAME = 'PRIMARY' AS is_primary,
                INDEX_TYPE AS index_type
            FROM information_schema.STATISTICS
            WHERE {self._schema_filter("TABLE_SCHEMA", op.schema_name)}
                AND TABLE_NAME = {self.escape_literal(op.table)}
            ORDER BY INDEX_NAME, SEQ_IN_INDEX
        """

    def render_show_table_source(self, op: ShowTableSource) -> str:
        return f"SHOW CREATE TABLE {self.qualify(op.schema_name, op.table)}"

    def render_show_object_source(self, op: ShowObjectSource) -> str:
        if op.kind is ObjectKind.TABLE:
            return self.render_show_table_source(
                ShowTableSource(schema_name=op.schema_name, table=op.name)
            )
        keyword = op.kind.value.upper()
        return f"SHOW CREATE {keyword} {self.qualify(op.schema_name, op.name)}"

    def render_list_objects(self, op: ListObjects) -> str:
        schema = op.schema_name
        if op.kind is ObjectKind.TABLE:
            return f"""
                SELECT
                    TABLE_NAME AS name,
                    TABLE_COMMENT AS comment,
                    TABLE_ROWS AS row_count,
                    DATA_LENGTH AS data_length,
                    AUTO_INCREMENT AS auto_increment,
                    ROW_FORMAT AS row_format
                FROM information_schema.TABLES
                WHERE {self._schema_filter("TABLE_SCHEMA", schema)}
                    AND TABLE_TYPE = 'BASE TABLE'
                ORDER BY TABLE_NAME
            """
        if op.kind is ObjectKind.VIEW:
            return f"""
                SELECT TABLE_NAME AS name
                FROM information_schema.VIEWS
                WHERE {self._schema_filter("TABLE_SCHEMA", schema)}
                ORDER BY TABLE_NAME
            """
        if op.kind is ObjectKind.TRIGGER:
            return f"""
                SELECT TRIGGER_NAME AS name
                FROM information_schema.TRIGGERS
                WHERE {self._schema_filter("TRIGGER_SCHEMA", schema)}
                ORDER BY TRIGGER_NAME
            """
        routine_type = self.escape_literal(op.kind.value.upper())
        return f"""
            SELECT ROUTINE_NAME AS name
            FROM information_schema.ROUTINES
            WHERE {self._schema_filter("ROUTINE_SCHEMA", schema)}
                AND ROUTINE_TYPE = {routine_type}
            ORDER BY ROUTINE_NAME
        """

    # Structure

    def column_definition(self, column: ColumnDefinition) -> str:
        definition = super().column_definition(column)
        if column.comment is not None:
            definition += f" COMMENT {self.escape_literal(column.comment)}"
        return definition

    def render_add_column(self, op: AddColumn) -> str:
        sql = (
            f"ALTER TABLE {self.qualify(op.schema_name, op.table)} "
            f"ADD COLUMN {self.column_definition(op.column)}"
        )
        if op.column.after is not None:
            sql += f" AFTER {self.quote(op.column.after)}"
        return sql

    def render_update_table(self, op: UpdateTable) -> str:
        clauses = []
        if op.new_comment is not None and op.new_comment != op.comment:
            clauses.append(f"COMMENT = {self.escape_literal(op.new_comment)}")
        if op.new_table_name and op.new_table_name != op.table:
            clauses.append(
                f"RENAME TO {self.qualify(op.schema_name, op.new_table_name)}"
            )
        if not clauses:
            raise ValueError(f"Nothing to change for table {op.table}")
        return (
            f"ALTER TABLE {self.qualify(op.schema_name, op.table)} "
            + ", ".join(clauses)
        )

    def render_update_column(self, op: UpdateColumn) -> str:
        table = self.qualify(op.schema_name, op.table)
        new_name = op.new_column_name or op.column_name

        if op.data_type is not None:
            # CHANGE COLUMN restates the whole definition
            definition = self.column_definition(
                ColumnDefinition(
                    name=new_name,
                    data_type=op.data_type,
                    nullable=True if op.nullable is None else op.nullable,
                    default=op.default,
                    comment=op.comment,
                )
            )
            return (
                f"ALTER TABLE {table} CHANGE COLUMN "
                f"{self.quote(op.column_name)} {definition}"
            )

        if op.nullable is not None or op.comment is not None:
            self._unsupported(
                op.op, "changing nullability or comment requires the column type"
            )

        statements = []
        if op.default is not None:
            statements.append(
                f"ALTER TABLE {table} ALTER COLUMN {self.quote(op.column_name)} "
                f"SET DEFAULT {self.render_default(op.default)}"
            )
        if new_name != op.column_name:
            statements.append(
                f"ALTER TABLE {table} RENAME COLUMN "
                f"{self.quote(op.column_name)} TO {self.quote(new_name)}"
            )
        if not statements:
            raise ValueError(f"Nothing to change for column {op.column_name}")
        return ";\n".join(statements)

    def render_create_index(self, op: CreateIndex) -> str:
        index_type = (op.index_type or "").lower()
        if index_type not in ("", "btree", "hash", "fulltext"):
            self._unsupported(op.op, f"{index_type} indexes")

        if index_type == "fulltext":
            prefix = "FULLTEXT "
        elif op.unique:
            prefix = "UNIQUE "
        else:
            prefix = ""
        using = f" USING {index_type.upper()}" if index_type in ("btree", "hash") else ""
        name = op.index_name or self.default_index_name(op.table, op.columns)
        columns = ", ".join(self.quote(column) for column in op.columns)
        return (
            f"CREATE {prefix}INDEX {self.quote(name)} "
            f"ON {self.qualify(op.schema_name, op.table)} ({columns}){using}"
        )

    def render_drop_index(self, op: DropIndex) -> str:
        return (
            f"ALTER TABLE {self.qualify(op.schema_name, op.table)} "
            f"DROP INDEX {self.quote(op.index_name)}"
        )

    # Rows

    def extract_table_source(self, rows: list[Row]) -> Optional[str]:
        if not rows:
            return None
        row = rows[0]
        return row.get("Create Table") or row.get("Create View")

    def extract_object_source(
        self, kind: ObjectKind, name: str, rows: list[Row]
    ) -> Optional[str]:
        if kind is ObjectKind.TABLE:
            return self.extract_table_source(rows)
        if not rows:
            return None
        return rows[0].get(_SOURCE_KEYS[kind])

    # Literals

    def _bool_literal(self, value: bool) -> str:
        return "1" if value else "0"

    def _interval_literal(self, value: datetime.timedelta) -> str:
        total = int(value.total_seconds())
        sign = "-" if total < 0 else ""
        hours, remainder = divmod(abs(total), 3600)
        minutes, seconds = divmod(remainder, 60)
        return f"'{sign}{hours:02d}:{minutes:02d}:{seconds:02d}'"

    # Dump framing

    def dump_header(self, schema: Optional[str], whole_schema: bool) -> list[str]:
        statements = ["SET NAMES utf8mb4;", "SET FOREIGN_KEY_CHECKS = 0;"]
        if whole_schema and schema:
            statements.append(f"CREATE DATABASE IF NOT EXISTS {self.quote(schema)};")
            statements.append(f"USE {self.quote(schema)};")
        return statements

    def dump_footer(self) -> list[str]:
        return ["SET FOREIGN_KEY_CHECKS = 1;"]

    def object_statement(self, kind: ObjectKind, ddl: str) -> str:
        if kind in _ROUTINE_KINDS:
            body = ddl.rstrip().rstrip(";").rstrip()
            return f"DELIMITER ;;\n{body};;\nDELIMITER ;"
        return super().object_statement(kind, ddl)

    def table_tooltip(self, table: TableMeta) -> str:
        if table.data_length is None:
            return ""
        return (
            f"AUTO_INCREMENT : {table.auto_increment or 'null'}\n"
            f"ROW_FORMAT : {table.row_format}\n"
        )
