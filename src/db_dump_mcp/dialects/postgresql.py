"""PostgreSQL dialect."""

import datetime
from typing import Any, Optional

from db_dump_mcp.dialects.base import BaseDialect, Row
from db_dump_mcp.dialects.quoting import IdentifierQuoter, StringEscaper
from db_dump_mcp.models.capabilities import DialectCapabilities
from db_dump_mcp.models.operations import (
    AddColumn,
    CreateIndex,
    ListObjects,
    ObjectKind,
    ShowColumns,
    ShowIndex,
    ShowObjectSource,
    ShowTableSource,
    UpdateColumn,
    UpdateTable,
)
from db_dump_mcp.models.table import ColumnMeta, TableMeta

# Integer columns fed by their own sequence are re-emitted as serial types
_SERIAL_TYPES = {
    "smallint": "smallserial",
    "integer": "serial",
    "bigint": "bigserial",
}


class PostgreSQLDialect(BaseDialect):
    """PostgreSQL rendering: double-quoted identifiers, pg_catalog introspection."""

    name = "postgresql"

    _capabilities = DialectCapabilities(
        schemas=True,
        views=True,
        stored_procedures=True,
        functions=True,
        triggers=True,
        comments=True,
        auto_increment=False,
        native_table_source=False,
        multi_row_insert=True,
        fulltext_indexes=False,
        alter_column=True,
        column_key_roles=True,
    )
    # NAMEDATALEN - 1, longer names are truncated by the server
    _quoter = IdentifierQuoter('"', max_length=63, length_in_bytes=True)
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

    def _schema_filter(self, column: str, schema: Optional[str]) -> str:
        if schema:
            return f"{column} = {self.escape_literal(schema)}"
        return f"{column} = current_schema()"

    def _relation_filter(self, schema: Optional[str], table: str) -> str:
        return (
            f"{self._schema_filter('n.nspname', schema)} "
            f"AND c.relname = {self.escape_literal(table)}"
        )

    # Introspection

    def render_show_columns(self, op: ShowColumns) -> str:
        return f"""
            SELECT
                a.attname AS name,
                format_type(a.atttypid, a.atttypmod) AS type,
                NOT a.attnotnull AS nullable,
                CASE
                    WHEN EXISTS (
                        SELECT 1 FROM pg_index ix
                        WHERE ix.indrelid = c.oid AND ix.indisprimary
                            AND a.attnum = ANY(ix.indkey)
                    ) THEN 'primary'
                    WHEN EXISTS (
                        SELECT 1 FROM pg_index ix
                        WHERE ix.indrelid = c.oid AND ix.indisunique
                            AND a.attnum = ANY(ix.indkey)
                    ) THEN 'unique'
                    WHEN EXISTS (
                        SELECT 1 FROM pg_index ix
                        WHERE ix.indrelid = c.oid AND a.attnum = ANY(ix.indkey)
                    ) THEN 'index'
                    ELSE 'none'
                END AS key_role,
                pg_get_expr(d.adbin, d.adrelid) AS default_value,
                col_description(c.oid, a.attnum) AS comment,
                a.attnum AS ordinal_position
            FROM pg_attribute a
            JOIN pg_class c ON c.oid = a.attrelid
            JOIN pg_namespace n ON n.oid = c.relnamespace
            LEFT JOIN pg_attrdef d ON d.adrelid = a.attrelid AND d.adnum = a.attnum
            WHERE {self._relation_filter(op.schema_name, op.table)}
                AND a.attnum > 0
                AND NOT a.attisdropped
            ORDER BY a.attnum
        """

    def render_show_index(self, op: ShowIndex) -> str:
        return f"""
            SELECT
                i.relname AS index_name,
                a.attname AS column_name,
                ix.indisunique AS is_unique,
                ix.indisprimary AS is_primary,
                am.amname AS index_type
            FROM pg_index ix
            JOIN pg_class c ON c.oid = ix.indrelid
            JOIN pg_namespace n ON n.oid = c.relnamespace
            JOIN pg_class i ON i.oid = ix.indexrelid
            JOIN pg_am am ON am.oid = i.relam
            CROSS JOIN LATERAL unnest(ix.indkey::int2[]) WITH ORDINALITY AS k(attnum, seq)
            JOIN pg_attribute a ON a.attrelid = c.oid AND a.attnum = k.attnum
            WHERE {self._relation_filter(op.schema_name, op.table)}
            ORDER BY i.relname, k.seq
        """

    def render_show_table_source(self, op: ShowTableSource) -> str:
        self._unsupported(op.op, "table DDL is rebuilt from column metadata")

    def render_show_object_source(self, op: ShowObjectSource) -> str:
        name = self.escape_literal(op.name)
        schema_filter = self._schema_filter("n.nspname", op.schema_name)
        if op.kind is ObjectKind.VIEW:
            return f"""
                SELECT pg_get_viewdef(c.oid, true) AS definition
                FROM pg_class c
                JOIN pg_namespace n ON n.oid = c.relnamespace
                WHERE {schema_filter} AND c.relname = {name} AND c.relkind IN ('v', 'm')
            """
        if op.kind in (ObjectKind.PROCEDURE, ObjectKind.FUNCTION):
            prokind = "p" if op.kind is ObjectKind.PROCEDURE else "f"
            return f"""
                SELECT pg_get_functiondef(p.oid) AS source
                FROM pg_proc p
                JOIN pg_namespace n ON n.oid = p.pronamespace
                WHERE {schema_filter} AND p.proname = {name} AND p.prokind = '{prokind}'
                ORDER BY p.oid
            """
        if op.kind is ObjectKind.TRIGGER:
            return f"""
                SELECT pg_get_triggerdef(t.oid, true) AS source
                FROM pg_trigger t
                JOIN pg_class c ON c.oid = t.tgrelid
                JOIN pg_namespace n ON n.oid = c.relnamespace
                WHERE {schema_filter} AND t.tgname = {name} AND NOT t.tgisinternal
            """
        self._unsupported(op.op, "table DDL is rebuilt from column metadata")

    def render_list_objects(self, op: ListObjects) -> str:
        schema_filter = self._schema_filter("n.nspname", op.schema_name)
        if op.kind is ObjectKind.TABLE:
            return f"""
                SELECT
                    c.relname AS name,
                    obj_description(c.oid, 'pg_class') AS comment,
                    c.reltuples::bigint AS row_count,
                    pg_relation_size(c.oid) AS data_length
                FROM pg_class c
                JOIN pg_namespace n ON n.oid = c.relnamespace
                WHERE {schema_filter} AND c.relkind IN ('r', 'p')
                ORDER BY c.relname
            """
        if op.kind is ObjectKind.VIEW:
            return f"""
                SELECT c.relname AS name
                FROM pg_class c
                JOIN pg_namespace n ON n.oid = c.relnamespace
                WHERE {schema_filter} AND c.relkind = 'v'
                ORDER BY c.relname
            """
        if op.kind is ObjectKind.TRIGGER:
            return f"""
                SELECT DISTINCT t.tgname AS name
                FROM pg_trigger t
                JOIN pg_class c ON c.oid = t.tgrelid
                JOIN pg_namespace n ON n.oid = c.relnamespace
                WHERE {schema_filter} AND NOT t.tgisinternal
                ORDER BY t.tgname
            """
        prokind = "p" if op.kind is ObjectKind.PROCEDURE else "f"
        return f"""
            SELECT DISTINCT p.proname AS name
            FROM pg_proc p
            JOIN pg_namespace n ON n.oid = p.pronamespace
            WHERE {schema_filter} AND p.prokind = '{prokind}'
            ORDER BY p.proname
        """

    # Structure

    def _comment_on_column(
        self, schema: Optional[str], table: str, column: str, comment: str
    ) -> str:
        return (
            f"COMMENT ON COLUMN {self.qualify(schema, table)}.{self.quote(column)} "
            f"IS {self.escape_literal(comment)}"
        )

    def render_add_column(self, op: AddColumn) -> str:
        if op.column.after is not None:
            self._unsupported(op.op, "column placement (AFTER)")
        statements = [
            f"ALTER TABLE {self.qualify(op.schema_name, op.table)} "
            f"ADD COLUMN {self.column_definition(op.column)}"
        ]
        if op.column.comment is not None:
            statements.append(
                self._comment_on_column(
                    op.schema_name, op.table, op.column.name, op.column.comment
                )
            )
        return ";\n".join(statements)

    def render_update_table(self, op: UpdateTable) -> str:
        statements = []
        table = op.table
        if op.new_table_name and op.new_table_name != op.table:
            statements.append(
                f"ALTER TABLE {self.qualify(op.schema_name, op.table)} "
                f"RENAME TO {self.quote(op.new_table_name)}"
            )
            table = op.new_table_name
        if op.new_comment is not None and op.new_comment != op.comment:
            statements.append(
                f"COMMENT ON TABLE {self.qualify(op.schema_name, table)} "
                f"IS {self.escape_literal(op.new_comment)}"
            )
        if not statements:
            raise ValueError(f"Nothing to change for table {op.table}")
        return ";\n".join(statements)

    def render_update_column(self, op: UpdateColumn) -> str:
        table = self.qualify(op.schema_name, op.table)
        column = self.quote(op.column_name)

        clauses = []
        if op.data_type is not None:
            clauses.append(f"ALTER COLUMN {column} TYPE {op.data_type}")
        if op.nullable is True:
            clauses.append(f"ALTER COLUMN {column} DROP NOT NULL")
        elif op.nullable is False:
            clauses.append(f"ALTER COLUMN {column} SET NOT NULL")
        if op.default is not None:
            clauses.append(
                f"ALTER COLUMN {column} SET DEFAULT {self.render_default(op.default)}"
            )

        statements = []
        if clauses:
            statements.append(f"ALTER TABLE {table} " + ", ".join(clauses))

        name = op.column_name
        if op.new_column_name and op.new_column_name != op.column_name:
            statements.append(
                f"ALTER TABLE {table} RENAME COLUMN {column} "
                f"TO {self.quote(op.new_column_name)}"
            )
            name = op.new_column_name
        if op.comment is not None:
            statements.append(
                self._comment_on_column(op.schema_name, op.table, name, op.comment)
            )
        if not statements:
            raise ValueError(f"Nothing to change for column {op.column_name}")
        return ";\n".join(statements)

    def render_create_index(self, op: CreateIndex) -> str:
        index_type = (op.index_type or "").lower()
        if index_type == "fulltext":
            self._unsupported(op.op, "fulltext indexes")
        name = op.index_name or self.default_index_name(op.table, op.columns)
        unique = "UNIQUE " if op.unique else ""
        using = f" USING {index_type}" if index_type else ""
        columns = ", ".join(self.quote(column) for column in op.columns)
        return (
            f"CREATE {unique}INDEX {self.quote(name)} "
            f"ON {self.qualify(op.schema_name, op.table)}{using} ({columns})"
        )

    # Rows

    def extract_object_source(
        self, kind: ObjectKind, name: str, rows: list[Row]
    ) -> Optional[str]:
        if not rows:
            return None
        if kind is ObjectKind.VIEW:
            definition = (rows[0].get("definition") or "").strip().rstrip(";")
            if not definition:
                return None
            return f"CREATE OR REPLACE VIEW {self.quote(name)} AS\n{definition}"
        # Overloaded routines share a name
        sources = [row["source"].strip().rstrip(";") for row in rows if row.get("source")]
        return ";\n".join(sources) or None

    # DDL reconstruction

    def _serial_type(self, column: ColumnMeta) -> Optional[str]:
        if not (column.default or "").startswith("nextval("):
            return None
        return _SERIAL_TYPES.get(column.data_type)

    def _column_clause(self, column: ColumnMeta) -> str:
        serial = self._serial_type(column)
        if serial:
            clause = f"{self.quote(column.name)} {serial}"
            if not column.nullable:
                clause += " NOT NULL"
            return clause
        return super()._column_clause(column)

    def _comment_statements(self, table: TableMeta) -> list[str]:
        statements = []
        if table.comment:
            statements.append(
                f"COMMENT ON TABLE {self.quote(table.name)} "
                f"IS {self.escape_literal(table.comment)}"
            )
        for column in table.columns:
            if column.comment:
                statements.append(
                    self._comment_on_column(None, table.name, column.name, column.comment)
                )
        return statements

    # Literals

    def _non_finite_literal(self, value: Any) -> str:
        if value != value:
            return "'NaN'"
        return "'Infinity'" if value > 0 else "'-Infinity'"

    def _bytes_literal(self, value: bytes) -> str:
        return f"'\\x{value.hex()}'::bytea"

    def _interval_literal(self, value: datetime.timedelta) -> str:
        return f"'{value.total_seconds()} seconds'::interval"

    def _array_literal(self, value: list) -> str:
        if not value:
            return "'{}'"
        return "ARRAY[" + ", ".join(self.escape_literal(item) for item in value) + "]"

    # Dump framing

    def dump_header(self, schema: Optional[str], whole_schema: bool) -> list[str]:
        statements = [
            "SET client_encoding = 'UTF8';",
            "SET standard_conforming_strings = on;",
        ]
        if whole_schema and schema:
            statements.append(f"CREATE SCHEMA IF NOT EXISTS {self.quote(schema)};")
            statements.append(f"SET search_path TO {self.quote(schema)};")
        return statements

    def after_data_statements(self, table: TableMeta) -> list[str]:
        # Serial columns get fresh sequences on replay; move them past the loaded keys
        target = self.quote(table.name)
        statements = []
        for column in table.columns:
            if self._serial_type(column) is None:
                continue
            name = self.quote(column.name)
            statements.append(
                "SELECT pg_catalog.setval("
                f"pg_get_serial_sequence({self.escape_literal(target)}, "
                f"{self.escape_literal(column.name)}), "
                f"COALESCE(MAX({name}), 1), MAX({name}) IS NOT NULL) FROM {target};"
            )
        return statements

    def drop_statement(self, kind: ObjectKind, name: str) -> Optional[str]:
        # DROP TRIGGER needs the owning table
        if kind is ObjectKind.TRIGGER:
            return None
        return super().drop_statement(kind, name)
