"""Placeholder INSERT/UPDATE/DELETE templates for a table.

Identifiers are always quoted by the dialect. Values are ``$column``
placeholders and are never quoted. Rows are matched on primary-key columns,
falling back to any key column, then to every column.
"""

from typing import Optional

from db_dump_mcp.dialects.base import BaseDialect
from db_dump_mcp.models.table import ColumnMeta, KeyRole


def _key_columns(columns: list[ColumnMeta]) -> list[ColumnMeta]:
    primary = [column for column in columns if column.key is KeyRole.PRIMARY]
    if primary:
        return primary
    keyed = [column for column in columns if column.key is not KeyRole.NONE]
    return keyed or list(columns)


def _where(dialect: BaseDialect, keys: list[ColumnMeta]) -> str:
    return "\n  AND ".join(
        f"{dialect.quote(column.name)} = ${column.name}" for column in keys
    )


def _require_columns(table: str, columns: list[ColumnMeta]) -> None:
    if not columns:
        raise ValueError(f"Table {table} has no columns")


def insert_template(
    dialect: BaseDialect,
    table: str,
    columns: list[ColumnMeta],
    schema: Optional[str] = None,
) -> str:
    _require_columns(table, columns)
    names = ",\n    ".join(dialect.quote(column.name) for column in columns)
    values = ",\n    ".join(f"${column.name}" for column in columns)
    return (
        f"INSERT INTO\n  {dialect.qualify(schema, table)} (\n    {names}\n  )\n"
        f"VALUES\n  (\n    {values}\n  );"
    )


def update_template(
    dialect: BaseDialect,
    table: str,
    columns: list[ColumnMeta],
    schema: Optional[str] = None,
) -> str:
    _require_columns(table, columns)
    keys = _key_columns(columns)
    key_names = {column.name for column in keys}
    assigned = [column for column in columns if column.name not in key_names]
    # A table made only of key columns still gets a usable SET list
    assigned = assigned or list(columns)
    sets = ",\n  ".join(
        f"{dialect.quote(column.name)} = ${column.name}" for column in assigned
    )
    return (
        f"UPDATE\n  {dialect.qualify(schema, table)}\nSET\n  {sets}\n"
        f"WHERE\n  {_where(dialect, keys)};"
    )


def delete_template(
    dialect: BaseDialect,
    table: str,
    columns: list[ColumnMeta],
    schema: Optional[str] = None,
) -> str:
    _require_columns(table, columns)
    return (
        f"DELETE FROM\n  {dialect.qualify(schema, table)}\n"
        f"WHERE\n  {_where(dialect, _key_columns(columns))};"
    )
