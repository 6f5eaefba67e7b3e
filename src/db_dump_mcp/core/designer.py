"""Request/response table design operations."""

import logging
from typing import Any, Optional, Protocol

from pydantic import BaseModel, Field

from db_dump_mcp.core.inspector import PrimaryKeyRegistry, SchemaIntrospector
from db_dump_mcp.errors import DumpEngineError
from db_dump_mcp.models.operations import (
    AddColumn,
    ColumnDefinition,
    CreateIndex,
    DialectOperation,
    DropIndex,
    DropTable,
    TruncateTable,
    UpdateColumn,
    UpdateTable,
)

logger = logging.getLogger(__name__)


class SupportsExecuteStatement(Protocol):
    async def execute_statement(self, sql: str) -> list[dict[str, Any]]: ...


class DesignOutcome(BaseModel):
    """Result of one design request."""

    success: bool
    sql: Optional[str] = Field(None, description="SQL that was (or would be) run")
    error: Optional[str] = None


def split_statements(sql: str, backslash_escapes: bool = False) -> list[str]:
    """Split ``;``-separated statements, ignoring separators inside quotes."""
    statements = []
    current = []
    quote: Optional[str] = None
    i = 0
    while i < len(sql):
        ch = sql[i]
        current.append(ch)
        if quote:
            if backslash_escapes and ch == "\\" and i + 1 < len(sql):
                current.append(sql[i + 1])
                i += 1
            elif ch == quote:
                quote = None
        elif ch in ("'", '"', "`"):
            quote = ch
        elif ch == ";":
            current.pop()
            statements.append("".join(current))
            current = []
        i += 1
    statements.append("".join(current))
    return [statement.strip() for statement in statements if statement.strip()]


class TableDesigner:
    """
    Structural changes to one table.

    Each call renders the operation, runs it, and invalidates the cached
    metadata of the table so the next read sees the new structure.
    """

    def __init__(
        self,
        executor: SupportsExecuteStatement,
        introspector: SchemaIntrospector,
        table: str,
        schema_name: Optional[str] = None,
        registry: Optional[PrimaryKeyRegistry] = None,
    ):
        self.executor = executor
        self.introspector = introspector
        self.dialect = introspector.dialect
        self.table = table
        self.schema_name = schema_name
        self.registry = registry

    def _invalidate(self, table: Optional[str] = None) -> None:
        name = table or self.table
        self.introspector.invalidate(name, self.schema_name)
        if self.registry is not None:
            self.registry.invalidate(
                self.introspector.connection_id, self.schema_name, name
            )

    async def design_data(self) -> dict[str, Any]:
        """Everything the design view shows for the table."""
        meta = await self.introspector.describe_table(self.table, self.schema_name)
        indexes = await self.introspector.get_indexes(self.table, self.schema_name)
        listed = next(
            (
                table
                for table in await self.introspector.list_tables(self.schema_name)
                if table.name == self.table
            ),
            None,
        )
        return {
            "table": self.table,
            "schema": self.schema_name,
            "dialect": self.dialect.name,
            "comment": listed.comment if listed else None,
            "tooltip": self.dialect.table_tooltip(listed) if listed else "",
            "primary_key": meta.primary_key_columns,
            "columns": [column.model_dump(mode="json") for column in meta.columns],
            "indexes": [index.model_dump(mode="json") for index in indexes],
        }

    async def _apply(self, operation: DialectOperation) -> DesignOutcome:
        try:
            sql = self.dialect.render(operation)
        except (DumpEngineError, ValueError) as e:
            return DesignOutcome(success=False, error=str(e))
        return await self.execute(sql)

    async def execute(self, sql: str) -> DesignOutcome:
        """Run free-form SQL against the table and invalidate its metadata."""
        try:
            for statement in split_statements(
                sql, self.dialect.string_escaper.backslash_escapes
            ):
                await self.executor.execute_statement(statement)
        except DumpEngineError as e:
            logger.warning(f"Design change on {self.table} failed: {e}")
            return DesignOutcome(success=False, sql=sql, error=str(e))
        finally:
            self._invalidate()
        return DesignOutcome(success=True, sql=sql)

    async def update_table(
        self,
        new_table_name: Optional[str] = None,
        new_comment: Optional[str] = None,
        comment: Optional[str] = None,
    ) -> DesignOutcome:
        """Rename the table and/or change its comment."""
        try:
            operation = UpdateTable(
                schema_name=self.schema_name,
                table=self.table,
                new_table_name=new_table_name,
                comment=comment,
                new_comment=new_comment,
            )
        except ValueError as e:
            return DesignOutcome(success=False, error=str(e))
        outcome = await self._apply(operation)
        if outcome.success and new_table_name and new_table_name != self.table:
            self._invalidate(new_table_name)
            self.table = new_table_name
        return outcome

    async def update_column(self, column_name: str, **changes: Any) -> DesignOutcome:
        """Change a column; keyword arguments mirror UpdateColumn fields."""
        try:
            operation = UpdateColumn(
                schema_name=self.schema_name,
                table=self.table,
                column_name=column_name,
                **changes,
            )
        except ValueError as e:
            return DesignOutcome(success=False, error=str(e))
        return await self._apply(operation)

    async def add_column(self, column: ColumnDefinition) -> DesignOutcome:
        return await self._apply(
            AddColumn(schema_name=self.schema_name, table=self.table, column=column)
        )

    async def create_index(
        self,
        columns: list[str],
        index_name: Optional[str] = None,
        unique: bool = False,
        index_type: Optional[str] = None,
    ) -> DesignOutcome:
        try:
            operation = CreateIndex(
                schema_name=self.schema_name,
                table=self.table,
                columns=tuple(columns),
                index_name=index_name,
                unique=unique,
                index_type=index_type,
            )
        except ValueError as e:
            return DesignOutcome(success=False, error=str(e))
        return await self._apply(operation)

    async def drop_index(self, index_name: str) -> DesignOutcome:
        return await self._apply(
            DropIndex(
                schema_name=self.schema_name, table=self.table, index_name=index_name
            )
        )

    async def drop_table(self, if_exists: bool = False) -> DesignOutcome:
        return await self._apply(
            DropTable(schema_name=self.schema_name, table=self.table, if_exists=if_exists)
        )

    async def truncate_table(self) -> DesignOutcome:
        return await self._apply(
            TruncateTable(schema_name=self.schema_name, table=self.table)
        )
