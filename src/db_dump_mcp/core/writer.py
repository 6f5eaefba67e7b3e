"""Batched row export as INSERT statements."""

import asyncio
import logging
from contextlib import aclosing
from typing import Any, AsyncIterator, Optional, Protocol

from db_dump_mcp.core.sink import OutputSink
from db_dump_mcp.dialects.base import BaseDialect
from db_dump_mcp.errors import DataReadError, QueryExecutionError
from db_dump_mcp.models.dump import WriteResult
from db_dump_mcp.models.operations import SelectRows
from db_dump_mcp.models.table import TableMeta

logger = logging.getLogger(__name__)


class SupportsStream(Protocol):
    """Streaming read capability consumed by the writer."""

    def stream(
        self, sql: str, batch_size: int
    ) -> AsyncIterator[list[dict[str, Any]]]: ...


class DataStreamWriter:
    """
    Streams a table's rows to a sink one batch at a time.

    Rows come from a single SELECT read through a server-side cursor, so
    every batch belongs to the same snapshot and only one batch is held in
    memory. Rows are ordered by the primary key when the table has one;
    otherwise the engine's natural order is used.
    """

    def __init__(
        self, executor: SupportsStream, dialect: BaseDialect, batch_size: int = 200
    ):
        """
        Args:
            executor: Streaming query capability
            dialect: Dialect rendering the SELECT and the INSERTs
            batch_size: Rows per fetch and per INSERT statement
        """
        if batch_size < 1:
            raise ValueError("batch_size must be a positive integer")
        self.executor = executor
        self.dialect = dialect
        self.batch_size = batch_size

    def select_sql(self, table: TableMeta, schema: Optional[str]) -> str:
        return self.dialect.render(
            SelectRows(
                schema_name=schema,
                table=table.name,
                order_by=tuple(table.primary_key_columns),
            )
        )

    def _insert(self, table: TableMeta, rows: list[dict[str, Any]]) -> str:
        try:
            return self.dialect.insert_statement(table.name, table.column_names, rows)
        except (KeyError, TypeError, ValueError) as e:
            # Rows that do not match the described columns or cannot be rendered
            raise DataReadError(table.name, e) from e

    async def write_data(
        self,
        table: TableMeta,
        sink: OutputSink,
        schema: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> WriteResult:
        """
        Write every row of a described table as batched INSERT statements.

        Args:
            table: Table metadata including its columns
            sink: Destination for the statements
            schema: Schema the table lives in
            cancel_event: Checked before the read starts and after each batch

        Returns:
            Rows and batches written, and whether cancellation stopped it

        Raises:
            DataReadError: If the rows cannot be read or rendered
            SinkWriteError: If the sink fails
        """
        result = WriteResult(table=table.name)
        if cancel_event is not None and cancel_event.is_set():
            result.cancelled = True
            return result

        sql = self.select_sql(table, schema)
        try:
            async with aclosing(self.executor.stream(sql, self.batch_size)) as batches:
                async for rows in batches:
                    if not rows:
                        continue
                    await sink.write(self._insert(table, rows) + "\n")
                    result.rows += len(rows)
                    result.batches += 1

                    if cancel_event is not None and cancel_event.is_set():
                        result.cancelled = True
                        break
        except QueryExecutionError as e:
            raise DataReadError(table.name, e) from e

        logger.debug(
            f"Wrote {result.rows} rows of {table.name} in {result.batches} batches"
        )
        return result
