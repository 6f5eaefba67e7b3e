"""Query execution with connection/statement error classification."""

import asyncio
import logging
from typing import Any, AsyncIterator

from sqlalchemy import exc as sa_exc
from sqlalchemy import text

from db_dump_mcp.core.connection import DatabaseConnection
from db_dump_mcp.errors import QueryExecutionError

logger = logging.getLogger(__name__)

_CONNECTION_ERRORS = (
    OSError,
    sa_exc.DisconnectionError,
    sa_exc.InterfaceError,
    sa_exc.TimeoutError,
)


def is_connection_error(error: BaseException) -> bool:
    """True if the error means the connection itself is unusable."""
    if isinstance(error, _CONNECTION_ERRORS):
        return True
    if isinstance(error, sa_exc.DBAPIError) and error.connection_invalidated:
        return True
    return False


def _as_text(sql: str):
    # Rendered SQL is complete; colons inside literals are not bind parameters
    return text(sql.replace(":", "\\:"))


class QueryExecutor:
    """
    Runs rendered SQL against one database connection.

    Calls are serialized so a single connection never sees overlapping
    statements from one dump.
    """

    def __init__(self, connection: DatabaseConnection):
        """
        Args:
            connection: Database connection manager
        """
        self.connection = connection
        self._lock = asyncio.Lock()

    @property
    def connection_id(self) -> str:
        return self.connection.connection_id

    async def execute(self, sql: str) -> list[dict[str, Any]]:
        """
        Run a statement and return its rows.

        Returns:
            Rows as dicts keyed by column label, empty if the statement
            produces no result set

        Raises:
            QueryExecutionError: Classified as connection- or statement-level
        """
        return await self._run(sql, commit=False)

    async def execute_statement(self, sql: str) -> list[dict[str, Any]]:
        """Run a statement that changes the database and commit it."""
        return await self._run(sql, commit=True)

    async def stream(
        self, sql: str, batch_size: int
    ) -> AsyncIterator[list[dict[str, Any]]]:
        """
        Run a query through a server-side cursor and yield its rows in batches.

        The whole read happens on one connection, in one transaction, and at
        most ``batch_size`` rows are fetched at a time. Close the iterator
        (``contextlib.aclosing``) when stopping early so the connection is
        released.

        Raises:
            QueryExecutionError: Classified as connection- or statement-level
        """
        acquired = False
        async with self._lock:
            try:
                async with self.connection.get_connection() as conn:
                    acquired = True
                    result = await conn.stream(_as_text(sql))
                    async for partition in result.mappings().partitions(batch_size):
                        yield [dict(row) for row in partition]
            except (sa_exc.SQLAlchemyError, OSError) as e:
                connection_level = not acquired or is_connection_error(e)
                logger.debug(
                    f"{'Connection' if connection_level else 'Statement'} error "
                    f"streaming {sql[:200]!r}: {e}"
                )
                raise QueryExecutionError(sql, e, connection_level) from e

    async def _run(self, sql: str, commit: bool) -> list[dict[str, Any]]:
        acquired = False
        async with self._lock:
            try:
                async with self.connection.get_connection() as conn:
                    acquired = True
                    result = await conn.execute(_as_text(sql))
                    rows = (
                        [dict(row._mapping) for row in result]
                        if result.returns_rows
                        else []
                    )
                    if commit:
                        await conn.commit()
                    return rows
            except (sa_exc.SQLAlchemyError, OSError) as e:
                connection_level = not acquired or is_connection_error(e)
                logger.debug(
                    f"{'Connection' if connection_level else 'Statement'} error "
                    f"running {sql[:200]!r}: {e}"
                )
                raise QueryExecutionError(sql, e, connection_level) from e
