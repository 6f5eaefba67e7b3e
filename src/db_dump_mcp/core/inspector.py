"""Schema introspection through dialect-rendered catalog queries."""

import logging
from typing import Any, Callable, Optional, Protocol, TypeVar

from db_dump_mcp.dialects.base import BaseDialect
from db_dump_mcp.errors import IntrospectionError, QueryExecutionError
from db_dump_mcp.models.operations import (
    CountRows,
    ListObjects,
    MaxPrimaryKey,
    ObjectKind,
    ShowColumns,
    ShowIndex,
    ShowObjectSource,
    ShowTableSource,
)
from db_dump_mcp.models.table import ColumnMeta, IndexMeta, KeyRole, TableMeta

logger = logging.getLogger(__name__)

CacheKey = tuple[str, Optional[str], str, str]
T = TypeVar("T")


class SupportsExecute(Protocol):
    """Query execution capability consumed by the introspector."""

    @property
    def connection_id(self) -> str: ...

    async def execute(self, sql: str) -> list[dict[str, Any]]: ...


class IntrospectionCache:
    """
    Caller-owned cache of metadata snapshots.

    Entries are keyed by (connection identity, schema, object name, facet)
    and live until explicitly invalidated. There is no expiry.
    """

    def __init__(self):
        self._entries: dict[CacheKey, Any] = {}

    def get(self, key: CacheKey) -> Any:
        return self._entries.get(key)

    def put(self, key: CacheKey, value: Any) -> None:
        self._entries[key] = value

    def invalidate(
        self, connection_id: str, schema: Optional[str], object_name: str
    ) -> int:
        """Drop every facet cached for one object. Returns entries removed."""
        stale = [
            key
            for key in self._entries
            if key[0] == connection_id and key[1] == schema and key[2] == object_name
        ]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class PrimaryKeyRegistry:
    """Caller-owned map from table identity to the column used for max-key lookups."""

    def __init__(self):
        self._columns: dict[tuple[str, Optional[str], str], str] = {}

    def register(
        self, connection_id: str, schema: Optional[str], table: str, column: str
    ) -> None:
        self._columns[(connection_id, schema, table)] = column

    def lookup(
        self, connection_id: str, schema: Optional[str], table: str
    ) -> Optional[str]:
        return self._columns.get((connection_id, schema, table))

    def invalidate(
        self, connection_id: str, schema: Optional[str], table: str
    ) -> None:
        self._columns.pop((connection_id, schema, table), None)


class SchemaIntrospector:
    """Retrieves table, column, index and DDL metadata for one connection."""

    def __init__(
        self,
        executor: SupportsExecute,
        dialect: BaseDialect,
        cache: Optional[IntrospectionCache] = None,
    ):
        """
        Initialize schema introspector.

        Args:
            executor: Query execution capability
            dialect: Dialect provider for the connection
            cache: Optional cache shared with the caller; nothing is cached
                when omitted
        """
        self.executor = executor
        self.dialect = dialect
        self.cache = cache

    @property
    def connection_id(self) -> str:
        return self.executor.connection_id

    def _key(self, schema: Optional[str], name: str, facet: str) -> CacheKey:
        return (self.connection_id, schema, name, facet)

    def _cached(self, schema: Optional[str], name: str, facet: str) -> Any:
        if self.cache is None:
            return None
        return self.cache.get(self._key(schema, name, facet))

    def _store(self, schema: Optional[str], name: str, facet: str, value: Any) -> None:
        if self.cache is not None:
            self.cache.put(self._key(schema, name, facet), value)

    def fresh(self) -> "SchemaIntrospector":
        """Introspector on the same connection with an empty cache of its own."""
        return type(self)(self.executor, self.dialect, IntrospectionCache())

    def invalidate(self, table: str, schema: Optional[str] = None) -> None:
        """Forget cached metadata for an object after a structural change."""
        if self.cache is not None:
            removed = self.cache.invalidate(self.connection_id, schema, table)
            logger.debug(f"Invalidated {removed} cached entries for {table}")

    async def _query(self, object_name: str, sql: str) -> list[dict[str, Any]]:
        try:
            return await self.executor.execute(sql)
        except QueryExecutionError as e:
            raise IntrospectionError(object_name, e) from e

    def _interpret(self, object_name: str, parse: Callable[..., T], *args: Any) -> T:
        # Catalog rows that do not fit the expected shape fail for this object only
        try:
            return parse(*args)
        except (KeyError, TypeError, ValueError) as e:
            raise IntrospectionError(object_name, e) from e

    async def list_objects(
        self, kind: ObjectKind, schema: Optional[str] = None
    ) -> list[str]:
        """
        Names of every object of one kind in the schema.

        Raises:
            UnsupportedOperation: If the dialect has no such objects
            IntrospectionError: If the catalog query fails
        """
        sql = self.dialect.render(ListObjects(schema_name=schema, kind=kind))
        rows = await self._query(schema or kind.value, sql)
        return self._interpret(schema or kind.value, self.dialect.parse_names, rows)

    async def list_tables(self, schema: Optional[str] = None) -> list[TableMeta]:
        """Table snapshots (without columns) carrying storage statistics."""
        sql = self.dialect.render(ListObjects(schema_name=schema, kind=ObjectKind.TABLE))
        rows = await self._query(schema or "tables", sql)
        return self._interpret(schema or "tables", self.dialect.parse_tables, rows)

    async def get_columns(
        self, table: str, schema: Optional[str] = None
    ) -> list[ColumnMeta]:
        """Ordered columns of a table."""
        return list((await self.describe_table(table, schema)).columns)

    async def describe_table(
        self,
        table: str,
        schema: Optional[str] = None,
        snapshot: Optional[TableMeta] = None,
    ) -> TableMeta:
        """
        Table metadata with its ordered columns.

        Args:
            table: Table name
            schema: Schema name (None for the connection default)
            snapshot: Listing entry whose statistics should be kept

        Raises:
            IntrospectionError: If the table does not exist or the query fails
        """
        cached = self._cached(schema, table, "table")
        if cached is not None:
            return cached

        sql = self.dialect.render(ShowColumns(schema_name=schema, table=table))
        rows = await self._query(table, sql)
        if not rows:
            raise IntrospectionError(table, LookupError("table not found"))

        columns = self._interpret(table, self.dialect.parse_columns, rows)
        if not self.dialect.capabilities.column_key_roles:
            columns = self._apply_index_roles(
                columns, await self.get_indexes(table, schema)
            )

        base = snapshot or TableMeta(name=table)
        meta = self._interpret(table, base.with_columns, columns)
        self._store(schema, table, "table", meta)
        return meta

    def _apply_index_roles(
        self, columns: list[ColumnMeta], indexes: list[IndexMeta]
    ) -> list[ColumnMeta]:
        unique: set[str] = set()
        indexed: set[str] = set()
        for index in indexes:
            if index.primary:
                continue
            indexed.update(index.columns)
            if index.unique:
                unique.update(index.columns)

        result = []
        for column in columns:
            if column.key is KeyRole.NONE and column.name in unique:
                column = column.model_copy(update={"key": KeyRole.UNIQUE})
            elif column.key is KeyRole.NONE and column.name in indexed:
                column = column.model_copy(update={"key": KeyRole.INDEX})
            result.append(column)
        return result

    async def get_indexes(
        self, table: str, schema: Optional[str] = None
    ) -> list[IndexMeta]:
        """Indexes of a table, one entry per index with ordered columns."""
        cached = self._cached(schema, table, "indexes")
        if cached is not None:
            return cached

        sql = self.dialect.render(ShowIndex(schema_name=schema, table=table))
        rows = await self._query(table, sql)
        indexes = self._interpret(table, self.dialect.parse_indexes, table, rows)
        self._store(schema, table, "indexes", indexes)
        return indexes

    async def get_table_source(self, table: str, schema: Optional[str] = None) -> str:
        """
        CREATE TABLE text for a table.

        Native DDL is used where the server provides it; otherwise the
        statement is rebuilt from column and index metadata.
        """
        cached = self._cached(schema, table, "source")
        if cached is not None:
            return cached

        if self.dialect.capabilities.native_table_source:
            sql = self.dialect.render(ShowTableSource(schema_name=schema, table=table))
            rows = await self._query(table, sql)
            source = self._interpret(table, self.dialect.extract_table_source, rows)
            if source is None:
                raise IntrospectionError(table, LookupError("table not found"))
            source = self.dialect.normalize_source(source)
        else:
            meta = await self.describe_table(table, schema)
            indexes = await self.get_indexes(table, schema)
            source = self._interpret(
                table, self.dialect.build_create_table, meta, indexes
            )

        self._store(schema, table, "source", source)
        return source

    async def get_object_source(
        self, kind: ObjectKind, name: str, schema: Optional[str] = None
    ) -> str:
        """DDL text of a view, procedure, function or trigger."""
        if kind is ObjectKind.TABLE:
            return await self.get_table_source(name, schema)

        cached = self._cached(schema, name, kind.value)
        if cached is not None:
            return cached

        sql = self.dialect.render(
            ShowObjectSource(schema_name=schema, kind=kind, name=name)
        )
        rows = await self._query(name, sql)
        source = self._interpret(
            name, self.dialect.extract_object_source, kind, name, rows
        )
        if source is None:
            raise IntrospectionError(name, LookupError(f"{kind.value} not found"))
        source = self.dialect.normalize_source(source)
        self._store(schema, name, kind.value, source)
        return source

    async def count_rows(self, table: str, schema: Optional[str] = None) -> int:
        sql = self.dialect.render(CountRows(schema_name=schema, table=table))
        rows = await self._query(table, sql)
        return int(self.dialect.parse_scalar(rows, "row_count") or 0)

    async def get_max_primary_key(
        self,
        table: str,
        schema: Optional[str] = None,
        registry: Optional[PrimaryKeyRegistry] = None,
    ) -> Any:
        """
        Largest primary key value of a table.

        The key column is looked up in (and recorded into) the caller's
        registry. Returns None for tables without a primary key or rows.
        """
        column = None
        if registry is not None:
            column = registry.lookup(self.connection_id, schema, table)
        if column is None:
            meta = await self.describe_table(table, schema)
            primary_key = meta.primary_key_columns
            if not primary_key:
                return None
            column = primary_key[0]
            if registry is not None:
                registry.register(self.connection_id, schema, table, column)

        sql = self.dialect.render(
            MaxPrimaryKey(schema_name=schema, table=table, column=column)
        )
        rows = await self._query(table, sql)
        return self.dialect.parse_scalar(rows, "max_value")
