"""Module Tests for SchemaIntrospector

Runs the introspector against a seeded SQLite file through the real
executor. Validates:
- Object listing per kind
- Ordered column metadata with key roles derived from indexes
- Table and object DDL retrieval
- Caching and invalidation
- Unexpected catalog rows reported per object
- Max primary key lookups through the registry
"""

import pytest

from db_dump_mcp.core import IntrospectionCache, PrimaryKeyRegistry, SchemaIntrospector
from db_dump_mcp.dialects import SQLiteDialect
from db_dump_mcp.errors import IntrospectionError, UnsupportedOperation
from db_dump_mcp.models.operations import ObjectKind
from db_dump_mcp.models.table import KeyRole

pytestmark = [pytest.mark.sqlite]


class TestListing:
    """Catalog listings."""

    @pytest.mark.asyncio
    async def test_list_tables(self, sqlite_introspector: SchemaIntrospector):
        tables = await sqlite_introspector.list_tables()
        assert [table.name for table in tables] == ["orders", "tags", "users"]

    @pytest.mark.asyncio
    async def test_list_views_and_triggers(self, sqlite_introspector: SchemaIntrospector):
        assert await sqlite_introspector.list_objects(ObjectKind.VIEW) == ["active_users"]
        assert await sqlite_introspector.list_objects(ObjectKind.TRIGGER) == [
            "trg_orders_note"
        ]

    @pytest.mark.asyncio
    async def test_list_procedures_unsupported(
        self, sqlite_introspector: SchemaIntrospector
    ):
        with pytest.raises(UnsupportedOperation):
            await sqlite_introspector.list_objects(ObjectKind.PROCEDURE)


class TestDescribeTable:
    """Column metadata."""

    @pytest.mark.asyncio
    async def test_columns_in_physical_order(
        self, sqlite_introspector: SchemaIntrospector
    ):
        meta = await sqlite_introspector.describe_table("orders")
        assert meta.column_names == ["id", "user_id", "code", "total", "note"]
        assert [c.ordinal_position for c in meta.columns] == [1, 2, 3, 4, 5]
        assert meta.primary_key_columns == ["id"]

    @pytest.mark.asyncio
    async def test_key_roles_from_indexes(self, sqlite_introspector: SchemaIntrospector):
        meta = await sqlite_introspector.describe_table("orders")
        roles = {column.name: column.key for column in meta.columns}
        assert roles == {
            "id": KeyRole.PRIMARY,
            "user_id": KeyRole.INDEX,
            "code": KeyRole.UNIQUE,
            "total": KeyRole.NONE,
            "note": KeyRole.NONE,
        }

    @pytest.mark.asyncio
    async def test_nullability_and_defaults(
        self, sqlite_introspector: SchemaIntrospector
    ):
        users = await sqlite_introspector.describe_table("users")
        assert users.get_column("name").nullable is False
        tags = await sqlite_introspector.describe_table("tags")
        assert tags.get_column("weight").default == "1"
        assert tags.primary_key_columns == []

    @pytest.mark.asyncio
    async def test_missing_table(self, sqlite_introspector: SchemaIntrospector):
        with pytest.raises(IntrospectionError, match="table not found") as exc_info:
            await sqlite_introspector.describe_table("missing")
        assert exc_info.value.object_name == "missing"
        assert exc_info.value.connection_level is False

    @pytest.mark.asyncio
    async def test_indexes(self, sqlite_introspector: SchemaIntrospector):
        indexes = {i.name: i for i in await sqlite_introspector.get_indexes("orders")}
        assert indexes["idx_orders_user"].columns == ("user_id",)
        assert indexes["idx_orders_user"].unique is False
        unique = [i for i in indexes.values() if i.unique]
        assert [i.columns for i in unique] == [("code",)]


class TestSources:
    """DDL retrieval."""

    @pytest.mark.asyncio
    async def test_table_source_includes_indexes(
        self, sqlite_introspector: SchemaIntrospector
    ):
        source = await sqlite_introspector.get_table_source("orders")
        assert source.startswith("CREATE TABLE orders (")
        assert source.endswith("CREATE INDEX idx_orders_user ON orders (user_id)")

    @pytest.mark.asyncio
    async def test_view_source(self, sqlite_introspector: SchemaIntrospector):
        source = await sqlite_introspector.get_object_source(
            ObjectKind.VIEW, "active_users"
        )
        assert source.startswith("CREATE VIEW active_users AS")

    @pytest.mark.asyncio
    async def test_trigger_source(self, sqlite_introspector: SchemaIntrospector):
        source = await sqlite_introspector.get_object_source(
            ObjectKind.TRIGGER, "trg_orders_note"
        )
        assert "AFTER INSERT ON orders" in source

    @pytest.mark.asyncio
    async def test_missing_view(self, sqlite_introspector: SchemaIntrospector):
        with pytest.raises(IntrospectionError, match="view not found"):
            await sqlite_introspector.get_object_source(ObjectKind.VIEW, "nope")


class TestCaching:
    """Caller-owned metadata cache."""

    @pytest.mark.asyncio
    async def test_cached_until_invalidated(self, sqlite_executor, sqlite_dialect):
        cache = IntrospectionCache()
        introspector = SchemaIntrospector(sqlite_executor, sqlite_dialect, cache)

        first = await introspector.describe_table("users")
        second = await introspector.describe_table("users")
        assert second is first
        assert len(cache) >= 1

        introspector.invalidate("users")
        third = await introspector.describe_table("users")
        assert third is not first
        assert third == first

    @pytest.mark.asyncio
    async def test_no_cache(self, sqlite_executor, sqlite_dialect):
        introspector = SchemaIntrospector(sqlite_executor, sqlite_dialect)
        first = await introspector.describe_table("users")
        assert await introspector.describe_table("users") is not first

    @pytest.mark.asyncio
    async def test_fresh_starts_empty(self, sqlite_introspector: SchemaIntrospector):
        first = await sqlite_introspector.describe_table("users")
        fresh = sqlite_introspector.fresh()
        assert fresh.cache is not sqlite_introspector.cache
        assert len(fresh.cache) == 0
        assert fresh.executor is sqlite_introspector.executor
        assert await fresh.describe_table("users") is not first

    def test_invalidate_only_one_object(self):
        cache = IntrospectionCache()
        cache.put(("c", None, "users", "table"), 1)
        cache.put(("c", None, "users", "indexes"), 2)
        cache.put(("c", None, "orders", "table"), 3)
        cache.put(("other", None, "users", "table"), 4)
        assert cache.invalidate("c", None, "users") == 2
        assert len(cache) == 2
        assert cache.get(("c", None, "orders", "table")) == 3


class TestUnexpectedRows:
    """Catalog rows the dialect cannot interpret."""

    @pytest.mark.asyncio
    async def test_parse_error_scoped_to_table(self, sqlite_executor):
        class BrokenColumns(SQLiteDialect):
            def parse_columns(self, rows):
                raise KeyError("notnull")

        introspector = SchemaIntrospector(sqlite_executor, BrokenColumns())
        with pytest.raises(IntrospectionError) as exc_info:
            await introspector.describe_table("users")
        assert exc_info.value.object_name == "users"
        assert isinstance(exc_info.value.__cause__, KeyError)
        assert exc_info.value.connection_level is False


class TestAggregates:
    """Row count and max key."""

    @pytest.mark.asyncio
    async def test_count_rows(self, sqlite_introspector: SchemaIntrospector):
        assert await sqlite_introspector.count_rows("orders") == 5

    @pytest.mark.asyncio
    async def test_max_primary_key_registers_column(
        self, sqlite_introspector: SchemaIntrospector
    ):
        registry = PrimaryKeyRegistry()
        assert await sqlite_introspector.get_max_primary_key("orders", registry=registry) == 5
        assert (
            registry.lookup(sqlite_introspector.connection_id, None, "orders") == "id"
        )

    @pytest.mark.asyncio
    async def test_max_primary_key_without_key(
        self, sqlite_introspector: SchemaIntrospector
    ):
        assert await sqlite_introspector.get_max_primary_key("tags") is None
