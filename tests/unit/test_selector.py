"""Unit tests for dump selection resolution."""

import pytest

from db_dump_mcp.core.selector import ObjectSelector, StaticPickList, enabled_kinds
from db_dump_mcp.dialects import MySQLDialect, SQLiteDialect
from db_dump_mcp.models.config import DumpSettings
from db_dump_mcp.models.dump import DumpObject, DumpTarget
from db_dump_mcp.models.operations import ObjectKind


class FakeIntrospector:
    """Lists a fixed catalog and records what was asked."""

    def __init__(self, dialect, catalog):
        self.dialect = dialect
        self.catalog = catalog
        self.listed: list[ObjectKind] = []

    async def list_objects(self, kind, schema=None):
        self.listed.append(kind)
        return self.catalog.get(kind, [])


CATALOG = {
    ObjectKind.TABLE: ["orders", "users"],
    ObjectKind.VIEW: ["active_users"],
    ObjectKind.PROCEDURE: ["refresh"],
    ObjectKind.FUNCTION: ["total"],
    ObjectKind.TRIGGER: ["trg_orders"],
}


@pytest.fixture
def target():
    return DumpTarget(connection_id="c", dialect="mysql", schema_name="shop")


class TestEnabledKinds:
    """Configuration flags and dialect capabilities combine."""

    def test_all_enabled_for_mysql(self):
        assert enabled_kinds(MySQLDialect().capabilities, DumpSettings()) == list(
            ObjectKind
        )

    def test_flags_hide_categories(self):
        settings = DumpSettings(show_procedure=False, show_trigger=False)
        assert enabled_kinds(MySQLDialect().capabilities, settings) == [
            ObjectKind.TABLE,
            ObjectKind.VIEW,
            ObjectKind.FUNCTION,
        ]

    def test_capabilities_hide_categories(self):
        assert enabled_kinds(SQLiteDialect().capabilities, DumpSettings()) == [
            ObjectKind.TABLE,
            ObjectKind.VIEW,
            ObjectKind.TRIGGER,
        ]


@pytest.mark.asyncio
class TestResolve:
    """Selections produced for each request shape."""

    async def test_single_object(self, target):
        introspector = FakeIntrospector(MySQLDialect(), CATALOG)
        selector = ObjectSelector(introspector, DumpSettings())
        selection = await selector.resolve(
            target, single=DumpObject(kind=ObjectKind.TABLE, name="users")
        )
        assert selection.tables == ("users",)
        assert selection.views == ()
        assert introspector.listed == []

    async def test_no_pick_list_selects_whole_schema(self, target):
        selector = ObjectSelector(FakeIntrospector(MySQLDialect(), CATALOG), DumpSettings())
        selection = await selector.resolve(target, include_data=False)
        assert selection.whole_schema is True
        assert selection.include_data is False

    async def test_candidates_respect_flags(self, target):
        introspector = FakeIntrospector(MySQLDialect(), CATALOG)
        selector = ObjectSelector(introspector, DumpSettings(show_view=False))
        candidates = await selector.candidates(target)
        assert [c.name for c in candidates] == [
            "orders", "users", "refresh", "total", "trg_orders",
        ]
        assert ObjectKind.VIEW not in introspector.listed

    async def test_pick_list_subset(self, target):
        selector = ObjectSelector(FakeIntrospector(MySQLDialect(), CATALOG), DumpSettings())
        selection = await selector.resolve(
            target, pick_list=StaticPickList(["users", "active_users", "trg_orders"])
        )
        assert selection.tables == ("users",)
        assert selection.views == ("active_users",)
        assert selection.triggers == ("trg_orders",)
        assert selection.whole_schema is False

    async def test_unknown_name_kept_as_table(self, target):
        selector = ObjectSelector(FakeIntrospector(MySQLDialect(), CATALOG), DumpSettings())
        selection = await selector.resolve(
            target, pick_list=StaticPickList(["users", "missing"])
        )
        assert selection.tables == ("users", "missing")

    async def test_cancelled_pick_list(self, target):
        selector = ObjectSelector(FakeIntrospector(MySQLDialect(), CATALOG), DumpSettings())
        assert await selector.resolve(target, pick_list=StaticPickList(None)) is None
