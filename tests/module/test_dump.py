"""Module Tests for DumpOrchestrator and DumpService

Dumps a seeded SQLite file and replays the script into a fresh database.
Validates:
- Section layout and ordering (tables with data, then views, then triggers)
- Per-object failure isolation and status
- Cancellation and sink failures
- File export naming and aborted exports
- Metadata read fresh for each dump after outside schema changes
- Statement counts
"""

import asyncio
import sqlite3
from datetime import datetime
from pathlib import Path

import pytest

from db_dump_mcp.core import (
    DataStreamWriter,
    DirectorySaveTarget,
    DumpOrchestrator,
    DumpService,
    SchemaIntrospector,
    StaticPickList,
    StringSink,
)
from db_dump_mcp.dialects import PostgreSQLDialect, SQLiteDialect
from db_dump_mcp.errors import SinkWriteError
from db_dump_mcp.models.config import DumpSettings
from db_dump_mcp.models.dump import DumpObject, DumpSelection, DumpStatus, DumpTarget
from db_dump_mcp.models.operations import ObjectKind

pytestmark = [pytest.mark.sqlite]


@pytest.fixture
def target(sqlite_introspector: SchemaIntrospector) -> DumpTarget:
    return DumpTarget(
        connection_id=sqlite_introspector.connection_id, dialect="sqlite"
    )


class FailingSink(StringSink):
    """Fails on the Nth write."""

    def __init__(self, fail_at: int):
        super().__init__()
        self.fail_at = fail_at
        self.writes = 0

    async def write(self, text: str) -> None:
        self.writes += 1
        if self.writes == self.fail_at:
            raise SinkWriteError("disk full")
        await super().write(text)


class CancellingSink(StringSink):
    """Sets a cancel event once the first INSERT is written."""

    def __init__(self, event: asyncio.Event):
        super().__init__()
        self.event = event

    async def write(self, text: str) -> None:
        await super().write(text)
        if text.startswith("INSERT INTO"):
            self.event.set()


class CancelledSaveDialog:
    async def open_for_write(self, suggested_name: str):
        return None


def _replay(script: str, path: Path) -> sqlite3.Connection:
    db = sqlite3.connect(path)
    db.executescript(script)
    return db


class TestSingleTable:
    """Dumping one table."""

    @pytest.mark.asyncio
    async def test_users_table_with_data(self, sqlite_introspector, target):
        sink = StringSink()
        orchestrator = DumpOrchestrator(sqlite_introspector)

        result = await orchestrator.dump(
            target, DumpSelection.single(ObjectKind.TABLE, "users"), sink
        )

        assert result.status is DumpStatus.SUCCESS
        assert result.succeeded == [DumpObject(kind=ObjectKind.TABLE, name="users")]
        assert result.rows_written == 2
        assert sink.closed
        assert sink.getvalue() == (
            "-- sqlite dump of local_\n"
            "PRAGMA foreign_keys = OFF;\n"
            "BEGIN TRANSACTION;\n"
            "\n"
            "-- ----------------------------\n"
            "-- Table structure for users\n"
            "-- ----------------------------\n"
            'DROP TABLE IF EXISTS "users";\n'
            "CREATE TABLE users (id INTEGER PRIMARY KEY, name VARCHAR(50) NOT NULL);\n"
            "\n"
            "-- ----------------------------\n"
            "-- Records of users\n"
            "-- ----------------------------\n"
            'INSERT INTO "users" ("id", "name") VALUES\n'
            "  (1, 'a'),\n"
            "  (2, 'b');\n"
            "\n"
            "COMMIT;\n"
            "\n"
        )

    @pytest.mark.asyncio
    async def test_structure_only(self, sqlite_introspector, target):
        sink = StringSink()
        result = await DumpOrchestrator(sqlite_introspector).dump(
            target,
            DumpSelection.single(ObjectKind.TABLE, "orders"),
            sink,
            include_data=False,
        )
        assert result.rows_written == 0
        assert "INSERT INTO" not in sink.getvalue()
        assert "Records of" not in sink.getvalue()

    @pytest.mark.asyncio
    async def test_without_drop_statements(self, sqlite_introspector, target):
        sink = StringSink()
        orchestrator = DumpOrchestrator(
            sqlite_introspector, DumpSettings(add_drop_statements=False)
        )
        await orchestrator.dump(target, DumpSelection.single(ObjectKind.TABLE, "users"), sink)
        assert "DROP TABLE" not in sink.getvalue()

    @pytest.mark.asyncio
    async def test_dump_is_repeatable(self, sqlite_introspector, target):
        selection = DumpSelection(whole_schema=True)
        first, second = StringSink(), StringSink()
        await DumpOrchestrator(sqlite_introspector).dump(target, selection, first)
        await DumpOrchestrator(sqlite_introspector).dump(target, selection, second)
        assert first.getvalue() == second.getvalue()


class TestWholeSchema:
    """Whole-schema dumps."""

    @pytest.mark.asyncio
    async def test_section_order(self, sqlite_introspector, target):
        sink = StringSink()
        result = await DumpOrchestrator(sqlite_introspector).dump(
            target, DumpSelection(whole_schema=True), sink
        )
        script = sink.getvalue()

        assert result.status is DumpStatus.SUCCESS
        assert result.rows_written == 2 + 5 + 3
        assert [str(obj) for obj in result.succeeded] == [
            "table orders",
            "table tags",
            "table users",
            "view active_users",
            "trigger trg_orders_note",
        ]
        last_insert = script.rindex("INSERT INTO")
        assert script.index("View definition for active_users") > last_insert
        assert script.index("Trigger definition for trg_orders_note") > last_insert
        assert script.rstrip().endswith("COMMIT;")

    @pytest.mark.asyncio
    async def test_replay_into_fresh_database(self, sqlite_introspector, target, tmp_path):
        sink = StringSink()
        await DumpOrchestrator(sqlite_introspector, DumpSettings(batch_size=2)).dump(
            target, DumpSelection(whole_schema=True), sink
        )

        db = _replay(sink.getvalue(), tmp_path / "restored.db")
        try:
            notes = db.execute("SELECT id, note FROM orders ORDER BY id").fetchall()
            tags = db.execute("SELECT label, weight FROM tags ORDER BY rowid").fetchall()
            view_rows = db.execute("SELECT COUNT(*) FROM active_users").fetchone()
            triggers = db.execute(
                "SELECT name FROM sqlite_master WHERE type = 'trigger'"
            ).fetchall()
        finally:
            db.close()

        # NULL notes survive because the trigger is created after the rows
        assert notes == [
            (1, "first"),
            (2, None),
            (3, "O'Brien's order"),
            (4, None),
            (5, "line one\nline two"),
        ]
        assert tags == [("red", 1), ("blue", 2), ("red", 3)]
        assert view_rows == (2,)
        assert triggers == [("trg_orders_note",)]


class TestFailures:
    """Per-object failure isolation."""

    @pytest.mark.asyncio
    async def test_partial(self, sqlite_introspector, target):
        sink = StringSink()
        selection = DumpSelection(tables=("users", "missing"))

        result = await DumpOrchestrator(sqlite_introspector).dump(target, selection, sink)

        assert result.status is DumpStatus.PARTIAL
        assert [str(obj) for obj in result.succeeded] == ["table users"]
        assert len(result.failures) == 1
        failure = result.failures[0]
        assert failure.object.name == "missing"
        assert failure.stage == "ddl"
        assert failure.error_type == "IntrospectionError"
        assert "missing" not in sink.getvalue()
        assert sink.getvalue().rstrip().endswith("COMMIT;")

    @pytest.mark.asyncio
    async def test_everything_failed(self, sqlite_introspector, target):
        selection = DumpSelection(tables=("missing",), views=("nope",))
        result = await DumpOrchestrator(sqlite_introspector).dump(
            target, selection, StringSink()
        )
        assert result.status is DumpStatus.FAILED
        assert result.failure_count == 2

    @pytest.mark.asyncio
    async def test_sink_failure_aborts_and_closes(self, sqlite_introspector, target):
        sink = FailingSink(fail_at=2)
        with pytest.raises(SinkWriteError):
            await DumpOrchestrator(sqlite_introspector).dump(
                target, DumpSelection(whole_schema=True), sink
            )
        assert sink.closed


class TestSchemaChanges:
    """Tables altered by another client after they were described."""

    @pytest.mark.asyncio
    async def test_added_column_is_dumped(
        self, sqlite_introspector, target, sqlite_path
    ):
        before = await sqlite_introspector.describe_table("users")
        assert "email" not in before.column_names

        db = sqlite3.connect(sqlite_path)
        try:
            db.execute("ALTER TABLE users ADD COLUMN email TEXT")
            db.execute("UPDATE users SET email = 'a@example.com' WHERE id = 1")
            db.commit()
        finally:
            db.close()

        sink = StringSink()
        result = await DumpOrchestrator(sqlite_introspector).dump(
            target, DumpSelection.single(ObjectKind.TABLE, "users"), sink
        )

        script = sink.getvalue()
        assert result.status is DumpStatus.SUCCESS
        assert "email TEXT" in script
        assert 'INSERT INTO "users" ("id", "name", "email") VALUES' in script
        assert "(1, 'a', 'a@example.com')" in script
        assert "(2, 'b', NULL)" in script

    @pytest.mark.asyncio
    @pytest.mark.skipif(
        sqlite3.sqlite_version_info < (3, 35, 0),
        reason="ALTER TABLE DROP COLUMN needs SQLite 3.35",
    )
    async def test_dropped_column_is_not_read(
        self, sqlite_introspector, target, sqlite_path
    ):
        await sqlite_introspector.describe_table("tags")

        db = sqlite3.connect(sqlite_path)
        try:
            db.execute("ALTER TABLE tags DROP COLUMN weight")
            db.commit()
        finally:
            db.close()

        sink = StringSink()
        result = await DumpOrchestrator(sqlite_introspector).dump(
            target, DumpSelection.single(ObjectKind.TABLE, "tags"), sink
        )

        script = sink.getvalue()
        assert result.status is DumpStatus.SUCCESS
        assert result.rows_written == 3
        assert "weight" not in script
        assert 'INSERT INTO "tags" ("label") VALUES' in script


class UnreadableTagsDialect(SQLiteDialect):
    """Fails to interpret the column rows of the tags table."""

    def parse_columns(self, rows):
        if any(row.get("name") == "weight" for row in rows):
            raise KeyError("type")
        return super().parse_columns(rows)


class UnrenderableTextDialect(SQLiteDialect):
    """Cannot render one particular string value."""

    def escape_literal(self, value):
        if value == "O'Brien's order":
            raise TypeError("unsupported value")
        return super().escape_literal(value)


class TestUnexpectedErrors:
    """Errors outside the engine's own hierarchy stay scoped to one object."""

    @pytest.mark.asyncio
    async def test_column_parse_failure(self, sqlite_executor, target):
        introspector = SchemaIntrospector(sqlite_executor, UnreadableTagsDialect())
        sink = StringSink()

        result = await DumpOrchestrator(introspector).dump(
            target, DumpSelection(tables=("orders", "tags", "users")), sink
        )

        assert result.status is DumpStatus.PARTIAL
        assert [str(obj) for obj in result.succeeded] == ["table orders", "table users"]
        assert len(result.failures) == 1
        failure = result.failures[0]
        assert failure.object.name == "tags"
        assert failure.stage == "ddl"
        assert failure.error_type == "IntrospectionError"
        assert "Table structure for tags" not in sink.getvalue()
        assert sink.getvalue().rstrip().endswith("COMMIT;")

    @pytest.mark.asyncio
    async def test_value_render_failure(self, sqlite_executor, target):
        introspector = SchemaIntrospector(sqlite_executor, UnrenderableTextDialect())
        sink = StringSink()

        result = await DumpOrchestrator(introspector).dump(
            target, DumpSelection(tables=("orders", "tags", "users")), sink
        )

        assert result.status is DumpStatus.PARTIAL
        assert [str(obj) for obj in result.succeeded] == ["table tags", "table users"]
        failure = result.failures[0]
        assert failure.object.name == "orders"
        assert failure.stage == "data"
        assert failure.error_type == "DataReadError"
        assert sink.getvalue().rstrip().endswith("COMMIT;")


class NoTriggerDropDialect(SQLiteDialect):
    def drop_statement(self, kind, name):
        if kind is ObjectKind.TRIGGER:
            return None
        return super().drop_statement(kind, name)


class TestStatementCount:
    """statements_written counts what a client would execute."""

    @pytest.mark.asyncio
    async def test_single_table(self, sqlite_introspector, target):
        result = await DumpOrchestrator(sqlite_introspector).dump(
            target, DumpSelection.single(ObjectKind.TABLE, "users"), StringSink()
        )
        # PRAGMA, BEGIN, DROP, CREATE, INSERT, COMMIT
        assert result.statements_written == 6

    @pytest.mark.asyncio
    async def test_object_without_drop(self, sqlite_executor, target):
        introspector = SchemaIntrospector(sqlite_executor, NoTriggerDropDialect())
        sink = StringSink()
        result = await DumpOrchestrator(introspector).dump(
            target, DumpSelection.single(ObjectKind.TRIGGER, "trg_orders_note"), sink
        )
        assert "DROP TRIGGER" not in sink.getvalue()
        # PRAGMA, BEGIN, CREATE TRIGGER, COMMIT
        assert result.statements_written == 4

    @pytest.mark.asyncio
    async def test_rebuilt_table_counts_each_statement(self, sqlite_executor):
        orchestrator = DumpOrchestrator(
            SchemaIntrospector(sqlite_executor, PostgreSQLDialect())
        )
        source = (
            'CREATE TABLE "orders" (\n    "id" serial NOT NULL\n);\n'
            'CREATE INDEX "orders_code" ON "orders" USING btree ("code");\n'
            "COMMENT ON TABLE \"orders\" IS 'it''s; fine'"
        )
        ddl, statements = orchestrator._ddl_block(ObjectKind.TABLE, "orders", source)
        assert statements == 4
        assert ddl.count("DROP TABLE") == 1


class TestCancellation:
    """Cancellation between objects and batches."""

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, sqlite_introspector, target):
        cancel = asyncio.Event()
        cancel.set()
        sink = StringSink()
        result = await DumpOrchestrator(sqlite_introspector).dump(
            target, DumpSelection(whole_schema=True), sink, cancel_event=cancel
        )
        assert result.status is DumpStatus.CANCELLED
        assert result.succeeded == []
        assert "COMMIT;" not in sink.getvalue()
        assert sink.closed

    @pytest.mark.asyncio
    async def test_cancelled_mid_table(self, sqlite_introspector, target):
        cancel = asyncio.Event()
        sink = CancellingSink(cancel)
        writer = DataStreamWriter(
            sqlite_introspector.executor, sqlite_introspector.dialect, batch_size=1
        )
        orchestrator = DumpOrchestrator(sqlite_introspector, writer=writer)

        result = await orchestrator.dump(
            target, DumpSelection(whole_schema=True), sink, cancel_event=cancel
        )

        script = sink.getvalue()
        assert result.status is DumpStatus.CANCELLED
        assert result.rows_written == 1
        assert script.count("INSERT INTO") == 1
        assert "View definition" not in script
        assert "COMMIT;" not in script


class TestDumpService:
    """End-to-end export through a save target."""

    @pytest.mark.asyncio
    async def test_single_object_file(self, sqlite_introspector, target, tmp_path):
        save_target = DirectorySaveTarget(tmp_path / "dumps")
        service = DumpService(sqlite_introspector, save_target)

        result = await service.export(
            target,
            single=DumpObject(kind=ObjectKind.TABLE, name="users"),
            now=datetime(2024, 5, 1, 13, 45, 2),
        )

        assert result.status is DumpStatus.SUCCESS
        assert result.output_name == "users_2024-05-01_134502_.sql"
        written = (tmp_path / "dumps" / result.output_name).read_text(encoding="utf-8")
        assert "CREATE TABLE users" in written
        assert save_target.last_path == tmp_path / "dumps" / result.output_name

    @pytest.mark.asyncio
    async def test_pick_list(self, sqlite_introspector, target, tmp_path):
        service = DumpService(sqlite_introspector, DirectorySaveTarget(tmp_path / "out"))
        result = await service.export(
            target, pick_list=StaticPickList(["tags", "active_users"])
        )
        assert [str(obj) for obj in result.succeeded] == [
            "table tags",
            "view active_users",
        ]

    @pytest.mark.asyncio
    async def test_cancelled_pick_list(self, sqlite_introspector, target, tmp_path):
        out = tmp_path / "out"
        service = DumpService(sqlite_introspector, DirectorySaveTarget(out))
        result = await service.export(target, pick_list=StaticPickList(None))
        assert result.status is DumpStatus.ABORTED
        assert not out.exists()

    @pytest.mark.asyncio
    async def test_cancelled_save_dialog(self, sqlite_introspector, target):
        service = DumpService(sqlite_introspector, CancelledSaveDialog())
        result = await service.export(target)
        assert result.status is DumpStatus.ABORTED
        assert result.summary() == "Backup cancelled, nothing was written"
