"""Dump orchestration: schema and data export into one SQL script."""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from db_dump_mcp.core.designer import split_statements
from db_dump_mcp.core.inspector import SchemaIntrospector
from db_dump_mcp.core.selector import ObjectSelector, PickList, enabled_kinds
from db_dump_mcp.core.sink import OutputSink, SaveTarget
from db_dump_mcp.core.writer import DataStreamWriter
from db_dump_mcp.errors import DumpEngineError, SinkWriteError
from db_dump_mcp.models.config import DumpSettings
from db_dump_mcp.models.dump import (
    DumpFailure,
    DumpObject,
    DumpResult,
    DumpSelection,
    DumpStatus,
    DumpTarget,
)
from db_dump_mcp.models.operations import ObjectKind
from db_dump_mcp.models.table import TableMeta

logger = logging.getLogger(__name__)

# Routines and views may reference tables; triggers must not fire during the load
OBJECT_ORDER = (
    ObjectKind.FUNCTION,
    ObjectKind.VIEW,
    ObjectKind.PROCEDURE,
    ObjectKind.TRIGGER,
)


def _banner(title: str) -> str:
    rule = "-- ----------------------------"
    return f"{rule}\n-- {title}\n{rule}\n"


class _DumpProgress:
    def __init__(self):
        self.succeeded: list[DumpObject] = []
        self.failures: list[DumpFailure] = []
        self.statements = 0
        self.rows = 0
        self.cancelled = False

    def fail(self, obj: DumpObject, stage: str, error: Exception) -> None:
        logger.warning(f"Failed to dump {obj} ({stage}): {error}")
        self.failures.append(
            DumpFailure(
                object=obj,
                stage=stage,
                reason=str(error),
                error_type=type(error).__name__,
            )
        )

    def result(self) -> DumpResult:
        if self.cancelled:
            status = DumpStatus.CANCELLED
        elif not self.failures:
            status = DumpStatus.SUCCESS
        elif not self.succeeded:
            status = DumpStatus.FAILED
        else:
            status = DumpStatus.PARTIAL
        return DumpResult(
            status=status,
            succeeded=self.succeeded,
            failures=self.failures,
            statements_written=self.statements,
            rows_written=self.rows,
        )


class DumpOrchestrator:
    """
    Sequences DDL and data for the selected objects into one sink.

    Order: tables (each table's DDL, then its rows), then functions, views
    and procedures, then triggers. A failing object is recorded and skipped;
    only sink failures abort the dump.
    """

    def __init__(
        self,
        introspector: SchemaIntrospector,
        settings: Optional[DumpSettings] = None,
        writer: Optional[DataStreamWriter] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            introspector: Schema introspector for the target connection
            settings: Dump configuration (defaults when omitted)
            writer: Row writer; built from the introspector's executor if omitted
        """
        self.introspector = introspector
        self.dialect = introspector.dialect
        self.settings = settings or DumpSettings()
        self.writer = writer or DataStreamWriter(
            introspector.executor, self.dialect, self.settings.batch_size
        )

    async def dump(
        self,
        target: DumpTarget,
        selection: DumpSelection,
        sink: OutputSink,
        include_data: Optional[bool] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> DumpResult:
        """
        Write the selected objects to the sink and close it.

        Args:
            target: Connection/schema being dumped
            selection: Objects to dump
            sink: Output destination, closed when the dump ends
            include_data: Overrides the selection's include_data flag
            cancel_event: Checked between objects and between data batches

        Returns:
            Result with per-object failures and counts

        Raises:
            SinkWriteError: If the sink fails
        """
        with_data = selection.include_data if include_data is None else include_data
        progress = _DumpProgress()
        schema = target.schema_name
        logger.info(f"Starting dump of {schema or 'default schema'} ({target.dialect})")

        # Metadata is read fresh for every dump
        introspector = self.introspector.fresh()

        try:
            plan, snapshots = await self._plan(introspector, selection, schema, progress)

            await self._write_statements(
                sink,
                progress,
                [f"-- {self.dialect.name} dump of {target.host}_{schema or ''}"]
                + self.dialect.dump_header(schema, selection.whole_schema),
            )

            for name in plan[ObjectKind.TABLE]:
                if self._cancelled(cancel_event, progress):
                    break
                await self._dump_table(
                    introspector, name, schema, snapshots.get(name), with_data,
                    sink, progress, cancel_event,
                )

            for kind in OBJECT_ORDER:
                for name in plan[kind]:
                    if self._cancelled(cancel_event, progress):
                        break
                    await self._dump_object(
                        introspector, kind, name, schema, sink, progress
                    )

            if not progress.cancelled:
                await self._write_statements(sink, progress, self.dialect.dump_footer())
        finally:
            await sink.close()

        result = progress.result()
        logger.info(
            f"Dump finished: {result.status.value}, {result.success_count} objects, "
            f"{result.failure_count} failures, {result.rows_written} rows"
        )
        return result

    def _cancelled(
        self, cancel_event: Optional[asyncio.Event], progress: _DumpProgress
    ) -> bool:
        if progress.cancelled:
            return True
        if cancel_event is not None and cancel_event.is_set():
            progress.cancelled = True
        return progress.cancelled

    async def _plan(
        self,
        introspector: SchemaIntrospector,
        selection: DumpSelection,
        schema: Optional[str],
        progress: _DumpProgress,
    ) -> tuple[dict[ObjectKind, list[str]], dict[str, TableMeta]]:
        plan: dict[ObjectKind, list[str]] = {kind: [] for kind in ObjectKind}
        snapshots: dict[str, TableMeta] = {}

        if not selection.whole_schema:
            for kind in ObjectKind:
                plan[kind] = list(selection.names(kind))
            return plan, snapshots

        for kind in enabled_kinds(self.dialect.capabilities, self.settings):
            try:
                if kind is ObjectKind.TABLE:
                    tables = await introspector.list_tables(schema)
                    snapshots = {table.name: table for table in tables}
                    plan[kind] = [table.name for table in tables]
                else:
                    plan[kind] = await introspector.list_objects(kind, schema)
            except SinkWriteError:
                raise
            except DumpEngineError as e:
                progress.fail(DumpObject(kind=kind, name=schema or "*"), "list", e)
        return plan, snapshots

    async def _write_statements(
        self, sink: OutputSink, progress: _DumpProgress, statements: list[str]
    ) -> None:
        if not statements:
            return
        await sink.write("\n".join(statements) + "\n\n")
        progress.statements += sum(1 for s in statements if not s.startswith("--"))

    async def _dump_table(
        self,
        introspector: SchemaIntrospector,
        name: str,
        schema: Optional[str],
        snapshot: Optional[TableMeta],
        with_data: bool,
        sink: OutputSink,
        progress: _DumpProgress,
        cancel_event: Optional[asyncio.Event],
    ) -> None:
        obj = DumpObject(kind=ObjectKind.TABLE, name=name)
        logger.info(f"Dumping {obj}")

        # Build the whole DDL block before writing so a failure leaves no fragment
        try:
            meta = await introspector.describe_table(name, schema, snapshot)
            source = await introspector.get_table_source(name, schema)
            ddl, statements = self._ddl_block(ObjectKind.TABLE, name, source)
            after_data = self.dialect.after_data_statements(meta)
        except SinkWriteError:
            raise
        except DumpEngineError as e:
            progress.fail(obj, "ddl", e)
            return

        await sink.write(ddl)
        progress.statements += statements

        if with_data:
            await sink.write(_banner(f"Records of {name}"))
            try:
                written = await self.writer.write_data(meta, sink, schema, cancel_event)
            except SinkWriteError:
                raise
            except DumpEngineError as e:
                progress.fail(obj, "data", e)
                await sink.write("\n")
                return
            progress.rows += written.rows
            progress.statements += (
                written.batches
                if self.dialect.capabilities.multi_row_insert
                else written.rows
            )
            if written.cancelled:
                await sink.write("\n")
                progress.cancelled = True
                return
            if after_data:
                await sink.write("\n".join(after_data) + "\n")
                progress.statements += len(after_data)
            await sink.write("\n")

        progress.succeeded.append(obj)

    async def _dump_object(
        self,
        introspector: SchemaIntrospector,
        kind: ObjectKind,
        name: str,
        schema: Optional[str],
        sink: OutputSink,
        progress: _DumpProgress,
    ) -> None:
        obj = DumpObject(kind=kind, name=name)
        logger.info(f"Dumping {obj}")
        try:
            source = await introspector.get_object_source(kind, name, schema)
            ddl, statements = self._ddl_block(kind, name, source)
        except SinkWriteError:
            raise
        except DumpEngineError as e:
            progress.fail(obj, "ddl", e)
            return

        await sink.write(ddl)
        progress.statements += statements
        progress.succeeded.append(obj)

    def _ddl_block(self, kind: ObjectKind, name: str, source: str) -> tuple[str, int]:
        """Banner, optional DROP and CREATE text, with the number of statements."""
        title = "structure" if kind is ObjectKind.TABLE else "definition"
        parts = [_banner(f"{kind.label} {title} for {name}")]
        statements = 0
        if self.settings.add_drop_statements:
            drop = self.dialect.drop_statement(kind, name)
            if drop:
                parts.append(drop + "\n")
                statements += 1
        parts.append(self.dialect.object_statement(kind, source) + "\n\n")
        statements += self._source_statements(kind, source)
        return "".join(parts), statements

    def _source_statements(self, kind: ObjectKind, source: str) -> int:
        # Rebuilt table DDL carries index and comment statements after CREATE TABLE
        if kind is ObjectKind.TABLE and not self.dialect.capabilities.native_table_source:
            return len(
                split_statements(
                    source,
                    backslash_escapes=self.dialect.string_escaper.backslash_escapes,
                )
            )
        return 1


class DumpService:
    """
    End-to-end export: selection, save dialog, orchestration, summary.

    Cancelling the pick list or the save dialog aborts before anything is
    written.
    """

    def __init__(
        self,
        introspector: SchemaIntrospector,
        save_target: SaveTarget,
        settings: Optional[DumpSettings] = None,
        orchestrator: Optional[DumpOrchestrator] = None,
    ):
        self.introspector = introspector
        self.save_target = save_target
        self.settings = settings or DumpSettings()
        self.selector = ObjectSelector(introspector, self.settings)
        self.orchestrator = orchestrator or DumpOrchestrator(
            introspector, self.settings
        )

    async def export(
        self,
        target: DumpTarget,
        single: Optional[DumpObject] = None,
        pick_list: Optional[PickList] = None,
        include_data: bool = True,
        cancel_event: Optional[asyncio.Event] = None,
        now: Optional[datetime] = None,
    ) -> DumpResult:
        """
        Run one export.

        Args:
            target: Connection/schema to export
            single: Export exactly this object
            pick_list: Chooser for multi-object exports; whole schema if omitted
            include_data: Whether table rows are exported
            cancel_event: Cancellation signal
            now: Timestamp for the default file name

        Returns:
            Dump result; ABORTED when the user cancelled before writing
        """
        selection = await self.selector.resolve(
            target, single=single, pick_list=pick_list, include_data=include_data
        )
        if selection is None:
            return DumpResult(status=DumpStatus.ABORTED)

        if single is not None and target.object_name is None:
            target = target.model_copy(update={"object_name": single.name})

        name = target.default_file_name(now)
        sink = await self.save_target.open_for_write(name)
        if sink is None:
            logger.info("Save dialog cancelled, nothing written")
            return DumpResult(status=DumpStatus.ABORTED)

        result = await self.orchestrator.dump(
            target, selection, sink, include_data, cancel_event
        )
        result.output_name = name
        logger.info(result.summary(target))
        return result
