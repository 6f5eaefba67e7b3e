"""SQL Dump MCP Server

A Model Context Protocol (MCP) server exposing dialect-aware SQL rendering
and schema/data export for PostgreSQL, MySQL, and SQLite databases.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from mcp.server import Server
from mcp.types import TextContent, Tool

from db_dump_mcp.core import (
    DatabaseConnection,
    DirectorySaveTarget,
    DumpOrchestrator,
    DumpService,
    ObjectSelector,
    QueryExecutor,
    SchemaIntrospector,
    StaticPickList,
    StringSink,
    delete_template,
    insert_template,
    update_template,
)
from db_dump_mcp.dialects import create_dialect
from db_dump_mcp.models.config import DatabaseConfig, DumpSettings
from db_dump_mcp.models.dump import DumpResult, DumpStatus, DumpTarget
from db_dump_mcp.models.operations import ObjectKind, parse_operation
from db_dump_mcp.utils import dumps

# Load environment variables
load_dotenv()

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Response size limits (in characters) for MCP tool responses
MAX_RESPONSE_DUMP_INFO = 2000  # Dialect and capabilities
MAX_RESPONSE_LIST_OBJECTS = 5000  # Object listings
MAX_RESPONSE_RENDER = 5000  # Rendered SQL
MAX_RESPONSE_DESCRIBE_TABLE = 8000  # Columns, indexes, tooltip
MAX_RESPONSE_TABLE_SOURCE = 8000  # DDL text
MAX_RESPONSE_DUMP = 10000  # Dump summary or preview script


def truncate_response(data: str, max_length: int) -> str:
    """
    Truncate a response to a maximum length, cutting at a line boundary.

    Args:
        data: Text to truncate
        max_length: Maximum length in characters

    Returns:
        Truncated text with truncation notice if needed
    """
    if len(data) <= max_length:
        return data

    truncation_msg = (
        f"\n\n... [Response truncated: {len(data)} chars -> {max_length} chars "
        "to preserve context window]"
    )
    available_length = max_length - len(truncation_msg)

    if available_length < 100:
        return dumps(
            {
                "error": "Response too large",
                "original_size": len(data),
                "limit": max_length,
                "message": "Response exceeds size limit. Please narrow the request.",
            },
            pretty=True,
        )

    truncated = data[:available_length]

    # Only use newline if it's in the last 20%
    last_newline = truncated.rfind("\n")
    if last_newline > available_length * 0.8:
        truncated = truncated[:last_newline]

    return truncated + truncation_msg


def _text(data: str, max_length: int) -> list[TextContent]:
    return [TextContent(type="text", text=truncate_response(data, max_length))]


class DumpMCPServer:
    """MCP server for SQL rendering and dump operations."""

    def __init__(
        self,
        config: DatabaseConfig,
        settings: Optional[DumpSettings] = None,
        output_dir: Optional[str] = None,
        default_schema: Optional[str] = None,
    ):
        """
        Initialize dump MCP server.

        Args:
            config: Database configuration
            settings: Dump configuration flags
            output_dir: Directory receiving dump files
            default_schema: Schema used when a tool call names none
        """
        self.config = config
        self.settings = settings or DumpSettings()
        self.output_dir = Path(output_dir or ".")
        self.default_schema = default_schema
        if self.default_schema is None and config.dialect == "mysql":
            self.default_schema = config.database
        self.connection = DatabaseConnection(config)
        self.dialect = create_dialect(config, self.settings.default_page_size)
        self.executor: Optional[QueryExecutor] = None
        self.introspector: Optional[SchemaIntrospector] = None
        self.server = Server("db-dump-mcp")

    async def initialize(self) -> None:
        """Initialize all components."""
        await self.connection.initialize()

        self.executor = QueryExecutor(self.connection)
        # No cache: every tool call reads current metadata
        self.introspector = SchemaIntrospector(self.executor, self.dialect)

        logger.info(
            f"Initialized {self.dialect.name} dump server "
            f"({len(self.dialect.capabilities.get_supported_features())} features)"
        )

    def _schema(self, arguments: dict[str, Any]) -> Optional[str]:
        return arguments.get("schema") or self.default_schema

    def _target(self, schema: Optional[str]) -> DumpTarget:
        return DumpTarget(
            connection_id=self.connection.connection_id,
            dialect=self.dialect.name,
            schema_name=schema,
            host=self.config.host,
        )

    def _create_get_dump_info_tool(self) -> Tool:
        return Tool(
            name="get_dump_info",
            description="Get dialect, server version and supported dump features",
            inputSchema={"type": "object", "properties": {}, "required": []},
        )

    def _create_list_dump_objects_tool(self) -> Tool:
        return Tool(
            name="list_dump_objects",
            description="List tables, views, procedures, functions and triggers that can be dumped",
            inputSchema={
                "type": "object",
                "properties": {
                    "schema": {
                        "type": "string",
                        "description": "Schema name (optional, uses default if not specified)",
                    },
                },
                "required": [],
            },
        )

    def _create_describe_table_tool(self) -> Tool:
        return Tool(
            name="describe_table",
            description="Get ordered columns, indexes and storage details of a table",
            inputSchema={
                "type": "object",
                "properties": {
                    "table": {"type": "string", "description": "Table name"},
                    "schema": {"type": "string", "description": "Schema name (optional)"},
                },
                "required": ["table"],
            },
        )

    def _create_show_table_source_tool(self) -> Tool:
        return Tool(
            name="show_table_source",
            description="Show the CREATE statement of a table, view, procedure, function or trigger",
            inputSchema={
                "type": "object",
                "properties": {
                    "name": {"type": "string", "description": "Object name"},
                    "kind": {
                        "type": "string",
                        "enum": [kind.value for kind in ObjectKind],
                        "default": "table",
                    },
                    "schema": {"type": "string", "description": "Schema name (optional)"},
                },
                "required": ["name"],
            },
        )

    def _create_render_operation_tool(self) -> Tool:
        return Tool(
            name="render_operation",
            description=(
                "Render a structured operation (show_columns, add_column, update_table, "
                "update_column, create_index, drop_index, build_page_query, ...) "
                "to SQL for this database without executing it"
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "operation": {
                        "type": "object",
                        "description": 'Tagged operation, e.g. {"op": "build_page_query", "table": "orders", "page_size": 50}',
                    },
                },
                "required": ["operation"],
            },
        )

    def _create_sql_templates_tool(self) -> Tool:
        return Tool(
            name="sql_templates",
            description="Render INSERT/UPDATE/DELETE templates with $column placeholders for a table",
            inputSchema={
                "type": "object",
                "properties": {
                    "table": {"type": "string", "description": "Table name"},
                    "schema": {"type": "string", "description": "Schema name (optional)"},
                },
                "required": ["table"],
            },
        )

    def _create_dump_schema_tool(self) -> Tool:
        return Tool(
            name="dump_schema",
            description=(
                "Export objects (DDL and optionally data) to a replayable SQL file. "
                "Without 'objects' the whole schema is exported."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "schema": {"type": "string", "description": "Schema name (optional)"},
                    "objects": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Object names to export (optional)",
                    },
                    "include_data": {
                        "type": "boolean",
                        "description": "Export table rows (default: true)",
                        "default": True,
                    },
                    "preview": {
                        "type": "boolean",
                        "description": "Return the script instead of writing a file",
                        "default": False,
                    },
                },
                "required": [],
            },
        )

    def list_tools(self) -> list[Tool]:
        return [
            self._create_get_dump_info_tool(),
            self._create_list_dump_objects_tool(),
            self._create_describe_table_tool(),
            self._create_show_table_source_tool(),
            self._create_render_operation_tool(),
            self._create_sql_templates_tool(),
            self._create_dump_schema_tool(),
        ]

    # Tool handlers
    async def handle_get_dump_info(
        self, arguments: dict[str, Any]
    ) -> list[TextContent]:
        """Handle get_dump_info request."""
        version = await self.connection.get_version()
        info = {
            "dialect": self.dialect.name,
            "version": version,
            "connection": self.connection.connection_id,
            "read_only": self.config.read_only,
            "capabilities": self.dialect.capabilities.model_dump(),
            "settings": self.settings.model_dump(),
        }
        return _text(dumps(info, pretty=True), MAX_RESPONSE_DUMP_INFO)

    async def handle_list_dump_objects(
        self, arguments: dict[str, Any]
    ) -> list[TextContent]:
        """Handle list_dump_objects request."""
        assert self.introspector is not None

        selector = ObjectSelector(self.introspector, self.settings)
        candidates = await selector.candidates(self._target(self._schema(arguments)))
        grouped: dict[str, list[str]] = {}
        for candidate in candidates:
            grouped.setdefault(candidate.kind.value, []).append(candidate.name)
        return _text(dumps(grouped, pretty=True), MAX_RESPONSE_LIST_OBJECTS)

    async def handle_describe_table(
        self, arguments: dict[str, Any]
    ) -> list[TextContent]:
        """Handle describe_table request."""
        assert self.introspector is not None

        table = arguments["table"]
        schema = self._schema(arguments)
        meta = await self.introspector.describe_table(table, schema)
        indexes = await self.introspector.get_indexes(table, schema)
        data = {
            **meta.model_dump(mode="json"),
            "primary_key": meta.primary_key_columns,
            "indexes": [index.model_dump(mode="json") for index in indexes],
        }
        return _text(dumps(data, pretty=True), MAX_RESPONSE_DESCRIBE_TABLE)

    async def handle_show_table_source(
        self, arguments: dict[str, Any]
    ) -> list[TextContent]:
        """Handle show_table_source request."""
        assert self.introspector is not None

        kind = ObjectKind(arguments.get("kind", "table"))
        source = await self.introspector.get_object_source(
            kind, arguments["name"], self._schema(arguments)
        )
        return _text(source, MAX_RESPONSE_TABLE_SOURCE)

    async def handle_render_operation(
        self, arguments: dict[str, Any]
    ) -> list[TextContent]:
        """Handle render_operation request."""
        data = dict(arguments["operation"])
        if "schema_name" not in data and self.default_schema:
            data["schema_name"] = self.default_schema
        sql = self.dialect.render(parse_operation(data))
        return _text(sql, MAX_RESPONSE_RENDER)

    async def handle_sql_templates(
        self, arguments: dict[str, Any]
    ) -> list[TextContent]:
        """Handle sql_templates request."""
        assert self.introspector is not None

        table = arguments["table"]
        schema = self._schema(arguments)
        columns = await self.introspector.get_columns(table, schema)
        templates = {
            "insert": insert_template(self.dialect, table, columns, schema),
            "update": update_template(self.dialect, table, columns, schema),
            "delete": delete_template(self.dialect, table, columns, schema),
        }
        return _text(dumps(templates, pretty=True), MAX_RESPONSE_RENDER)

    async def handle_dump_schema(
        self, arguments: dict[str, Any]
    ) -> list[TextContent]:
        """Handle dump_schema request."""
        assert self.introspector is not None

        target = self._target(self._schema(arguments))
        include_data = arguments.get("include_data", True)
        objects = arguments.get("objects")
        pick_list = StaticPickList(objects) if objects else None

        if arguments.get("preview", False):
            selector = ObjectSelector(self.introspector, self.settings)
            selection = await selector.resolve(
                target, pick_list=pick_list, include_data=include_data
            )
            if selection is None:
                return _text(
                    DumpResult(status=DumpStatus.ABORTED).summary(target),
                    MAX_RESPONSE_DUMP,
                )
            sink = StringSink()
            orchestrator = DumpOrchestrator(self.introspector, self.settings)
            result = await orchestrator.dump(target, selection, sink)
            return _text(
                f"{result.summary(target)}\n\n{sink.getvalue()}", MAX_RESPONSE_DUMP
            )

        service = DumpService(
            self.introspector, DirectorySaveTarget(self.output_dir), self.settings
        )
        result = await service.export(
            target, pick_list=pick_list, include_data=include_data
        )
        response = {
            "message": result.summary(target),
            "file": str(self.output_dir / result.output_name)
            if result.output_name
            else None,
            **result.model_dump(mode="json"),
        }
        return _text(dumps(response, pretty=True), MAX_RESPONSE_DUMP)

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> list[TextContent]:
        """Dispatch a tool call to its handler."""
        handlers = {
            "get_dump_info": self.handle_get_dump_info,
            "list_dump_objects": self.handle_list_dump_objects,
            "describe_table": self.handle_describe_table,
            "show_table_source": self.handle_show_table_source,
            "render_operation": self.handle_render_operation,
            "sql_templates": self.handle_sql_templates,
            "dump_schema": self.handle_dump_schema,
        }

        handler = handlers.get(name)
        if handler is None:
            raise ValueError(f"Unknown tool: {name}")

        return await handler(arguments)

    async def cleanup(self) -> None:
        """Cleanup resources."""
        await self.connection.dispose()
        logger.info("Dump MCP server cleaned up")


async def main() -> None:
    """Main entry point for the MCP server."""
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise ValueError("DATABASE_URL environment variable must be set")

    config = DatabaseConfig(url=database_url)
    mcp_server = DumpMCPServer(
        config,
        settings=DumpSettings.from_env(),
        output_dir=os.getenv("DUMP_OUTPUT_DIR"),
        default_schema=os.getenv("DUMP_SCHEMA"),
    )

    try:
        await mcp_server.initialize()

        @mcp_server.server.list_tools()
        async def list_tools() -> list[Tool]:
            return mcp_server.list_tools()

        @mcp_server.server.call_tool()
        async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
            return await mcp_server.call_tool(name, arguments)

        from mcp.server.stdio import stdio_server

        async with stdio_server() as (read_stream, write_stream):
            await mcp_server.server.run(
                read_stream,
                write_stream,
                mcp_server.server.create_initialization_options(),
            )

    finally:
        await mcp_server.cleanup()


def cli_entry() -> None:
    """
    Synchronous entry point for console script.

    This function is called by the 'db-dump-mcp' console script.
    """
    # Windows-specific event loop policy
    if os.name == "nt":
        asyncio.set_event_loop_policy(asyncio.WindowsProactorEventLoopPolicy())  # type: ignore[attr-defined]

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except Exception as e:
        logger.error(f"Server error: {e}", exc_info=True)
        raise


if __name__ == "__main__":
    cli_entry()
