"""
db_dump_mcp - SQL dialect rendering and dump/export MCP server

Translates logical database operations into dialect-correct SQL for
PostgreSQL, MySQL, and SQLite, and exports selected schema objects with
their data into a single replayable SQL script.
"""

__version__ = "0.1.0"

from .dialects import BaseDialect, create_dialect, detect_dialect
from .errors import (
    DataReadError,
    DumpEngineError,
    IntrospectionError,
    InvalidIdentifier,
    QueryExecutionError,
    SinkWriteError,
    UnsupportedOperation,
)
from .models.config import DatabaseConfig, DumpSettings
from .models.dump import DumpResult, DumpSelection, DumpStatus, DumpTarget

__all__ = [
    "BaseDialect",
    "create_dialect",
    "detect_dialect",
    "DataReadError",
    "DumpEngineError",
    "IntrospectionError",
    "InvalidIdentifier",
    "QueryExecutionError",
    "SinkWriteError",
    "UnsupportedOperation",
    "DatabaseConfig",
    "DumpSettings",
    "DumpResult",
    "DumpSelection",
    "DumpStatus",
    "DumpTarget",
]
