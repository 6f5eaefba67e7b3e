"""Utility modules for the dump engine."""

from db_dump_mcp.utils.serialization import dumps

__all__ = ["dumps"]
