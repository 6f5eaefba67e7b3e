"""Core dump engine: connection, execution, introspection and export."""

from .connection import DatabaseConnection
from .designer import DesignOutcome, TableDesigner
from .dump import DumpOrchestrator, DumpService
from .executor import QueryExecutor
from .inspector import IntrospectionCache, PrimaryKeyRegistry, SchemaIntrospector
from .selector import ObjectSelector, PickList, StaticPickList
from .sink import DirectorySaveTarget, FileSink, OutputSink, SaveTarget, StringSink
from .templates import delete_template, insert_template, update_template
from .writer import DataStreamWriter

__all__ = [
    "DatabaseConnection",
    "DesignOutcome",
    "TableDesigner",
    "DumpOrchestrator",
    "DumpService",
    "QueryExecutor",
    "IntrospectionCache",
    "PrimaryKeyRegistry",
    "SchemaIntrospector",
    "ObjectSelector",
    "PickList",
    "StaticPickList",
    "DirectorySaveTarget",
    "FileSink",
    "OutputSink",
    "SaveTarget",
    "StringSink",
    "delete_template",
    "insert_template",
    "update_template",
    "DataStreamWriter",
]
