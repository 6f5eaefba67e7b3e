"""Error types raised by the dialect and dump layers."""

from typing import Optional


class DumpEngineError(Exception):
    """Base class for all engine errors."""


class UnsupportedOperation(DumpEngineError):
    """A dialect has no rendering for the requested operation."""

    def __init__(self, dialect: str, operation: str, detail: Optional[str] = None):
        self.dialect = dialect
        self.operation = operation
        message = f"{dialect} does not support {operation}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class InvalidIdentifier(DumpEngineError):
    """An identifier cannot be represented by the dialect's quoting rules."""

    def __init__(self, identifier: str, reason: str):
        self.identifier = identifier
        self.reason = reason
        super().__init__(f"Invalid identifier {identifier!r}: {reason}")


class QueryExecutionError(DumpEngineError):
    """
    Failure reported by the query execution collaborator.

    Attributes:
        sql: Statement that failed
        connection_level: True when the connection itself failed (network,
            authentication, pool timeout), False for statement-level errors
    """

    def __init__(self, sql: str, cause: BaseException, connection_level: bool):
        self.sql = sql
        self.cause = cause
        self.connection_level = connection_level
        kind = "connection" if connection_level else "statement"
        super().__init__(f"{kind} error: {cause}")


class ObjectError(DumpEngineError):
    """Failure scoped to a single database object."""

    def __init__(self, object_name: str, cause: BaseException):
        self.object_name = object_name
        self.cause = cause
        super().__init__(f"{object_name}: {cause}")

    @property
    def connection_level(self) -> bool:
        return bool(getattr(self.cause, "connection_level", False))


class IntrospectionError(ObjectError):
    """Metadata for an object could not be retrieved."""


class DataReadError(ObjectError):
    """Rows for a table could not be read."""


class SinkWriteError(DumpEngineError):
    """The output sink failed; the dump cannot continue."""
