"""Dump request and result models."""

from datetime import datetime
from enum import Enum
from typing import Iterator, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from db_dump_mcp.models.operations import ObjectKind

# yyyy-MM-dd_HHmmss
DUMP_TIMESTAMP_FORMAT = "%Y-%m-%d_%H%M%S"


class DumpObject(BaseModel):
    """Reference to one schema object."""

    model_config = ConfigDict(frozen=True)

    kind: ObjectKind
    name: str

    def __str__(self) -> str:
        return f"{self.kind.value} {self.name}"


def _dedupe(names: tuple[str, ...]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(names))


class DumpSelection(BaseModel):
    """
    Objects chosen for one dump.

    When ``whole_schema`` is set the explicit name sets are ignored and the
    orchestrator enumerates the schema itself.
    """

    model_config = ConfigDict(frozen=True)

    tables: tuple[str, ...] = ()
    views: tuple[str, ...] = ()
    procedures: tuple[str, ...] = ()
    functions: tuple[str, ...] = ()
    triggers: tuple[str, ...] = ()
    whole_schema: bool = False
    include_data: bool = True

    @field_validator("tables", "views", "procedures", "functions", "triggers")
    @classmethod
    def _unique_names(cls, names: tuple[str, ...]) -> tuple[str, ...]:
        return _dedupe(names)

    @model_validator(mode="after")
    def _check_sets(self) -> "DumpSelection":
        # Tables and views share one namespace
        clash = set(self.tables) & set(self.views)
        if clash:
            raise ValueError(
                f"Names selected as both table and view: {', '.join(sorted(clash))}"
            )
        return self

    @classmethod
    def single(
        cls, kind: ObjectKind, name: str, include_data: bool = True
    ) -> "DumpSelection":
        """Selection holding exactly one object."""
        return cls.from_objects([DumpObject(kind=kind, name=name)], include_data)

    @classmethod
    def from_objects(
        cls, objects: list[DumpObject], include_data: bool = True
    ) -> "DumpSelection":
        """Split a flat object list into the per-kind name sets."""
        by_kind: dict[ObjectKind, list[str]] = {kind: [] for kind in ObjectKind}
        for obj in objects:
            by_kind[obj.kind].append(obj.name)
        return cls(
            tables=tuple(by_kind[ObjectKind.TABLE]),
            views=tuple(by_kind[ObjectKind.VIEW]),
            procedures=tuple(by_kind[ObjectKind.PROCEDURE]),
            functions=tuple(by_kind[ObjectKind.FUNCTION]),
            triggers=tuple(by_kind[ObjectKind.TRIGGER]),
            include_data=include_data,
        )

    def names(self, kind: ObjectKind) -> tuple[str, ...]:
        return {
            ObjectKind.TABLE: self.tables,
            ObjectKind.VIEW: self.views,
            ObjectKind.PROCEDURE: self.procedures,
            ObjectKind.FUNCTION: self.functions,
            ObjectKind.TRIGGER: self.triggers,
        }[kind]

    def objects(self) -> Iterator[DumpObject]:
        for kind in ObjectKind:
            for name in self.names(kind):
                yield DumpObject(kind=kind, name=name)

    @property
    def is_empty(self) -> bool:
        return not self.whole_schema and not any(True for _ in self.objects())


class DumpTarget(BaseModel):
    """Connection/schema pair a dump runs against."""

    model_config = ConfigDict(frozen=True)

    connection_id: str = Field(..., description="Sanitized connection identity")
    dialect: str = Field(..., description="Dialect identity (mysql, postgresql, sqlite)")
    schema_name: Optional[str] = Field(None, description="Schema/database to dump")
    host: str = Field(default="local", description="Host name for messages")
    object_name: Optional[str] = Field(
        None, description="Single exported object, used in the default file name"
    )

    def default_file_name(self, now: Optional[datetime] = None) -> str:
        """Suggested artifact name: <object>_<yyyy-MM-dd_HHmmss>_<schema>.sql"""
        return default_dump_name(self.object_name, self.schema_name, now)


def default_dump_name(
    object_name: Optional[str],
    schema_name: Optional[str],
    now: Optional[datetime] = None,
) -> str:
    """
    Build the default dump file name in local time.

    Args:
        object_name: Exported object, or None for a multi-object dump
        schema_name: Schema being dumped
        now: Timestamp to use (defaults to the current local time)

    Returns:
        File name such as ``users_2024-05-01_134502_shop.sql``
    """
    stamp = (now or datetime.now()).strftime(DUMP_TIMESTAMP_FORMAT)
    return f"{object_name or ''}_{stamp}_{schema_name or ''}.sql"


class DumpStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"
    CANCELLED = "cancelled"
    ABORTED = "aborted"


class DumpFailure(BaseModel):
    """One object that could not be dumped."""

    object: DumpObject
    stage: str = Field(..., description="list, ddl or data")
    reason: str
    error_type: str


class WriteResult(BaseModel):
    """Outcome of streaming one table's rows."""

    table: str
    rows: int = 0
    batches: int = 0
    cancelled: bool = False


class DumpResult(BaseModel):
    """Outcome of a dump invocation."""

    status: DumpStatus
    succeeded: list[DumpObject] = Field(default_factory=list)
    failures: list[DumpFailure] = Field(default_factory=list)
    statements_written: int = 0
    rows_written: int = 0
    output_name: Optional[str] = None

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    def summary(self, target: Optional[DumpTarget] = None) -> str:
        """User-facing completion message."""
        label = ""
        if target is not None:
            label = f" {target.host}_{target.schema_name or ''}"

        if self.status is DumpStatus.ABORTED:
            return f"Backup{label} cancelled, nothing was written"
        if self.status is DumpStatus.CANCELLED:
            return (
                f"Backup{label} cancelled after {self.success_count} objects "
                f"({self.rows_written} rows)"
            )
        if self.status is DumpStatus.SUCCESS:
            return (
                f"Backup{label} success! {self.success_count} objects, "
                f"{self.rows_written} rows"
            )

        total = self.success_count + self.failure_count
        lines = [
            f"Backup{label} finished with errors: "
            f"{self.success_count} of {total} objects dumped"
        ]
        for failure in self.failures:
            lines.append(f"  - {failure.object} ({failure.stage}): {failure.reason}")
        return "\n".join(lines)
