"""Resolution of dump requests into object selections."""

import logging
from typing import Optional, Protocol, Sequence

from db_dump_mcp.core.inspector import SchemaIntrospector
from db_dump_mcp.models.capabilities import DialectCapabilities
from db_dump_mcp.models.config import DumpSettings
from db_dump_mcp.models.dump import DumpObject, DumpSelection, DumpTarget
from db_dump_mcp.models.operations import ObjectKind

logger = logging.getLogger(__name__)


class PickList(Protocol):
    """External chooser presented with candidate objects."""

    async def choose(
        self, candidates: Sequence[DumpObject]
    ) -> Optional[Sequence[DumpObject]]:
        """Return the chosen subset, or None if the user cancelled."""
        ...


class StaticPickList:
    """Pick list answering with a fixed set of object names."""

    def __init__(self, names: Optional[Sequence[str]]):
        """
        Args:
            names: Names to choose, or None to behave like a cancelled dialog
        """
        self.names = None if names is None else list(names)

    async def choose(
        self, candidates: Sequence[DumpObject]
    ) -> Optional[Sequence[DumpObject]]:
        if self.names is None:
            return None
        wanted = set(self.names)
        chosen = [candidate for candidate in candidates if candidate.name in wanted]
        found = {candidate.name for candidate in chosen}
        # Unknown names are kept as tables so the dump reports them as failures
        chosen.extend(
            DumpObject(kind=ObjectKind.TABLE, name=name)
            for name in self.names
            if name not in found
        )
        return chosen


def enabled_kinds(
    capabilities: DialectCapabilities, settings: DumpSettings
) -> list[ObjectKind]:
    """Object kinds offered for a dialect under the configuration flags."""
    kinds = [ObjectKind.TABLE]
    if settings.show_view and capabilities.views:
        kinds.append(ObjectKind.VIEW)
    if settings.show_procedure and capabilities.stored_procedures:
        kinds.append(ObjectKind.PROCEDURE)
    if settings.show_function and capabilities.functions:
        kinds.append(ObjectKind.FUNCTION)
    if settings.show_trigger and capabilities.triggers:
        kinds.append(ObjectKind.TRIGGER)
    return kinds


class ObjectSelector:
    """Builds a DumpSelection from a target, configuration flags and a pick list."""

    def __init__(self, introspector: SchemaIntrospector, settings: DumpSettings):
        self.introspector = introspector
        self.settings = settings

    def enabled_kinds(self) -> list[ObjectKind]:
        return enabled_kinds(self.introspector.dialect.capabilities, self.settings)

    async def candidates(self, target: DumpTarget) -> list[DumpObject]:
        """Every object the user may pick, per enabled category."""
        objects = []
        for kind in self.enabled_kinds():
            names = await self.introspector.list_objects(kind, target.schema_name)
            objects.extend(DumpObject(kind=kind, name=name) for name in names)
        return objects

    async def resolve(
        self,
        target: DumpTarget,
        single: Optional[DumpObject] = None,
        pick_list: Optional[PickList] = None,
        include_data: bool = True,
    ) -> Optional[DumpSelection]:
        """
        Resolve a dump request.

        Args:
            target: Connection/schema being dumped
            single: Object named by the caller; skips the pick list
            pick_list: Chooser for multi-object dumps; without one the whole
                schema is selected
            include_data: Whether table rows are dumped

        Returns:
            The selection, or None if the pick list was cancelled
        """
        if single is not None:
            return DumpSelection.single(single.kind, single.name, include_data)

        if pick_list is None:
            return DumpSelection(whole_schema=True, include_data=include_data)

        candidates = await self.candidates(target)
        chosen = await pick_list.choose(candidates)
        if chosen is None:
            logger.info(f"Dump of {target.schema_name or 'default schema'} cancelled")
            return None
        return DumpSelection.from_objects(list(chosen), include_data)
