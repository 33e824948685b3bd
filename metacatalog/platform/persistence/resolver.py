"""Reference resolution over stored snapshots."""

from __future__ import annotations

from typing import Callable, Optional

from metacatalog.core.changes.fields import EntityReference
from metacatalog.core.changes.snapshot import EntitySnapshot
from metacatalog.domains.teams.hierarchy import TEAM, is_under


class SnapshotReferenceResolver:
    """Names resolve when a snapshot exists; scope is the team parent hierarchy."""

    def __init__(self, load: Callable[[str, str], EntitySnapshot]) -> None:
        self.load = load

    def resolve(self, entity_type: str, name: str) -> EntityReference:
        return self.load(entity_type, name).reference()

    def within_scope(self, reference: EntityReference, scope_hint: Optional[str]) -> bool:
        if not scope_hint or reference.type != TEAM:
            return True
        return is_under(self.load, reference.name, scope_hint)


__all__ = ["SnapshotReferenceResolver"]
