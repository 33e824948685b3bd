"""Interfaces the change engine calls out through.

Implementations live in ``metacatalog.platform.persistence`` (SQL) and in the
test fakes; the engine only depends on these shapes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, List, Optional, Protocol, Set

from metacatalog.core.changes.fields import EntityReference
from metacatalog.core.changes.models import ChangeRecord
from metacatalog.core.changes.snapshot import EntitySnapshot

if TYPE_CHECKING:
    from metacatalog.core.auth.authorization import Caller


class Persistence(Protocol):
    def load(self, entity_type: str, name: str) -> EntitySnapshot:
        """Return the current snapshot or raise ``NotFound``."""

    def commit(
        self,
        entity_type: str,
        name: str,
        expected_version: Optional[float],
        snapshot: EntitySnapshot,
    ) -> EntitySnapshot:
        """Store ``snapshot``; ``expected_version=None`` inserts.

        Raises ``VersionConflict`` when the stored entity moved on (its version
        or ``snapshot.revision`` differs) or already exists for an insert. The
        returned snapshot carries the bumped revision.
        """

    def list(self, entity_type: str) -> List[EntitySnapshot]:
        ...


class Authorization(Protocol):
    def can_modify_fields(
        self,
        caller: "Caller",
        entity_type: str,
        field_names: Iterable[str],
        *,
        entity_name: Optional[str] = None,
    ) -> Set[str]:
        """Return the subset of ``field_names`` the caller may change."""


class ReferenceResolver(Protocol):
    def resolve(self, entity_type: str, name: str) -> EntityReference:
        """Return a reference or raise ``NotFound``."""

    def within_scope(self, reference: EntityReference, scope_hint: Optional[str]) -> bool:
        ...


class ChangeHistoryStore(Protocol):
    def get_last_record(self, entity_type: str, name: str) -> Optional[ChangeRecord]:
        ...

    def append(self, entity_type: str, name: str, record: ChangeRecord) -> None:
        ...

    def replace_last(self, entity_type: str, name: str, record: ChangeRecord) -> None:
        ...

    def remove_last(self, entity_type: str, name: str) -> None:
        ...

    def list_records(self, entity_type: str, name: str) -> List[ChangeRecord]:
        ...


__all__ = ["Authorization", "ChangeHistoryStore", "Persistence", "ReferenceResolver"]
