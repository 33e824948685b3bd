"""Field-level diffing of entity snapshots."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional, Sequence

from metacatalog.core.changes.fields import UNSET, FieldDescriptor, FieldTable, FieldValue
from metacatalog.core.changes.models import (
    ChangeKind,
    ChangeRecord,
    FieldChange,
    UpdateType,
    next_version,
)
from metacatalog.core.changes.snapshot import EntitySnapshot


class ChangeRecorder:
    """Computes ordered add/update/delete changes between two snapshots."""

    def __init__(self, table: FieldTable) -> None:
        self.table = table

    def field_changes(self, old: EntitySnapshot, new: EntitySnapshot) -> List[FieldChange]:
        changes: List[FieldChange] = []
        for descriptor in self.table.diffable():
            changes.extend(self._diff_field(descriptor, old.get(descriptor.name), new.get(descriptor.name)))
        return changes

    def changed_fields(self, old: EntitySnapshot, new: EntitySnapshot) -> List[str]:
        return [
            d.name
            for d in self.table.diffable()
            if not d.same(old.get(d.name), new.get(d.name))
        ]

    def classify(self, changes: Sequence[FieldChange]) -> UpdateType:
        if not changes:
            return UpdateType.NO_CHANGE
        if any(self.table.get(c.field).identity for c in changes):
            return UpdateType.MAJOR
        return UpdateType.MINOR

    def diff(
        self,
        old: EntitySnapshot,
        new: EntitySnapshot,
        *,
        updated_by: Optional[str] = None,
        updated_at: Optional[datetime] = None,
    ) -> ChangeRecord:
        changes = self.field_changes(old, new)
        update_type = self.classify(changes)
        return ChangeRecord(
            entity_type=self.table.entity_type,
            name=old.name,
            previous_version=old.version,
            new_version=next_version(old.version, update_type),
            update_type=update_type,
            changes=tuple(changes),
            updated_by=updated_by,
            updated_at=updated_at,
        )

    def creation(self, snapshot: EntitySnapshot) -> ChangeRecord:
        blank = EntitySnapshot(snapshot.entity_type, snapshot.name, 0.0)
        return ChangeRecord(
            entity_type=self.table.entity_type,
            name=snapshot.name,
            previous_version=0.0,
            new_version=snapshot.version,
            update_type=UpdateType.CREATED,
            changes=tuple(self.field_changes(blank, snapshot)),
            updated_by=snapshot.updated_by,
            updated_at=snapshot.updated_at,
        )

    def _diff_field(self, descriptor: FieldDescriptor, old: FieldValue, new: FieldValue) -> List[FieldChange]:
        name = descriptor.name
        if descriptor.is_collection:
            old_keys = set(descriptor.keys(old))
            new_keys = set(descriptor.keys(new))
            removed = [
                FieldChange(name, ChangeKind.DELETED, old_value=e)
                for e in old.items()
                if descriptor.element_key(e) not in new_keys
            ]
            added = [
                FieldChange(name, ChangeKind.ADDED, new_value=e)
                for e in new.items()
                if descriptor.element_key(e) not in old_keys
            ]
            return removed + added

        if descriptor.same(old, new):
            return []
        if not old.is_set:
            return [FieldChange(name, ChangeKind.ADDED, new_value=new.value)]
        if not new.is_set:
            return [FieldChange(name, ChangeKind.DELETED, old_value=old.value)]
        if old.is_default and not new.is_default:
            # Leaving an implicit default is a removal plus a first concrete value.
            return [
                FieldChange(name, ChangeKind.DELETED, old_value=old.value),
                FieldChange(name, ChangeKind.ADDED, new_value=new.value),
            ]
        return [FieldChange(name, ChangeKind.UPDATED, old_value=old.value, new_value=new.value)]

    def replay(self, snapshot: EntitySnapshot, record: ChangeRecord) -> EntitySnapshot:
        """Apply ``record`` forward; snapshot n becomes snapshot n+1."""
        updates = self._walk(snapshot, record.changes, forward=True)
        return snapshot.with_fields(updates).with_version(record.new_version)

    def revert(self, snapshot: EntitySnapshot, record: ChangeRecord) -> EntitySnapshot:
        """Undo ``record``; snapshot n+1 becomes snapshot n."""
        updates = self._walk(snapshot, tuple(reversed(record.changes)), forward=False)
        return snapshot.with_fields(updates).with_version(record.previous_version)

    def _walk(self, snapshot: EntitySnapshot, changes: Sequence[FieldChange], forward: bool) -> Dict[str, FieldValue]:
        working: Dict[str, List] = {}
        for change in changes:
            descriptor = self.table.get(change.field)
            if change.field not in working:
                current = snapshot.get(change.field)
                if descriptor.is_collection:
                    working[change.field] = list(current.items())
                else:
                    working[change.field] = [current.value] if current.is_set else []

            if forward:
                put = change.kind is not ChangeKind.DELETED
                value = change.new_value if put else change.old_value
            else:
                put = change.kind is not ChangeKind.ADDED
                value = change.old_value if put else change.new_value

            items = working[change.field]
            if descriptor.is_collection:
                key = descriptor.element_key(value)
                items = [e for e in items if descriptor.element_key(e) != key]
                if put:
                    items.append(value)
                working[change.field] = items
            else:
                working[change.field] = [value] if put else []

        updates: Dict[str, FieldValue] = {}
        for name, items in working.items():
            descriptor = self.table.get(name)
            if descriptor.is_collection:
                updates[name] = descriptor.restore(items)
            else:
                updates[name] = descriptor.restore(items[0]) if items else UNSET
        return updates


__all__ = ["ChangeRecorder"]
