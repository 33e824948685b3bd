"""Patch merge engine: new snapshot plus a change record that never loses history."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional

from metacatalog.core.auth.authorization import Caller
from metacatalog.core.changes.consolidation import consolidate
from metacatalog.core.changes.fields import FieldTable, FieldValue, explicit
from metacatalog.core.changes.models import ChangeRecord, UpdateType, next_version
from metacatalog.core.changes.recorder import ChangeRecorder
from metacatalog.core.changes.snapshot import INITIAL_VERSION, EntitySnapshot
from metacatalog.core.collaborators import Authorization
from metacatalog.core.errors import Forbidden

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TIMEOUT = timedelta(minutes=10)


@dataclass(frozen=True)
class MergeOutcome:
    snapshot: EntitySnapshot
    record: ChangeRecord
    consolidated: bool = False

    @property
    def changed(self) -> bool:
        """Whether anything must be committed."""
        return self.record.update_type is not UpdateType.NO_CHANGE or self.consolidated


class PatchMergeEngine:
    def __init__(
        self,
        table: FieldTable,
        authorization: Optional[Authorization] = None,
        session_timeout: timedelta = DEFAULT_SESSION_TIMEOUT,
    ) -> None:
        self.table = table
        self.authorization = authorization
        self.session_timeout = session_timeout
        self.recorder = ChangeRecorder(table)

    def apply(
        self,
        current: EntitySnapshot,
        requested: EntitySnapshot,
        *,
        caller: Caller,
        last_record: Optional[ChangeRecord] = None,
        now: Optional[datetime] = None,
    ) -> MergeOutcome:
        now = now or datetime.utcnow()
        resolved = self._resolve_defaults(current, requested)
        resolved = self._enforce_permissions(current, resolved, caller)

        changes = self.recorder.field_changes(current, resolved)
        update_type = self.recorder.classify(changes)
        if update_type is UpdateType.NO_CHANGE:
            return MergeOutcome(current, self._record(current.version, current.version, update_type, (), caller, now, current.name))

        if self._same_session(current, last_record, caller, update_type, now):
            merged = consolidate(self.table, last_record.changes, changes)
            if not merged:
                # Everything this session did was undone: back to the pre-session version.
                logger.info(
                    "Consolidated changes to %s %s cancel out; reverting to %s",
                    self.table.entity_type,
                    current.name,
                    last_record.previous_version,
                )
                snapshot = resolved.with_version(last_record.previous_version, updated_by=caller.name, updated_at=now)
                record = self._record(
                    last_record.previous_version, last_record.previous_version, UpdateType.NO_CHANGE, (), caller, now, current.name
                )
                return MergeOutcome(snapshot, record, consolidated=True)
            record = self._record(
                last_record.previous_version, last_record.new_version, UpdateType.MINOR, merged, caller, now, current.name
            )
            snapshot = resolved.with_version(current.version, updated_by=caller.name, updated_at=now)
            return MergeOutcome(snapshot, record, consolidated=True)

        version = next_version(current.version, update_type)
        record = self._record(current.version, version, update_type, tuple(changes), caller, now, current.name)
        return MergeOutcome(resolved.with_version(version, updated_by=caller.name, updated_at=now), record)

    def create(
        self,
        requested: EntitySnapshot,
        *,
        caller: Caller,
        now: Optional[datetime] = None,
    ) -> MergeOutcome:
        """First version of an entity; defaults fill every unset field that declares one."""
        now = now or datetime.utcnow()
        blank = EntitySnapshot(requested.entity_type, requested.name, 0.0)
        fields: Dict[str, FieldValue] = {}
        for descriptor in self.table:
            value = requested.get(descriptor.name)
            if descriptor.system_managed:
                continue
            if not value.is_set:
                fields[descriptor.name] = descriptor.default_value()
            elif value.is_default:
                fields[descriptor.name] = value
            else:
                fields[descriptor.name] = descriptor.restore(value.value)
        candidate = blank.with_fields(fields)
        candidate = self._enforce_permissions(blank, candidate, caller, entity_name=requested.name)
        # Fields reverted by the permission check fall back to their defaults.
        candidate = candidate.with_fields(
            {d.name: d.default_value() for d in self.table if not candidate.get(d.name).is_set and d.default}
        )
        snapshot = candidate.with_version(INITIAL_VERSION, updated_by=caller.name, updated_at=now)
        return MergeOutcome(snapshot, self.recorder.creation(snapshot))

    def _record(self, previous, new, update_type, changes, caller, now, name) -> ChangeRecord:
        return ChangeRecord(
            entity_type=self.table.entity_type,
            name=name,
            previous_version=previous,
            new_version=new,
            update_type=update_type,
            changes=tuple(changes),
            updated_by=caller.name,
            updated_at=now,
        )

    def _resolve_defaults(self, current: EntitySnapshot, requested: EntitySnapshot) -> EntitySnapshot:
        updates: Dict[str, FieldValue] = {}
        for descriptor in self.table:
            before, after = current.get(descriptor.name), requested.get(descriptor.name)
            if descriptor.system_managed:
                updates[descriptor.name] = before
                continue
            if descriptor.default is None:
                continue
            if not after.is_set:
                if before.is_set:
                    # Clearing a defaulted field falls back to the default.
                    updates[descriptor.name] = descriptor.default_value()
                continue
            if before.is_default and not after.is_default:
                if descriptor.is_collection:
                    default_keys = set(descriptor.keys(before))
                    chosen = [e for e in after.items() if descriptor.element_key(e) not in default_keys]
                    updates[descriptor.name] = explicit(chosen) if chosen else before
                elif descriptor.same(before, after):
                    updates[descriptor.name] = before
        return requested.with_fields(updates) if updates else requested

    def _enforce_permissions(
        self,
        current: EntitySnapshot,
        requested: EntitySnapshot,
        caller: Caller,
        entity_name: Optional[str] = None,
    ) -> EntitySnapshot:
        if self.authorization is None:
            return requested
        changed = self.recorder.changed_fields(current, requested)
        if not changed:
            return requested
        allowed = set(
            self.authorization.can_modify_fields(
                caller,
                self.table.entity_type,
                changed,
                entity_name=entity_name or current.name,
            )
        )
        if not allowed:
            raise Forbidden(
                f"Principal {caller.name} is not allowed to modify {self.table.entity_type} "
                f"{entity_name or current.name} ({', '.join(changed)})"
            )
        denied = [name for name in changed if name not in allowed]
        if not denied:
            return requested
        logger.info(
            "Reverting fields %s of %s %s not modifiable by %s",
            denied,
            self.table.entity_type,
            current.name,
            caller.name,
        )
        return requested.with_fields({name: current.get(name) for name in denied})

    def _same_session(
        self,
        current: EntitySnapshot,
        last_record: Optional[ChangeRecord],
        caller: Caller,
        update_type: UpdateType,
        now: datetime,
    ) -> bool:
        if last_record is None or update_type is not UpdateType.MINOR:
            return False
        if last_record.update_type is not UpdateType.MINOR:
            return False
        if last_record.new_version != current.version:
            return False
        if last_record.updated_by != caller.name or last_record.updated_at is None:
            return False
        return now - last_record.updated_at <= self.session_timeout


__all__ = ["DEFAULT_SESSION_TIMEOUT", "MergeOutcome", "PatchMergeEngine"]
