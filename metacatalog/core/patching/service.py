"""Patch service: load, merge, commit with optimistic retries, record history."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable, List, Mapping, Optional

from metacatalog.core.auth.authorization import Caller
from metacatalog.core.changes.fields import FieldValue, explicit
from metacatalog.core.changes.models import ChangeRecord
from metacatalog.core.changes.snapshot import EntitySnapshot
from metacatalog.core.collaborators import (
    Authorization,
    ChangeHistoryStore,
    Persistence,
    ReferenceResolver,
)
from metacatalog.core.errors import Conflict, NotFound, VersionConflict
from metacatalog.core.events.event_bus import EventBus
from metacatalog.core.events.event_models import ENTITY_CREATED, ENTITY_UPDATED, ChangeEvent
from metacatalog.core.patching.locks import EntityLocks
from metacatalog.core.patching.merge_engine import DEFAULT_SESSION_TIMEOUT, MergeOutcome, PatchMergeEngine
from metacatalog.core.patching.patch import EntityPatch

if TYPE_CHECKING:
    from metacatalog.domains.registry import EntityRegistry

logger = logging.getLogger(__name__)


class PatchService:
    def __init__(
        self,
        registry: "EntityRegistry",
        persistence: Persistence,
        history: ChangeHistoryStore,
        *,
        authorization: Optional[Authorization] = None,
        resolver: Optional[ReferenceResolver] = None,
        event_bus: Optional[EventBus] = None,
        locks: Optional[EntityLocks] = None,
        max_retries: int = 3,
        session_timeout: timedelta = DEFAULT_SESSION_TIMEOUT,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self.registry = registry
        self.persistence = persistence
        self.history = history
        self.authorization = authorization
        self.resolver = resolver
        self.event_bus = event_bus
        self.locks = locks or EntityLocks()
        self.max_retries = max_retries
        self.session_timeout = session_timeout
        self.clock = clock

    def engine(self, entity_type: str) -> PatchMergeEngine:
        return PatchMergeEngine(
            self.registry.fields(entity_type),
            authorization=self.authorization,
            session_timeout=self.session_timeout,
        )

    def get_entity(self, entity_type: str, name: str) -> EntitySnapshot:
        self.registry.get(entity_type)
        return self.persistence.load(entity_type, name)

    def exists(self, entity_type: str, name: str) -> bool:
        try:
            self.persistence.load(entity_type, name)
        except NotFound:
            return False
        return True

    def list_versions(self, entity_type: str, name: str) -> List[ChangeRecord]:
        """Change records oldest first; the creation itself is not a record."""
        self.get_entity(entity_type, name)
        return self.history.list_records(entity_type, name)

    def apply_patch(self, entity_type: str, name: str, patch: EntityPatch, caller: Caller) -> MergeOutcome:
        """Apply ``patch`` to the latest stored version.

        A concurrent commit makes the stored version move; the patch is then
        re-applied to the refreshed snapshot, up to ``max_retries`` times.
        """
        engine = self.engine(entity_type)
        attempts = 0
        while True:
            with self.locks.hold(entity_type, name):
                current = self.persistence.load(entity_type, name)
                requested = patch.apply_to(current, engine.table)
                self._check_references(current, requested)
                last = self.history.get_last_record(entity_type, name)
                outcome = engine.apply(current, requested, caller=caller, last_record=last, now=self.clock())
                if not outcome.changed:
                    logger.debug("Patch on %s %s changed nothing", entity_type, name)
                    return outcome
                try:
                    stored = self.persistence.commit(
                        entity_type, name, current.version, self._derive(outcome.snapshot)
                    )
                except VersionConflict:
                    attempts += 1
                    if attempts > self.max_retries:
                        logger.warning(
                            "Giving up on %s %s after %s conflicting commits", entity_type, name, attempts
                        )
                        raise Conflict(f"{entity_type} {name} was modified concurrently; retry the request")
                    logger.info(
                        "Version conflict on %s %s (attempt %s); reloading", entity_type, name, attempts
                    )
                    continue
                self._record_history(entity_type, name, outcome)
            result = MergeOutcome(stored, outcome.record, outcome.consolidated)
            self._publish(ENTITY_UPDATED, result)
            return result

    def create_entity(
        self,
        entity_type: str,
        name: str,
        fields: Mapping[str, FieldValue],
        caller: Caller,
    ) -> MergeOutcome:
        engine = self.engine(entity_type)
        with self.locks.hold(entity_type, name):
            if self.exists(entity_type, name):
                raise Conflict(f"{entity_type} {name} already exists")
            values = dict(fields)
            if "name" in engine.table:
                values["name"] = explicit(name)
            requested = EntitySnapshot(entity_type, name, 0.0, values)
            self._check_references(EntitySnapshot(entity_type, name, 0.0), requested)
            outcome = engine.create(requested, caller=caller, now=self.clock())
            try:
                stored = self.persistence.commit(entity_type, name, None, self._derive(outcome.snapshot))
            except VersionConflict:
                raise Conflict(f"{entity_type} {name} already exists")
        logger.info("Created %s %s by %s", entity_type, name, caller.name)
        result = MergeOutcome(stored, outcome.record)
        self._publish(ENTITY_CREATED, result)
        return result

    def upsert(
        self,
        entity_type: str,
        name: str,
        fields: Mapping[str, FieldValue],
        caller: Caller,
    ) -> MergeOutcome:
        """Make the listed fields look like ``fields``; other fields are untouched."""
        try:
            current = self.persistence.load(entity_type, name)
        except NotFound:
            return self.create_entity(entity_type, name, fields, caller)
        table = self.registry.fields(entity_type)
        patch = EntityPatch.between(current, current.with_fields(fields), table)
        return self.apply_patch(entity_type, name, patch, caller)

    def _derive(self, snapshot: EntitySnapshot) -> EntitySnapshot:
        derive = self.registry.get(snapshot.entity_type).derive
        if derive is None:
            return snapshot
        return snapshot.with_fields(derive(snapshot, self.persistence.load))

    def _check_references(self, current: EntitySnapshot, requested: EntitySnapshot) -> None:
        """Every newly referenced entity must exist."""
        if self.resolver is None:
            return
        table = self.registry.fields(requested.entity_type)
        for descriptor in table.diffable():
            if descriptor.reference_type is None:
                continue
            value = requested.get(descriptor.name)
            if not value.is_set or value.is_default:
                continue
            known = set(descriptor.keys(current.get(descriptor.name)))
            elements = value.items() if descriptor.is_collection else (value.value,)
            for element in elements:
                if descriptor.element_key(element) not in known:
                    self.resolver.resolve(element.type, element.name)

    def _record_history(self, entity_type: str, name: str, outcome: MergeOutcome) -> None:
        if not outcome.consolidated:
            self.history.append(entity_type, name, outcome.record)
        elif outcome.record.is_empty:
            self.history.remove_last(entity_type, name)
        else:
            self.history.replace_last(entity_type, name, outcome.record)

    def _publish(self, event_type: str, outcome: MergeOutcome) -> None:
        if self.event_bus is None:
            return
        payload = {
            "entity_type": outcome.snapshot.entity_type,
            "name": outcome.snapshot.name,
            "version": outcome.snapshot.version,
            "change_record": outcome.record.to_dict(),
        }
        if event_type == ENTITY_UPDATED:
            payload["consolidated"] = outcome.consolidated
        self.event_bus.publish(ChangeEvent(event_type=event_type, payload=payload))


__all__ = ["PatchService"]
