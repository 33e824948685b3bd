"""SQL-backed persistence and change history."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from metacatalog.core.changes.fields import explicit
from metacatalog.core.changes.models import ChangeRecord
from metacatalog.core.changes.snapshot import INITIAL_VERSION, EntitySnapshot, dump_fields, load_fields
from metacatalog.core.errors import NotFound, VersionConflict
from metacatalog.domains.teams.hierarchy import ORGANIZATION, TEAM
from metacatalog.extensions import db
from metacatalog.platform.persistence.models import CatalogEntity, ChangeRecordEntry

if TYPE_CHECKING:
    from metacatalog.domains.registry import EntityRegistry

logger = logging.getLogger(__name__)


class SqlPersistence:
    """Snapshots as JSON rows; commits are ``UPDATE ... WHERE version AND revision``."""

    def __init__(self, registry: "EntityRegistry") -> None:
        self.registry = registry

    def load(self, entity_type: str, name: str) -> EntitySnapshot:
        row = db.session.execute(
            select(CatalogEntity)
            .filter_by(entity_type=entity_type, name=name)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None:
            raise NotFound(f"{entity_type} {name} not found")
        return self._to_snapshot(row)

    def list(self, entity_type: str) -> List[EntitySnapshot]:
        rows = db.session.execute(
            select(CatalogEntity)
            .filter_by(entity_type=entity_type)
            .order_by(CatalogEntity.name)
            .execution_options(populate_existing=True)
        ).scalars()
        return [self._to_snapshot(row) for row in rows]

    def commit(
        self,
        entity_type: str,
        name: str,
        expected_version: Optional[float],
        snapshot: EntitySnapshot,
    ) -> EntitySnapshot:
        payload = dump_fields(snapshot, self.registry.fields(entity_type))
        if expected_version is None:
            return self._insert(entity_type, name, snapshot, payload)

        result = db.session.execute(
            update(CatalogEntity)
            .where(
                CatalogEntity.entity_type == entity_type,
                CatalogEntity.name == name,
                CatalogEntity.version == expected_version,
                CatalogEntity.revision == snapshot.revision,
            )
            .values(
                version=snapshot.version,
                revision=CatalogEntity.revision + 1,
                fields=payload,
                updated_by=snapshot.updated_by,
                updated_at=snapshot.updated_at,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.session.rollback()
            raise VersionConflict(f"{entity_type} {name} is no longer at version {expected_version}")
        db.session.commit()
        return replace(snapshot, revision=snapshot.revision + 1)

    def _insert(self, entity_type: str, name: str, snapshot: EntitySnapshot, payload: dict) -> EntitySnapshot:
        row = CatalogEntity(
            entity_type=entity_type,
            name=name,
            version=snapshot.version,
            revision=1,
            fields=payload,
            updated_by=snapshot.updated_by,
            updated_at=snapshot.updated_at,
        )
        db.session.add(row)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise VersionConflict(f"{entity_type} {name} already exists")
        return replace(snapshot, revision=1)

    def _to_snapshot(self, row: CatalogEntity) -> EntitySnapshot:
        return EntitySnapshot(
            entity_type=row.entity_type,
            name=row.name,
            version=row.version,
            fields=load_fields(row.fields, self.registry.fields(row.entity_type)),
            updated_by=row.updated_by,
            updated_at=row.updated_at,
            revision=row.revision,
        )


class SqlChangeHistoryStore:
    """One row per change record, ordered by a per-entity sequence."""

    def get_last_record(self, entity_type: str, name: str) -> Optional[ChangeRecord]:
        entry = self._last(entity_type, name)
        return ChangeRecord.from_dict(entry.payload) if entry else None

    def append(self, entity_type: str, name: str, record: ChangeRecord) -> None:
        sequence = db.session.execute(
            select(func.coalesce(func.max(ChangeRecordEntry.sequence), 0)).where(
                ChangeRecordEntry.entity_type == entity_type,
                ChangeRecordEntry.name == name,
            )
        ).scalar_one()
        entry = ChangeRecordEntry(entity_type=entity_type, name=name, sequence=sequence + 1)
        self._fill(entry, record)
        db.session.add(entry)
        db.session.commit()

    def replace_last(self, entity_type: str, name: str, record: ChangeRecord) -> None:
        entry = self._last(entity_type, name)
        if entry is None:
            self.append(entity_type, name, record)
            return
        self._fill(entry, record)
        db.session.commit()

    def remove_last(self, entity_type: str, name: str) -> None:
        entry = self._last(entity_type, name)
        if entry is not None:
            db.session.delete(entry)
            db.session.commit()

    def list_records(self, entity_type: str, name: str) -> List[ChangeRecord]:
        entries = db.session.execute(
            select(ChangeRecordEntry)
            .filter_by(entity_type=entity_type, name=name)
            .order_by(ChangeRecordEntry.sequence)
        ).scalars()
        return [ChangeRecord.from_dict(e.payload) for e in entries]

    def _last(self, entity_type: str, name: str) -> Optional[ChangeRecordEntry]:
        return db.session.execute(
            select(ChangeRecordEntry)
            .filter_by(entity_type=entity_type, name=name)
            .order_by(ChangeRecordEntry.sequence.desc())
            .limit(1)
        ).scalar_one_or_none()

    @staticmethod
    def _fill(entry: ChangeRecordEntry, record: ChangeRecord) -> None:
        entry.previous_version = record.previous_version
        entry.new_version = record.new_version
        entry.update_type = record.update_type.value
        entry.payload = record.to_dict()
        entry.updated_by = record.updated_by
        entry.updated_at = record.updated_at


def seed_organization(persistence, now: Optional[datetime] = None) -> bool:
    """Create the root ``Organization`` team; returns False when it already exists."""
    try:
        persistence.load(TEAM, ORGANIZATION)
        return False
    except NotFound:
        pass
    snapshot = EntitySnapshot(
        TEAM,
        ORGANIZATION,
        INITIAL_VERSION,
        {
            "name": explicit(ORGANIZATION),
            "teamType": explicit(ORGANIZATION),
            "isJoinable": explicit(False),
        },
        updated_by="system",
        updated_at=now or datetime.utcnow(),
    )
    persistence.commit(TEAM, ORGANIZATION, None, snapshot)
    logger.info("Seeded %s team", ORGANIZATION)
    return True


__all__ = ["SqlChangeHistoryStore", "SqlPersistence", "seed_organization"]
