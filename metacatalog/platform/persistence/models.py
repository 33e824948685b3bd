"""Catalog entity and change history tables."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Mapped, mapped_column

from metacatalog.extensions import db


class CatalogEntity(db.Model):
    __tablename__ = "catalog_entity"
    __table_args__ = (
        db.UniqueConstraint("entity_type", "name", name="uq_catalog_entity_type_name"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    entity_type: Mapped[str] = mapped_column(db.String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(db.String(256), nullable=False)
    version: Mapped[float] = mapped_column(db.Float, nullable=False)
    # Bumped on every write; guards commits that keep the version unchanged.
    revision: Mapped[int] = mapped_column(nullable=False, default=1)
    fields: Mapped[dict] = mapped_column(db.JSON, nullable=False, default=dict)
    updated_by: Mapped[str | None] = mapped_column(db.String(128))
    updated_at: Mapped[datetime | None] = mapped_column()
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)


class ChangeRecordEntry(db.Model):
    __tablename__ = "catalog_change_record"
    __table_args__ = (
        db.Index("ix_catalog_change_record_entity", "entity_type", "name", "sequence"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    entity_type: Mapped[str] = mapped_column(db.String(64), nullable=False)
    name: Mapped[str] = mapped_column(db.String(256), nullable=False)
    sequence: Mapped[int] = mapped_column(nullable=False)
    previous_version: Mapped[float] = mapped_column(db.Float, nullable=False)
    new_version: Mapped[float] = mapped_column(db.Float, nullable=False)
    update_type: Mapped[str] = mapped_column(db.String(16), nullable=False)
    payload: Mapped[dict] = mapped_column(db.JSON, nullable=False, default=dict)
    updated_by: Mapped[str | None] = mapped_column(db.String(128))
    updated_at: Mapped[datetime | None] = mapped_column()
