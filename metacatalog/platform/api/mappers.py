"""Snapshot/record to response conversions."""

from __future__ import annotations

from typing import Any, Dict

from metacatalog.core.changes.fields import FieldTable, explicit
from metacatalog.core.changes.models import ChangeRecord
from metacatalog.core.changes.snapshot import EntitySnapshot, plain_fields
from metacatalog.core.errors import FieldValidationError
from metacatalog.core.patching.patch import coerce_value
from metacatalog.platform.api.schemas import ChangeRecordResponse, EntityResponse


def entity_response(snapshot: EntitySnapshot, table: FieldTable) -> dict:
    return EntityResponse(
        entity_type=snapshot.entity_type,
        name=snapshot.name,
        version=snapshot.version,
        attributes=plain_fields(snapshot, table),
        updated_by=snapshot.updated_by,
        updated_at=snapshot.updated_at.isoformat() if snapshot.updated_at else None,
    ).model_dump(by_alias=True)


def record_response(record: ChangeRecord) -> dict:
    return ChangeRecordResponse.model_validate(record.to_dict()).model_dump()


def fields_from_payload(payload: Dict[str, Any], table: FieldTable) -> dict:
    """Explicit field values from a plain JSON object; references are given by name."""
    values = {}
    for name, raw in payload.items():
        if name not in table:
            raise FieldValidationError(f"Unknown field {name} for {table.entity_type}")
        values[name] = explicit(coerce_value(table.get(name), raw))
    return values
