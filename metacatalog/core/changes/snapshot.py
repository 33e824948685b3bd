"""Immutable entity snapshots and their JSON form."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from metacatalog.core.changes.fields import (
    UNSET,
    EntityReference,
    FieldState,
    FieldTable,
    FieldValue,
    decode_value,
    encode_value,
)

INITIAL_VERSION = 0.1


@dataclass(frozen=True)
class EntitySnapshot:
    entity_type: str
    name: str
    version: float
    fields: Mapping[str, FieldValue] = field(default_factory=dict)
    updated_by: Optional[str] = None
    updated_at: Optional[datetime] = None
    # Storage concurrency token, bumped by persistence on every commit.
    revision: int = 0

    def __post_init__(self) -> None:
        cleaned = {k: v for k, v in dict(self.fields).items() if v.is_set}
        object.__setattr__(self, "fields", MappingProxyType(cleaned))

    def get(self, name: str) -> FieldValue:
        return self.fields.get(name, UNSET)

    def value(self, name: str, fallback: Any = None) -> Any:
        current = self.get(name)
        return current.value if current.is_set else fallback

    def with_fields(self, updates: Mapping[str, FieldValue]) -> "EntitySnapshot":
        merged: Dict[str, FieldValue] = dict(self.fields)
        merged.update(updates)
        return replace(self, fields=merged)

    def with_version(
        self,
        version: float,
        *,
        updated_by: Optional[str] = None,
        updated_at: Optional[datetime] = None,
    ) -> "EntitySnapshot":
        return replace(
            self,
            version=version,
            updated_by=updated_by or self.updated_by,
            updated_at=updated_at or self.updated_at,
        )

    def reference(self) -> EntityReference:
        return EntityReference(type=self.entity_type, name=self.name)


def dump_fields(snapshot: EntitySnapshot, table: FieldTable) -> dict:
    """Tagged JSON form used by persistence; keeps default/explicit apart."""
    payload = {}
    for descriptor in table:
        current = snapshot.get(descriptor.name)
        if current.is_set:
            payload[descriptor.name] = {
                "state": current.state.value,
                "value": encode_value(current.value),
            }
    return payload


def load_fields(payload: Optional[dict], table: FieldTable) -> Dict[str, FieldValue]:
    fields: Dict[str, FieldValue] = {}
    for name, entry in (payload or {}).items():
        if name not in table:
            continue
        fields[name] = FieldValue(FieldState(entry["state"]), decode_value(entry["value"]))
    return fields


def plain_fields(snapshot: EntitySnapshot, table: FieldTable) -> dict:
    """Untagged view for API responses."""
    return {
        d.name: encode_value(snapshot.value(d.name))
        for d in table
        if snapshot.get(d.name).is_set
    }


__all__ = [
    "EntitySnapshot",
    "INITIAL_VERSION",
    "dump_fields",
    "load_fields",
    "plain_fields",
]
