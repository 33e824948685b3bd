"""Field changes, change records and version arithmetic."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional, Tuple

from metacatalog.core.changes.fields import decode_value, encode_value


class ChangeKind(str, enum.Enum):
    ADDED = "added"
    UPDATED = "updated"
    DELETED = "deleted"


class UpdateType(str, enum.Enum):
    NO_CHANGE = "no_change"
    MINOR = "minor"
    MAJOR = "major"
    CREATED = "created"


def next_version(version: float, update_type: UpdateType) -> float:
    if update_type is UpdateType.MAJOR:
        return round(version + 1.0, 1)
    if update_type is UpdateType.MINOR:
        return round(version + 0.1, 1)
    return version


@dataclass(frozen=True)
class FieldChange:
    field: str
    kind: ChangeKind
    old_value: Any = None
    new_value: Any = None

    def to_dict(self) -> dict:
        data = {"field": self.field, "kind": self.kind.value}
        if self.kind is not ChangeKind.ADDED:
            data["old_value"] = encode_value(self.old_value)
        if self.kind is not ChangeKind.DELETED:
            data["new_value"] = encode_value(self.new_value)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "FieldChange":
        return cls(
            field=data["field"],
            kind=ChangeKind(data["kind"]),
            old_value=decode_value(data.get("old_value")),
            new_value=decode_value(data.get("new_value")),
        )


@dataclass(frozen=True)
class ChangeRecord:
    """Ordered field-level diff between two consecutive versions of one entity."""

    entity_type: str
    name: str
    previous_version: float
    new_version: float
    update_type: UpdateType
    changes: Tuple[FieldChange, ...] = field(default_factory=tuple)
    updated_by: Optional[str] = None
    updated_at: Optional[datetime] = None

    @property
    def is_empty(self) -> bool:
        return not self.changes

    def fields_changed(self) -> List[str]:
        seen: List[str] = []
        for change in self.changes:
            if change.field not in seen:
                seen.append(change.field)
        return seen

    def of_kind(self, field_name: str, kind: ChangeKind) -> List[FieldChange]:
        return [c for c in self.changes if c.field == field_name and c.kind is kind]

    def added(self, field_name: str) -> List[Any]:
        return [c.new_value for c in self.of_kind(field_name, ChangeKind.ADDED)]

    def deleted(self, field_name: str) -> List[Any]:
        return [c.old_value for c in self.of_kind(field_name, ChangeKind.DELETED)]

    def updated(self, field_name: str) -> Optional[FieldChange]:
        matches = self.of_kind(field_name, ChangeKind.UPDATED)
        return matches[0] if matches else None

    def to_dict(self) -> dict:
        return {
            "entity_type": self.entity_type,
            "name": self.name,
            "previous_version": self.previous_version,
            "new_version": self.new_version,
            "update_type": self.update_type.value,
            "changes": [c.to_dict() for c in self.changes],
            "updated_by": self.updated_by,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ChangeRecord":
        updated_at = data.get("updated_at")
        return cls(
            entity_type=data["entity_type"],
            name=data["name"],
            previous_version=data["previous_version"],
            new_version=data["new_version"],
            update_type=UpdateType(data["update_type"]),
            changes=tuple(FieldChange.from_dict(c) for c in data.get("changes") or []),
            updated_by=data.get("updated_by"),
            updated_at=datetime.fromisoformat(updated_at) if updated_at else None,
        )


__all__ = [
    "ChangeKind",
    "ChangeRecord",
    "FieldChange",
    "UpdateType",
    "next_version",
]
