"""Entity change events published after each commit."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

ENTITY_CREATED = "catalog.entity.created"
ENTITY_UPDATED = "catalog.entity.updated"

EVENT_CATALOG = {
    ENTITY_CREATED: {
        "version": "v1",
        "payload": {
            "entity_type": "str",
            "name": "str",
            "version": "float",
            "change_record": "dict",
        },
    },
    ENTITY_UPDATED: {
        "version": "v1",
        "payload": {
            "entity_type": "str",
            "name": "str",
            "version": "float",
            "consolidated": "bool",
            "change_record": "dict",
        },
    },
}


@dataclass(frozen=True)
class ChangeEvent:
    event_type: str
    payload: dict
    created_at: datetime = field(default_factory=datetime.utcnow)


__all__ = ["ChangeEvent", "ENTITY_CREATED", "ENTITY_UPDATED", "EVENT_CATALOG"]
