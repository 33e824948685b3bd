"""Role field declarations."""

from __future__ import annotations

from metacatalog.core.changes.fields import FieldDescriptor, FieldTable

ROLE = "role"

ROLE_FIELDS = FieldTable(
    ROLE,
    [
        FieldDescriptor("name", identity=True),
        FieldDescriptor("displayName"),
        FieldDescriptor("description"),
    ],
)
