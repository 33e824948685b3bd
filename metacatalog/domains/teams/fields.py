"""Team field declarations."""

from __future__ import annotations

from metacatalog.core.changes.fields import FieldDescriptor, FieldKind, FieldTable
from metacatalog.domains.teams.hierarchy import TEAM, organization_reference

TEAM_TYPES = ("Group", "Department", "Division", "BusinessUnit", "Organization")
DEFAULT_TEAM_TYPE = "Group"


def _default_parents():
    return [organization_reference()]


TEAM_FIELDS = FieldTable(
    TEAM,
    [
        FieldDescriptor("name", identity=True),
        FieldDescriptor("displayName"),
        FieldDescriptor("description"),
        FieldDescriptor("teamType", default=lambda: DEFAULT_TEAM_TYPE),
        FieldDescriptor("parents", kind=FieldKind.REFERENCE_LIST, reference_type=TEAM, default=_default_parents),
        FieldDescriptor("isJoinable", default=lambda: True),
        FieldDescriptor("defaultRoles", kind=FieldKind.REFERENCE_LIST, reference_type="role"),
    ],
)
