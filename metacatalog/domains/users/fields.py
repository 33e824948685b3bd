"""User field declarations."""

from __future__ import annotations

from metacatalog.core.changes.fields import FieldDescriptor, FieldKind, FieldTable
from metacatalog.domains.teams.hierarchy import TEAM, organization_reference

USER = "user"


def _default_teams():
    return [organization_reference()]


def _same_email(left, right) -> bool:
    return str(left).lower() == str(right).lower()


USER_FIELDS = FieldTable(
    USER,
    [
        FieldDescriptor("name", identity=True),
        FieldDescriptor("displayName"),
        FieldDescriptor("description"),
        FieldDescriptor("email", identity=True, comparator=_same_email),
        FieldDescriptor("timezone"),
        FieldDescriptor("isAdmin", protected=True),
        FieldDescriptor("isBot", protected=True),
        FieldDescriptor("teams", kind=FieldKind.REFERENCE_LIST, reference_type=TEAM, default=_default_teams),
        FieldDescriptor("roles", kind=FieldKind.REFERENCE_LIST, reference_type="role", protected=True),
        # Derived from the default roles of the user's teams.
        FieldDescriptor("inheritedRoles", kind=FieldKind.REFERENCE_LIST, reference_type="role", system_managed=True),
    ],
)
