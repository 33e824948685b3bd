"""System-managed user fields."""

from __future__ import annotations

from collections import OrderedDict
from typing import Callable, Dict

from metacatalog.core.changes.fields import FieldValue, explicit
from metacatalog.core.changes.snapshot import EntitySnapshot
from metacatalog.core.errors import NotFound
from metacatalog.domains.teams.hierarchy import TEAM


def inherited_roles(snapshot: EntitySnapshot, load: Callable[[str, str], EntitySnapshot]) -> Dict[str, FieldValue]:
    """Default roles of every team the user belongs to."""
    roles: "OrderedDict[str, object]" = OrderedDict()
    for team in snapshot.get("teams").items():
        try:
            team_snapshot = load(TEAM, team.name)
        except NotFound:
            continue
        for role in team_snapshot.get("defaultRoles").items():
            roles.setdefault(role.name, role)
    return {"inheritedRoles": explicit(list(roles.values()))}
