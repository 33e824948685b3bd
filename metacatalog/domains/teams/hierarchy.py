"""Team parent hierarchy walking."""

from __future__ import annotations

from collections import deque
from typing import Callable, Set

from metacatalog.core.changes.fields import EntityReference
from metacatalog.core.changes.snapshot import EntitySnapshot
from metacatalog.core.errors import NotFound

TEAM = "team"
ORGANIZATION = "Organization"


def organization_reference() -> EntityReference:
    return EntityReference(TEAM, ORGANIZATION)


def is_under(load: Callable[[str, str], EntitySnapshot], team_name: str, scope_name: str) -> bool:
    """True when ``team_name`` is ``scope_name`` or one of its descendants.

    Every team sits under the organization root. Missing teams on the way up
    are skipped rather than treated as errors.
    """
    if team_name == scope_name or scope_name == ORGANIZATION:
        return True
    seen: Set[str] = {team_name}
    pending = deque([team_name])
    while pending:
        current = pending.popleft()
        try:
            snapshot = load(TEAM, current)
        except NotFound:
            continue
        for parent in snapshot.get("parents").items():
            if parent.name == scope_name:
                return True
            if parent.name not in seen:
                seen.add(parent.name)
                pending.append(parent.name)
    return False


__all__ = ["ORGANIZATION", "TEAM", "is_under", "organization_reference"]
