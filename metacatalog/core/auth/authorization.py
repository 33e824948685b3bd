"""Callers and field-level modification rights."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, FrozenSet, Iterable, Optional, Set

if TYPE_CHECKING:
    from metacatalog.domains.registry import EntityRegistry

ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class Caller:
    name: str
    roles: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def is_admin(self) -> bool:
        return ADMIN_ROLE in self.roles


SYSTEM_CALLER = Caller(name="system", roles=frozenset({ADMIN_ROLE}))


def write_role(entity_type: str) -> str:
    return f"{entity_type}:write"


class RoleBasedAuthorization:
    """Admins change anything; writers and users editing themselves skip protected fields."""

    def __init__(self, registry: "EntityRegistry") -> None:
        self.registry = registry

    def can_modify_fields(
        self,
        caller: Caller,
        entity_type: str,
        field_names: Iterable[str],
        *,
        entity_name: Optional[str] = None,
    ) -> Set[str]:
        names = set(field_names)
        if caller.is_admin:
            return names
        editing_self = entity_type == "user" and entity_name is not None and entity_name == caller.name
        if not editing_self and write_role(entity_type) not in caller.roles:
            return set()
        table = self.registry.fields(entity_type)
        return {n for n in names if n in table and not table.get(n).protected}


__all__ = ["ADMIN_ROLE", "Caller", "RoleBasedAuthorization", "SYSTEM_CALLER", "write_role"]
