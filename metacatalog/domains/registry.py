"""Entity types known to the catalog."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from metacatalog.core.changes.fields import FieldTable, FieldValue
from metacatalog.core.changes.snapshot import EntitySnapshot
from metacatalog.core.errors import NotFound
from metacatalog.domains.roles.fields import ROLE, ROLE_FIELDS
from metacatalog.domains.teams.csv import TeamCsvMapping
from metacatalog.domains.teams.fields import TEAM_FIELDS
from metacatalog.domains.teams.hierarchy import TEAM
from metacatalog.domains.users.csv import UserCsvMapping
from metacatalog.domains.users.derived import inherited_roles
from metacatalog.domains.users.fields import USER, USER_FIELDS
from metacatalog.platform.csv.contract import CsvEntityMapping

Loader = Callable[[str, str], EntitySnapshot]
Deriver = Callable[[EntitySnapshot, Loader], Mapping[str, FieldValue]]


@dataclass(frozen=True)
class EntityType:
    name: str
    fields: FieldTable
    csv_mapping: Optional[CsvEntityMapping] = None
    # Recomputes system-managed fields before each commit.
    derive: Optional[Deriver] = None


class EntityRegistry:
    def __init__(self, entity_types: Iterable[EntityType] = ()) -> None:
        self._types: Dict[str, EntityType] = {}
        for entity_type in entity_types:
            self.register(entity_type)

    def register(self, entity_type: EntityType) -> None:
        if entity_type.fields.entity_type != entity_type.name:
            raise ValueError(f"field table of {entity_type.name} declared for {entity_type.fields.entity_type}")
        self._types[entity_type.name] = entity_type

    def get(self, name: str) -> EntityType:
        entity_type = self._types.get(name)
        if entity_type is None:
            raise NotFound(f"Unknown entity type {name}; expected one of {', '.join(self.types())}")
        return entity_type

    def fields(self, name: str) -> FieldTable:
        return self.get(name).fields

    def csv_mapping(self, name: str) -> CsvEntityMapping:
        mapping = self.get(name).csv_mapping
        if mapping is None:
            raise NotFound(f"Entity type {name} does not support CSV import/export")
        return mapping

    def types(self) -> List[str]:
        return sorted(self._types)


def default_registry() -> EntityRegistry:
    return EntityRegistry(
        [
            EntityType(USER, USER_FIELDS, csv_mapping=UserCsvMapping(), derive=inherited_roles),
            EntityType(TEAM, TEAM_FIELDS, csv_mapping=TeamCsvMapping()),
            EntityType(ROLE, ROLE_FIELDS),
        ]
    )


__all__ = ["EntityRegistry", "EntityType", "default_registry"]
