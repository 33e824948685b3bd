"""Team CSV contract."""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from metacatalog.core.changes.fields import FieldValue, explicit
from metacatalog.core.changes.snapshot import EntitySnapshot
from metacatalog.core.collaborators import ReferenceResolver
from metacatalog.domains.teams.fields import TEAM_TYPES
from metacatalog.domains.teams.hierarchy import ORGANIZATION, TEAM
from metacatalog.platform.csv.contract import (
    ENTITY_NAME_PATTERN,
    CsvColumn,
    CsvEntityMapping,
    CsvHeaderContract,
    EnumRule,
    ReferenceRule,
    RegexRule,
)

TEAM_CSV_CONTRACT = CsvHeaderContract(
    TEAM,
    [
        CsvColumn(
            "name",
            required=True,
            rules=(RegexRule(ENTITY_NAME_PATTERN),),
            description="The name of the team being created.",
            examples=("Marketing", "Sales"),
        ),
        CsvColumn("displayName", description="Display name of the team.", examples=("Marketing Team",)),
        CsvColumn("description", description="Description of the team in Markdown format."),
        CsvColumn(
            "teamType",
            required=True,
            rules=(EnumRule(TEAM_TYPES),),
            description="Type of the team; one of " + ", ".join(TEAM_TYPES) + ".",
            examples=("Department",),
        ),
        CsvColumn(
            "parents",
            required=True,
            multi_valued=True,
            rules=(ReferenceRule(TEAM, within_scope=True),),
            description="Parent teams separated by ';'. They must be under the team being imported into.",
            examples=("Engineering;Research",),
        ),
        CsvColumn(
            "isJoinable",
            rules=(EnumRule(("true", "false")),),
            description="Whether users can join the team without an invitation.",
            examples=("true", "false"),
        ),
        CsvColumn(
            "defaultRoles",
            multi_valued=True,
            rules=(ReferenceRule("role"),),
            description="Roles given to every member, separated by ';'.",
            examples=("DataConsumer",),
        ),
    ],
)


class TeamCsvMapping(CsvEntityMapping):
    contract = TEAM_CSV_CONTRACT

    def to_fields(self, record: Sequence[str]) -> Dict[str, FieldValue]:
        name, display_name, description, team_type, parents, joinable, roles = record
        canonical_type = next((t for t in TEAM_TYPES if t.lower() == team_type.strip().lower()), None)
        return {
            "name": self.text(name),
            "displayName": self.text(display_name),
            "description": self.text(description),
            "teamType": explicit(canonical_type),
            "parents": self.references(parents, TEAM),
            "isJoinable": self.flag(joinable),
            "defaultRoles": self.references(roles, "role"),
        }

    def to_record(self, snapshot: EntitySnapshot) -> List[str]:
        return [
            snapshot.name,
            self.format_text(snapshot, "displayName"),
            self.format_text(snapshot, "description"),
            self.format_text(snapshot, "teamType"),
            self.format_references(snapshot, "parents"),
            self.format_flag(snapshot, "isJoinable"),
            self.format_references(snapshot, "defaultRoles"),
        ]

    def in_scope(self, snapshot: EntitySnapshot, scope: Optional[str], resolver: ReferenceResolver) -> bool:
        """Descendants of the scope team, not the scope team itself.

        Without a scope the organization root is the scope, so it never exports.
        """
        scope = scope or ORGANIZATION
        if snapshot.name == scope:
            return False
        return resolver.within_scope(snapshot.reference(), scope)
