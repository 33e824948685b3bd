"""User CSV contract."""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from metacatalog.core.changes.fields import FieldValue
from metacatalog.core.changes.snapshot import EntitySnapshot
from metacatalog.core.collaborators import ReferenceResolver
from metacatalog.domains.teams.hierarchy import TEAM
from metacatalog.domains.users.fields import USER
from metacatalog.platform.csv.contract import (
    ENTITY_NAME_PATTERN,
    CsvColumn,
    CsvEntityMapping,
    CsvHeaderContract,
    EnumRule,
    ReferenceRule,
    RegexRule,
)

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

USER_CSV_CONTRACT = CsvHeaderContract(
    USER,
    [
        CsvColumn(
            "name",
            required=True,
            rules=(RegexRule(ENTITY_NAME_PATTERN),),
            description="The name of the user being created.",
            examples=("bob", "alice"),
        ),
        CsvColumn("displayName", description="Display name of the user.", examples=("Bob Jones",)),
        CsvColumn("description", description="Description about the user in Markdown format."),
        CsvColumn(
            "email",
            required=True,
            rules=(RegexRule(EMAIL_PATTERN),),
            description="Email address of the user.",
            examples=("bob@example.com",),
        ),
        CsvColumn("timezone", description="Timezone of the user.", examples=("America/Los_Angeles",)),
        CsvColumn(
            "isAdmin",
            rules=(EnumRule(("true", "false")),),
            description="Set to true if the user is an administrator.",
            examples=("true", "false"),
        ),
        CsvColumn(
            "teams",
            required=True,
            multi_valued=True,
            rules=(ReferenceRule(TEAM, within_scope=True),),
            description="Teams the user belongs to, separated by ';'. They must be under the team being imported into.",
            examples=("Engineering;Marketing",),
        ),
        CsvColumn(
            "roles",
            multi_valued=True,
            rules=(ReferenceRule("role"),),
            description="Roles assigned to the user, separated by ';'.",
            examples=("DataSteward;DataConsumer",),
        ),
    ],
)


class UserCsvMapping(CsvEntityMapping):
    contract = USER_CSV_CONTRACT

    def to_fields(self, record: Sequence[str]) -> Dict[str, FieldValue]:
        name, display_name, description, email, timezone, is_admin, teams, roles = record
        return {
            "name": self.text(name),
            "displayName": self.text(display_name),
            "description": self.text(description),
            "email": self.text(email),
            "timezone": self.text(timezone),
            "isAdmin": self.flag(is_admin),
            "teams": self.references(teams, TEAM),
            "roles": self.references(roles, "role"),
        }

    def to_record(self, snapshot: EntitySnapshot) -> List[str]:
        return [
            snapshot.name,
            self.format_text(snapshot, "displayName"),
            self.format_text(snapshot, "description"),
            self.format_text(snapshot, "email"),
            self.format_text(snapshot, "timezone"),
            self.format_flag(snapshot, "isAdmin"),
            self.format_references(snapshot, "teams"),
            self.format_references(snapshot, "roles"),
        ]

    def in_scope(self, snapshot: EntitySnapshot, scope: Optional[str], resolver: ReferenceResolver) -> bool:
        """Users belonging to at least one team under the scope team."""
        if not scope:
            return True
        return any(resolver.within_scope(team, scope) for team in snapshot.get("teams").items())
