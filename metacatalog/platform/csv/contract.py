"""Header contracts, column rules and the entity <-> CSV record mapping."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from metacatalog.core.changes.fields import UNSET, EntityReference, FieldValue, explicit
from metacatalog.core.changes.snapshot import EntitySnapshot
from metacatalog.core.collaborators import ReferenceResolver
from metacatalog.core.errors import NotFound
from metacatalog.platform.csv import codec, messages

# Names may hold anything but the "::" FQN separator.
ENTITY_NAME_PATTERN = "^((?!::).)*$"


@dataclass(frozen=True)
class RowContext:
    """What a rule needs to know about the row being validated."""

    row_name: str
    scope: Optional[str]
    resolver: Optional[ReferenceResolver]


@dataclass(frozen=True)
class RegexRule:
    pattern: str

    def check(self, column: "CsvColumn", index: int, value: str, context: RowContext) -> Optional[str]:
        if re.fullmatch(self.pattern, value) is None:
            return messages.invalid_pattern(index, column.name, self.pattern)
        return None


@dataclass(frozen=True)
class EnumRule:
    values: Tuple[str, ...]
    case_sensitive: bool = False

    def check(self, column: "CsvColumn", index: int, value: str, context: RowContext) -> Optional[str]:
        if self.case_sensitive:
            ok = value in self.values
        else:
            ok = value.lower() in {v.lower() for v in self.values}
        return None if ok else messages.invalid_enum(index, value, self.values)


@dataclass(frozen=True)
class ReferenceRule:
    """The named entity must exist and, with ``within_scope``, lie under the scope hint."""

    entity_type: str
    within_scope: bool = False

    def check(self, column: "CsvColumn", index: int, value: str, context: RowContext) -> Optional[str]:
        if context.resolver is None:
            return None
        try:
            reference = context.resolver.resolve(self.entity_type, value)
        except NotFound:
            return messages.entity_not_found(index, self.entity_type, value)
        if self.within_scope and context.scope and not context.resolver.within_scope(reference, context.scope):
            return messages.scope_violation(index, self.entity_type, value, context.row_name, context.scope)
        return None


@dataclass(frozen=True)
class CsvColumn:
    name: str
    required: bool = False
    multi_valued: bool = False
    rules: Tuple = ()
    description: str = ""
    examples: Tuple[str, ...] = ()

    def validate(self, index: int, raw: str, context: RowContext) -> List[str]:
        if not raw.strip():
            return [messages.field_required(index)] if self.required else []
        values = codec.split_values(raw) if self.multi_valued else [raw.strip()]
        errors: List[str] = []
        for rule in self.rules:
            for value in values:
                error = rule.check(self, index, value, context)
                if error:
                    errors.append(error)
        return errors


class CsvHeaderContract:
    def __init__(self, entity_type: str, columns: Sequence[CsvColumn]) -> None:
        self.entity_type = entity_type
        self.columns: Tuple[CsvColumn, ...] = tuple(columns)

    @property
    def headers(self) -> List[str]:
        return [c.name for c in self.columns]

    @property
    def width(self) -> int:
        return len(self.columns)

    def index(self, name: str) -> int:
        return self.headers.index(name)

    def matches(self, record: Sequence[str]) -> bool:
        return [h.strip() for h in record] == self.headers


class CsvEntityMapping:
    """Converts between CSV records and entity fields for one entity type.

    Subclasses declare ``contract`` and implement ``to_fields``/``to_record``.
    """

    contract: CsvHeaderContract
    name_column = "name"

    @property
    def entity_type(self) -> str:
        return self.contract.entity_type

    def row_name(self, record: Sequence[str]) -> str:
        return record[self.contract.index(self.name_column)].strip()

    def validate(
        self,
        record: Sequence[str],
        *,
        scope: Optional[str] = None,
        resolver: Optional[ReferenceResolver] = None,
    ) -> List[str]:
        context = RowContext(row_name=self.row_name(record), scope=scope, resolver=resolver)
        errors: List[str] = []
        for index, (column, raw) in enumerate(zip(self.contract.columns, record)):
            errors.extend(column.validate(index, raw, context))
        return errors

    def to_fields(self, record: Sequence[str]) -> Dict[str, FieldValue]:
        raise NotImplementedError

    def to_record(self, snapshot: EntitySnapshot) -> List[str]:
        raise NotImplementedError

    def in_scope(self, snapshot: EntitySnapshot, scope: Optional[str], resolver: ReferenceResolver) -> bool:
        return True

    def documentation(self) -> dict:
        return {
            "entity_type": self.entity_type,
            "headers": [
                {
                    "name": c.name,
                    "required": c.required,
                    "multi_valued": c.multi_valued,
                    "description": c.description,
                    "examples": list(c.examples),
                }
                for c in self.contract.columns
            ],
        }

    # Conversion helpers shared by the concrete mappings

    @staticmethod
    def text(raw: str) -> FieldValue:
        return explicit(raw.strip() or None)

    @staticmethod
    def flag(raw: str) -> FieldValue:
        raw = raw.strip()
        if not raw:
            return UNSET
        return explicit(raw.lower() == "true")

    @staticmethod
    def references(raw: str, entity_type: str) -> FieldValue:
        return explicit([EntityReference(entity_type, name) for name in codec.split_values(raw)])

    @staticmethod
    def format_text(snapshot: EntitySnapshot, name: str) -> str:
        value = snapshot.value(name)
        return "" if value is None else str(value)

    @staticmethod
    def format_flag(snapshot: EntitySnapshot, name: str) -> str:
        value = snapshot.value(name)
        if value is None:
            return ""
        return "true" if value else "false"

    @staticmethod
    def format_references(snapshot: EntitySnapshot, name: str) -> str:
        return codec.join_values(ref.name for ref in snapshot.get(name).items())


__all__ = [
    "ENTITY_NAME_PATTERN",
    "CsvColumn",
    "CsvEntityMapping",
    "CsvHeaderContract",
    "EnumRule",
    "ReferenceRule",
    "RegexRule",
    "RowContext",
]
