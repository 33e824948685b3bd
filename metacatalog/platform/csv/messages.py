"""Row-level error messages reported in import results."""

from __future__ import annotations

from typing import Iterable

FIELD_REQUIRED = "#FIELD_REQUIRED"
INVALID_FIELD = "#INVALID_FIELD"
ENTITY_NOT_FOUND = "#ENTITY_NOT_FOUND"
SCOPE_VIOLATION = "#SCOPE_VIOLATION"
PARSER_FAILURE = "#PARSER_FAILURE"
APPLY_FAILURE = "#APPLY_FAILURE"
CANCELLED = "#CANCELLED"

ENTITY_CREATED = "Entity created"
ENTITY_UPDATED = "Entity updated"


def field_required(index: int) -> str:
    return f"{FIELD_REQUIRED}: Field {index} is required"


def invalid_pattern(index: int, column: str, pattern: str) -> str:
    return f'{INVALID_FIELD}: Field {index} error - {column} must match "{pattern}"'


def invalid_enum(index: int, value: str, allowed: Iterable[str]) -> str:
    return f"{INVALID_FIELD}: Field {index} error - {value} is not one of [{', '.join(allowed)}]"


def entity_not_found(index: int, entity_type: str, name: str) -> str:
    return f"{ENTITY_NOT_FOUND}: Field {index} error - Entity {entity_type} {name} not found"


def scope_violation(index: int, entity_type: str, name: str, row_name: str, scope: str) -> str:
    return (
        f"{SCOPE_VIOLATION}: Field {index} error - {entity_type} {name} of {row_name} "
        f"is not under {scope} hierarchy"
    )


def parser_failure(expected: int, actual: int) -> str:
    return f"{PARSER_FAILURE}: Expected {expected} fields but found {actual}"


def apply_failure(reason: str) -> str:
    return f"{APPLY_FAILURE}: {reason}"


def cancelled() -> str:
    return f"{CANCELLED}: Import cancelled before this row was applied"
