"""Request/response schemas for the catalog API."""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from metacatalog.platform.csv.contract import ENTITY_NAME_PATTERN

_NAME_RE = re.compile(ENTITY_NAME_PATTERN)


class PatchRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    set: Dict[str, Any] = Field(default_factory=dict)
    add: Dict[str, List[Any]] = Field(default_factory=dict)
    remove: Dict[str, List[Any]] = Field(default_factory=dict)


class CreateEntityRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1, max_length=256)
    attributes: Dict[str, Any] = Field(default_factory=dict, alias="fields")

    @field_validator("name")
    @classmethod
    def _valid_name(cls, value: str) -> str:
        if _NAME_RE.fullmatch(value) is None:
            raise ValueError(f'name must match "{ENTITY_NAME_PATTERN}"')
        return value


class BulkQuery(BaseModel):
    team: Optional[str] = Field(default=None, max_length=256)
    dryRun: bool = False


class EntityResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    entity_type: str
    name: str
    version: float
    attributes: Dict[str, Any] = Field(alias="fields")
    updated_by: Optional[str]
    updated_at: Optional[str]


class ChangeRecordResponse(BaseModel):
    entity_type: str
    name: str
    previous_version: float
    new_version: float
    update_type: str
    changes: List[Dict[str, Any]]
    updated_by: Optional[str]
    updated_at: Optional[str]
