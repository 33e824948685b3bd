"""Declared field tables and tagged field state for catalog entities.

Every entity type declares its fields once, in order, through a ``FieldTable``.
The change recorder, the merge engine and the CSV mappings only ever look at
fields through that table.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple


class FieldKind(str, enum.Enum):
    SCALAR = "scalar"
    REFERENCE = "reference"
    REFERENCE_LIST = "reference_list"


class FieldState(str, enum.Enum):
    UNSET = "unset"
    DEFAULT = "default"
    EXPLICIT = "explicit"


@dataclass(frozen=True)
class EntityReference:
    type: str
    name: str

    def to_dict(self) -> dict:
        return {"type": self.type, "name": self.name}

    @classmethod
    def from_dict(cls, data: dict) -> "EntityReference":
        return cls(type=data["type"], name=data["name"])


@dataclass(frozen=True)
class FieldValue:
    """A field's value together with how it got there."""

    state: FieldState
    value: Any = None

    @property
    def is_set(self) -> bool:
        return self.state is not FieldState.UNSET

    @property
    def is_default(self) -> bool:
        return self.state is FieldState.DEFAULT

    def items(self) -> Tuple[Any, ...]:
        """Elements of a collection value; empty when unset."""
        if not self.is_set:
            return ()
        return tuple(self.value)


UNSET = FieldValue(FieldState.UNSET)


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, (list, tuple)) and not value)


def explicit(value: Any) -> FieldValue:
    if _is_empty(value):
        return UNSET
    if isinstance(value, list):
        value = tuple(value)
    return FieldValue(FieldState.EXPLICIT, value)


def default(value: Any) -> FieldValue:
    if _is_empty(value):
        return UNSET
    if isinstance(value, list):
        value = tuple(value)
    return FieldValue(FieldState.DEFAULT, value)


@dataclass(frozen=True)
class FieldDescriptor:
    name: str
    kind: FieldKind = FieldKind.SCALAR
    reference_type: Optional[str] = None
    identity: bool = False
    protected: bool = False
    system_managed: bool = False
    default: Optional[Callable[[], Any]] = None
    comparator: Optional[Callable[[Any, Any], bool]] = None

    @property
    def is_collection(self) -> bool:
        return self.kind is FieldKind.REFERENCE_LIST

    def element_key(self, element: Any) -> Any:
        if isinstance(element, EntityReference):
            return element.name
        return element

    def keys(self, value: FieldValue) -> List[Any]:
        return [self.element_key(e) for e in value.items()]

    def same(self, left: FieldValue, right: FieldValue) -> bool:
        """Value equality, ignoring whether a value is a default or explicit."""
        if left.is_set != right.is_set:
            return False
        if not left.is_set:
            return True
        if self.is_collection:
            return set(self.keys(left)) == set(self.keys(right))
        return self.same_value(left.value, right.value)

    def same_value(self, left: Any, right: Any) -> bool:
        if self.comparator is not None:
            return self.comparator(left, right)
        return left == right

    def default_value(self) -> FieldValue:
        if self.default is None:
            return UNSET
        return default(self.default())

    def restore(self, value: Any) -> FieldValue:
        """Re-tag a plain value, recognising the declared default."""
        candidate = explicit(value)
        if candidate.is_set and self.default is not None:
            declared = self.default_value()
            if self.same(declared, candidate):
                return declared
        return candidate


class FieldTable:
    """Ordered, immutable field declarations for one entity type."""

    def __init__(self, entity_type: str, descriptors: Iterable[FieldDescriptor]) -> None:
        self.entity_type = entity_type
        self._fields: Tuple[FieldDescriptor, ...] = tuple(descriptors)
        self._by_name: Dict[str, FieldDescriptor] = {d.name: d for d in self._fields}
        if len(self._by_name) != len(self._fields):
            raise ValueError(f"duplicate field declared for {entity_type}")

    def __iter__(self) -> Iterator[FieldDescriptor]:
        return iter(self._fields)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __len__(self) -> int:
        return len(self._fields)

    def get(self, name: str) -> FieldDescriptor:
        return self._by_name[name]

    def names(self) -> List[str]:
        return [d.name for d in self._fields]

    def diffable(self) -> List[FieldDescriptor]:
        return [d for d in self._fields if not d.system_managed]


def encode_value(value: Any) -> Any:
    """Plain JSON form of a field value (references become dicts)."""
    if isinstance(value, EntityReference):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [encode_value(v) for v in value]
    return value


def decode_value(value: Any) -> Any:
    if isinstance(value, dict) and set(value) == {"type", "name"}:
        return EntityReference.from_dict(value)
    if isinstance(value, list):
        return tuple(decode_value(v) for v in value)
    return value


__all__ = [
    "EntityReference",
    "FieldDescriptor",
    "FieldKind",
    "FieldState",
    "FieldTable",
    "FieldValue",
    "UNSET",
    "decode_value",
    "default",
    "encode_value",
    "explicit",
]
