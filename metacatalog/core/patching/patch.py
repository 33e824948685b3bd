"""Partial updates submitted against an entity."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Tuple

from metacatalog.core.changes.fields import (
    EntityReference,
    FieldDescriptor,
    FieldKind,
    FieldTable,
    FieldValue,
    explicit,
)
from metacatalog.core.changes.snapshot import EntitySnapshot
from metacatalog.core.errors import FieldValidationError


@dataclass(frozen=True)
class EntityPatch:
    """Field replacements plus element-wise edits of reference lists.

    Applying the same patch to a refreshed snapshot only carries the caller's
    own delta, which is what makes conflict retries safe.
    """

    set: Mapping[str, FieldValue] = field(default_factory=dict)
    add: Mapping[str, Tuple[Any, ...]] = field(default_factory=dict)
    remove: Mapping[str, Tuple[Any, ...]] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not (self.set or self.add or self.remove)

    def apply_to(self, snapshot: EntitySnapshot, table: FieldTable) -> EntitySnapshot:
        updates: Dict[str, FieldValue] = {}
        for name, value in self.set.items():
            _descriptor(table, name)
            updates[name] = value
        for name, elements in self.add.items():
            descriptor = _collection(table, name)
            current = updates.get(name, snapshot.get(name))
            keys = set(descriptor.keys(current))
            items = list(current.items())
            for element in elements:
                if descriptor.element_key(element) not in keys:
                    items.append(element)
                    keys.add(descriptor.element_key(element))
            updates[name] = explicit(items)
        for name, elements in self.remove.items():
            descriptor = _collection(table, name)
            current = updates.get(name, snapshot.get(name))
            dropped = {descriptor.element_key(e) for e in elements}
            updates[name] = explicit([e for e in current.items() if descriptor.element_key(e) not in dropped])
        return snapshot.with_fields(updates)

    @classmethod
    def between(cls, base: EntitySnapshot, target: EntitySnapshot, table: FieldTable) -> "EntityPatch":
        """Derive the patch that turns ``base`` into ``target``."""
        sets: Dict[str, FieldValue] = {}
        adds: Dict[str, Tuple[Any, ...]] = {}
        removes: Dict[str, Tuple[Any, ...]] = {}
        for descriptor in table.diffable():
            old, new = base.get(descriptor.name), target.get(descriptor.name)
            if descriptor.is_collection:
                old_keys, new_keys = set(descriptor.keys(old)), set(descriptor.keys(new))
                added = tuple(e for e in new.items() if descriptor.element_key(e) not in old_keys)
                removed = tuple(e for e in old.items() if descriptor.element_key(e) not in new_keys)
                if added:
                    adds[descriptor.name] = added
                if removed:
                    removes[descriptor.name] = removed
            elif not descriptor.same(old, new):
                sets[descriptor.name] = new
        return cls(set=sets, add=adds, remove=removes)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], table: FieldTable) -> "EntityPatch":
        """Build a patch from plain JSON: ``{"set": {...}, "add": {...}, "remove": {...}}``.

        Reference values are given by name.
        """
        sets = {
            name: explicit(coerce_value(_descriptor(table, name), value))
            for name, value in (payload.get("set") or {}).items()
        }
        adds = {
            name: tuple(coerce_value(_collection(table, name), values))
            for name, values in (payload.get("add") or {}).items()
        }
        removes = {
            name: tuple(coerce_value(_collection(table, name), values))
            for name, values in (payload.get("remove") or {}).items()
        }
        return cls(set=sets, add=adds, remove=removes)


def coerce_value(descriptor: FieldDescriptor, value: Any) -> Any:
    if value is None:
        return None
    if descriptor.kind is FieldKind.REFERENCE:
        return _reference(descriptor, value)
    if descriptor.kind is FieldKind.REFERENCE_LIST:
        if not isinstance(value, (list, tuple)):
            raise FieldValidationError(f"{descriptor.name} must be a list")
        return tuple(_reference(descriptor, v) for v in value)
    return value


def _reference(descriptor: FieldDescriptor, value: Any) -> EntityReference:
    if isinstance(value, EntityReference):
        return value
    if isinstance(value, dict) and "name" in value:
        return EntityReference(type=value.get("type") or descriptor.reference_type, name=value["name"])
    if isinstance(value, str) and value:
        return EntityReference(type=descriptor.reference_type, name=value)
    raise FieldValidationError(f"{descriptor.name} must reference an entity by name")


def _descriptor(table: FieldTable, name: str) -> FieldDescriptor:
    if name not in table:
        raise FieldValidationError(f"Unknown field {name} for {table.entity_type}")
    return table.get(name)


def _collection(table: FieldTable, name: str) -> FieldDescriptor:
    descriptor = _descriptor(table, name)
    if not descriptor.is_collection:
        raise FieldValidationError(f"{name} is not a collection field")
    return descriptor


__all__ = ["EntityPatch", "coerce_value"]
