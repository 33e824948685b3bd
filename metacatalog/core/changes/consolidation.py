"""Merging same-session change lists into one consolidated list.

Rules, per field:

* ADDED then DELETED cancels out.
* Repeated UPDATEs collapse into one UPDATE from the first old value to the
  last new value; ending on the original value cancels the field.
* DELETED then ADDED of a different value stays a DELETED + ADDED pair;
  re-adding the original value cancels.
* Collection fields are merged element by element.

The output is canonical: table order, then DELETED, UPDATED, ADDED within a
field, elements in order of first appearance.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from metacatalog.core.changes.fields import FieldDescriptor, FieldTable
from metacatalog.core.changes.models import ChangeKind, FieldChange


def consolidate(
    table: FieldTable,
    earlier: Sequence[FieldChange],
    later: Sequence[FieldChange],
) -> Tuple[FieldChange, ...]:
    by_field: Dict[str, List[FieldChange]] = {}
    for change in list(earlier) + list(later):
        by_field.setdefault(change.field, []).append(change)

    merged: List[FieldChange] = []
    for descriptor in table:
        changes = by_field.get(descriptor.name)
        if not changes:
            continue
        if descriptor.is_collection:
            merged.extend(_merge_elements(descriptor, changes))
        else:
            merged.extend(_merge_scalar(descriptor, changes))
    return tuple(merged)


def _merge_elements(descriptor: FieldDescriptor, changes: Iterable[FieldChange]) -> List[FieldChange]:
    added: "OrderedDict[Any, Any]" = OrderedDict()
    deleted: "OrderedDict[Any, Any]" = OrderedDict()
    for change in changes:
        if change.kind is ChangeKind.ADDED:
            key = descriptor.element_key(change.new_value)
            if key in deleted:
                del deleted[key]
            else:
                added[key] = change.new_value
        elif change.kind is ChangeKind.DELETED:
            key = descriptor.element_key(change.old_value)
            if key in added:
                del added[key]
            else:
                deleted[key] = change.old_value
    return [
        FieldChange(descriptor.name, ChangeKind.DELETED, old_value=v) for v in deleted.values()
    ] + [FieldChange(descriptor.name, ChangeKind.ADDED, new_value=v) for v in added.values()]


def _merge_scalar(descriptor: FieldDescriptor, changes: Sequence[FieldChange]) -> List[FieldChange]:
    first, last = changes[0], changes[-1]
    had_original = first.kind is not ChangeKind.ADDED
    original = first.old_value
    has_final = last.kind is not ChangeKind.DELETED
    final = last.new_value

    # A removal followed later by an addition keeps both halves visible.
    removed_then_added = False
    seen_delete = False
    for change in changes:
        if change.kind is ChangeKind.DELETED:
            seen_delete = True
        elif change.kind is ChangeKind.ADDED and seen_delete:
            removed_then_added = True

    name = descriptor.name
    if not had_original and not has_final:
        return []
    if not had_original:
        return [FieldChange(name, ChangeKind.ADDED, new_value=final)]
    if not has_final:
        return [FieldChange(name, ChangeKind.DELETED, old_value=original)]
    if descriptor.same_value(original, final):
        return []
    if removed_then_added:
        return [
            FieldChange(name, ChangeKind.DELETED, old_value=original),
            FieldChange(name, ChangeKind.ADDED, new_value=final),
        ]
    return [FieldChange(name, ChangeKind.UPDATED, old_value=original, new_value=final)]


__all__ = ["consolidate"]
