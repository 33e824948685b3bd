from __future__ import annotations

import pytest

pytestmark = pytest.mark.unit

from metacatalog.core.changes.consolidation import consolidate
from metacatalog.core.changes.fields import EntityReference, explicit
from metacatalog.core.changes.models import ChangeKind, FieldChange
from metacatalog.core.changes.recorder import ChangeRecorder
from metacatalog.core.changes.snapshot import EntitySnapshot
from metacatalog.domains.users.fields import USER_FIELDS


def _role(name: str) -> EntityReference:
    return EntityReference("role", name)


def _changes(old: EntitySnapshot, new: EntitySnapshot):
    return ChangeRecorder(USER_FIELDS).field_changes(old, new)


def _user(**fields) -> EntitySnapshot:
    values = {"name": explicit("alice")}
    values.update({k: explicit(v) for k, v in fields.items()})
    return EntitySnapshot("user", "alice", 0.1, values)


def test_added_then_deleted_cancels():
    s0, s1, s2 = _user(), _user(roles=[_role("R1")]), _user()

    assert consolidate(USER_FIELDS, _changes(s0, s1), _changes(s1, s2)) == ()


def test_element_additions_accumulate():
    s0, s1, s2 = _user(), _user(roles=[_role("R1")]), _user(roles=[_role("R1"), _role("R2")])

    merged = consolidate(USER_FIELDS, _changes(s0, s1), _changes(s1, s2))

    assert merged == (
        FieldChange("roles", ChangeKind.ADDED, new_value=_role("R1")),
        FieldChange("roles", ChangeKind.ADDED, new_value=_role("R2")),
    )


def test_repeated_updates_collapse_to_first_old_last_new():
    s0, s1, s2 = _user(displayName="A"), _user(displayName="B"), _user(displayName="C")

    merged = consolidate(USER_FIELDS, _changes(s0, s1), _changes(s1, s2))

    assert merged == (FieldChange("displayName", ChangeKind.UPDATED, old_value="A", new_value="C"),)


def test_update_back_to_original_cancels():
    s0, s1, s2 = _user(displayName="A"), _user(displayName="B"), _user(displayName="A")

    assert consolidate(USER_FIELDS, _changes(s0, s1), _changes(s1, s2)) == ()


def test_delete_then_add_of_different_value_stays_a_pair():
    s0, s1, s2 = _user(timezone="UTC"), _user(), _user(timezone="Europe/Paris")

    merged = consolidate(USER_FIELDS, _changes(s0, s1), _changes(s1, s2))

    assert merged == (
        FieldChange("timezone", ChangeKind.DELETED, old_value="UTC"),
        FieldChange("timezone", ChangeKind.ADDED, new_value="Europe/Paris"),
    )


def test_delete_then_add_of_same_value_cancels():
    s0, s1, s2 = _user(timezone="UTC"), _user(), _user(timezone="UTC")

    assert consolidate(USER_FIELDS, _changes(s0, s1), _changes(s1, s2)) == ()


def test_output_follows_declared_field_order():
    s0 = _user()
    s1 = _user(roles=[_role("R1")])
    s2 = _user(roles=[_role("R1")], displayName="A")

    merged = consolidate(USER_FIELDS, _changes(s0, s1), _changes(s1, s2))

    assert [c.field for c in merged] == ["displayName", "roles"]


def test_three_patches_on_disjoint_fields_match_direct_diff():
    s0 = _user()
    s1 = _user(displayName="A")
    s2 = _user(displayName="A", description="d")
    s3 = _user(displayName="A", description="d", roles=[_role("R1")])

    left = consolidate(USER_FIELDS, consolidate(USER_FIELDS, _changes(s0, s1), _changes(s1, s2)), _changes(s2, s3))
    right = consolidate(USER_FIELDS, _changes(s0, s1), consolidate(USER_FIELDS, _changes(s1, s2), _changes(s2, s3)))

    assert left == right == tuple(_changes(s0, s3))
