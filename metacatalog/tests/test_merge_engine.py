from __future__ import annotations

from datetime import datetime, timedelta

import pytest

pytestmark = pytest.mark.unit

from metacatalog.core.auth.authorization import Caller, RoleBasedAuthorization, SYSTEM_CALLER
from metacatalog.core.changes.fields import UNSET, EntityReference, FieldState, default, explicit
from metacatalog.core.changes.models import ChangeKind, UpdateType
from metacatalog.core.changes.snapshot import EntitySnapshot
from metacatalog.core.errors import Forbidden
from metacatalog.core.patching.merge_engine import PatchMergeEngine
from metacatalog.domains.registry import default_registry
from metacatalog.domains.teams.hierarchy import organization_reference
from metacatalog.domains.users.fields import USER_FIELDS

NOW = datetime(2024, 1, 1, 12, 0, 0)
ALICE = Caller("alice")


def _team(name: str) -> EntityReference:
    return EntityReference("team", name)


def _engine() -> PatchMergeEngine:
    return PatchMergeEngine(USER_FIELDS, authorization=RoleBasedAuthorization(default_registry()))


def _alice(version: float = 0.1, **fields) -> EntitySnapshot:
    values = {
        "name": explicit("alice"),
        "email": explicit("alice@x.com"),
        "teams": default([organization_reference()]),
    }
    values.update(fields)
    return EntitySnapshot("user", "alice", version, values)


def test_choosing_teams_drops_the_default_team():
    current = _alice()
    requested = current.with_fields({"teams": explicit([organization_reference(), _team("eng")])})

    outcome = _engine().apply(current, requested, caller=SYSTEM_CALLER, now=NOW)

    assert outcome.snapshot.get("teams") == explicit([_team("eng")])
    assert outcome.record.deleted("teams") == [organization_reference()]
    assert outcome.record.added("teams") == [_team("eng")]
    assert outcome.snapshot.version == 0.2


def test_explicit_value_equal_to_default_keeps_default_state():
    current = _alice()
    requested = current.with_fields({"teams": explicit([organization_reference()])})

    outcome = _engine().apply(current, requested, caller=SYSTEM_CALLER, now=NOW)

    assert outcome.record.update_type is UpdateType.NO_CHANGE
    assert not outcome.changed
    assert outcome.snapshot.get("teams").state is FieldState.DEFAULT


def test_clearing_a_defaulted_field_restores_default():
    current = _alice(teams=explicit([_team("eng")]))
    requested = current.with_fields({"teams": UNSET})

    outcome = _engine().apply(current, requested, caller=SYSTEM_CALLER, now=NOW)

    assert outcome.snapshot.get("teams") == default([organization_reference()])
    assert outcome.record.deleted("teams") == [_team("eng")]
    assert outcome.record.added("teams") == [organization_reference()]


def test_non_admin_cannot_change_protected_fields_of_self():
    current = _alice()
    requested = current.with_fields(
        {"roles": explicit([EntityReference("role", "DataSteward")]), "displayName": explicit("Alice")}
    )

    outcome = _engine().apply(current, requested, caller=ALICE, now=NOW)

    assert outcome.snapshot.get("roles") == UNSET
    assert outcome.snapshot.value("displayName") == "Alice"
    assert outcome.record.fields_changed() == ["displayName"]


def test_change_with_no_permitted_field_is_forbidden():
    current = _alice()
    requested = current.with_fields({"isAdmin": explicit(True)})

    with pytest.raises(Forbidden):
        _engine().apply(current, requested, caller=ALICE, now=NOW)


def test_other_users_without_write_role_are_forbidden():
    current = _alice()
    requested = current.with_fields({"displayName": explicit("Hacked")})

    with pytest.raises(Forbidden):
        _engine().apply(current, requested, caller=Caller("mallory"), now=NOW)


def test_system_managed_fields_cannot_be_set_by_callers():
    current = _alice()
    requested = current.with_fields({"inheritedRoles": explicit([EntityReference("role", "X")])})

    outcome = _engine().apply(current, requested, caller=SYSTEM_CALLER, now=NOW)

    assert not outcome.changed
    assert outcome.snapshot.get("inheritedRoles") == UNSET


def test_same_session_minor_changes_consolidate():
    engine = _engine()
    v1 = _alice()
    first = engine.apply(v1, v1.with_fields({"displayName": explicit("A")}), caller=ALICE, now=NOW)
    second = engine.apply(
        first.snapshot,
        first.snapshot.with_fields({"description": explicit("d")}),
        caller=ALICE,
        last_record=first.record,
        now=NOW + timedelta(minutes=5),
    )

    assert second.consolidated
    assert second.snapshot.version == 0.2
    assert second.record.previous_version == 0.1
    assert second.record.new_version == 0.2
    assert second.record.fields_changed() == ["displayName", "description"]


def test_session_expires_after_timeout():
    engine = _engine()
    v1 = _alice()
    first = engine.apply(v1, v1.with_fields({"displayName": explicit("A")}), caller=ALICE, now=NOW)
    second = engine.apply(
        first.snapshot,
        first.snapshot.with_fields({"description": explicit("d")}),
        caller=ALICE,
        last_record=first.record,
        now=NOW + timedelta(minutes=11),
    )

    assert not second.consolidated
    assert second.snapshot.version == 0.3
    assert second.record.previous_version == 0.2


def test_different_caller_starts_a_new_record():
    engine = _engine()
    v1 = _alice()
    first = engine.apply(v1, v1.with_fields({"displayName": explicit("A")}), caller=ALICE, now=NOW)
    second = engine.apply(
        first.snapshot,
        first.snapshot.with_fields({"description": explicit("d")}),
        caller=SYSTEM_CALLER,
        last_record=first.record,
        now=NOW,
    )

    assert not second.consolidated
    assert second.snapshot.version == 0.3


def test_undoing_the_session_returns_to_previous_version():
    engine = _engine()
    v1 = _alice()
    first = engine.apply(v1, v1.with_fields({"displayName": explicit("A")}), caller=ALICE, now=NOW)
    second = engine.apply(
        first.snapshot,
        first.snapshot.with_fields({"displayName": UNSET}),
        caller=ALICE,
        last_record=first.record,
        now=NOW,
    )

    assert second.consolidated
    assert second.changed
    assert second.record.is_empty
    assert second.snapshot.version == 0.1


def test_major_change_is_never_consolidated():
    engine = _engine()
    v1 = _alice()
    first = engine.apply(v1, v1.with_fields({"displayName": explicit("A")}), caller=SYSTEM_CALLER, now=NOW)
    second = engine.apply(
        first.snapshot,
        first.snapshot.with_fields({"email": explicit("alice@y.com")}),
        caller=SYSTEM_CALLER,
        last_record=first.record,
        now=NOW,
    )

    assert second.record.update_type is UpdateType.MAJOR
    assert not second.consolidated
    assert second.snapshot.version == 1.2
    assert second.record.of_kind("email", ChangeKind.UPDATED)


def test_create_fills_defaults_and_reverts_denied_fields():
    requested = EntitySnapshot(
        "user",
        "bob",
        0.0,
        {"name": explicit("bob"), "email": explicit("bob@x.com"), "isAdmin": explicit(True)},
    )

    outcome = _engine().create(requested, caller=Caller("bob"), now=NOW)

    assert outcome.snapshot.version == 0.1
    assert outcome.snapshot.get("isAdmin") == UNSET
    assert outcome.snapshot.get("teams") == default([organization_reference()])
    assert outcome.record.update_type is UpdateType.CREATED


def test_create_keeps_default_tag_for_explicit_default_value():
    requested = EntitySnapshot(
        "user",
        "bob",
        0.0,
        {
            "name": explicit("bob"),
            "email": explicit("bob@x.com"),
            "teams": explicit([organization_reference()]),
        },
    )

    created = _engine().create(requested, caller=SYSTEM_CALLER, now=NOW).snapshot
    assert created.get("teams") == default([organization_reference()])

    joined = created.with_fields({"teams": explicit([_team("eng")])})
    outcome = _engine().apply(created, joined, caller=SYSTEM_CALLER, now=NOW)

    assert outcome.record.deleted("teams") == [organization_reference()]
    assert outcome.record.added("teams") == [_team("eng")]
    assert outcome.snapshot.get("teams") == explicit([_team("eng")])
