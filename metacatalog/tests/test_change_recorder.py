from __future__ import annotations

import pytest

pytestmark = pytest.mark.unit

from metacatalog.core.changes.fields import EntityReference, FieldState, default, explicit
from metacatalog.core.changes.models import ChangeKind, ChangeRecord, UpdateType, next_version
from metacatalog.core.changes.recorder import ChangeRecorder
from metacatalog.core.changes.snapshot import EntitySnapshot
from metacatalog.domains.teams.fields import TEAM_FIELDS
from metacatalog.domains.teams.hierarchy import organization_reference
from metacatalog.domains.users.fields import USER_FIELDS


def _team(name: str) -> EntityReference:
    return EntityReference("team", name)


def _user(version: float = 0.1, **fields) -> EntitySnapshot:
    values = {"name": explicit("alice"), "email": explicit("alice@x.com")}
    values.update(fields)
    return EntitySnapshot("user", "alice", version, values)


def test_scalar_changes_are_classified_by_presence():
    recorder = ChangeRecorder(USER_FIELDS)
    old = _user(displayName=explicit("Alice"), timezone=explicit("UTC"))
    new = _user(displayName=explicit("Alice A."), description=explicit("hello"))

    record = recorder.diff(old, new, updated_by="admin")

    assert record.update_type is UpdateType.MINOR
    assert record.previous_version == 0.1
    assert record.new_version == 0.2
    assert record.updated("displayName").old_value == "Alice"
    assert record.updated("displayName").new_value == "Alice A."
    assert record.added("description") == ["hello"]
    assert record.deleted("timezone") == ["UTC"]
    # Declared field order, not alphabetical
    assert record.fields_changed() == ["displayName", "description", "timezone"]


def test_reference_lists_are_compared_per_element():
    recorder = ChangeRecorder(USER_FIELDS)
    old = _user(teams=explicit([_team("a"), _team("b")]))
    new = _user(teams=explicit([_team("b"), _team("c")]))

    record = recorder.diff(old, new)

    assert [c.kind for c in record.changes] == [ChangeKind.DELETED, ChangeKind.ADDED]
    assert record.deleted("teams") == [_team("a")]
    assert record.added("teams") == [_team("c")]


def test_reordering_a_reference_list_is_not_a_change():
    recorder = ChangeRecorder(USER_FIELDS)
    old = _user(teams=explicit([_team("a"), _team("b")]))
    new = _user(teams=explicit([_team("b"), _team("a")]))

    record = recorder.diff(old, new)

    assert record.update_type is UpdateType.NO_CHANGE
    assert record.new_version == record.previous_version == 0.1
    assert record.is_empty


def test_system_managed_fields_are_ignored():
    recorder = ChangeRecorder(USER_FIELDS)
    old = _user()
    new = _user(inheritedRoles=explicit([EntityReference("role", "DataConsumer")]))

    assert recorder.diff(old, new).update_type is UpdateType.NO_CHANGE


def test_identity_field_change_is_major():
    recorder = ChangeRecorder(USER_FIELDS)
    record = recorder.diff(_user(version=0.3), _user(version=0.3, email=explicit("alice@y.com")))

    assert record.update_type is UpdateType.MAJOR
    assert record.new_version == 1.3


def test_email_comparison_ignores_case():
    recorder = ChangeRecorder(USER_FIELDS)
    record = recorder.diff(_user(), _user(email=explicit("Alice@X.com")))

    assert record.update_type is UpdateType.NO_CHANGE


def test_leaving_a_scalar_default_is_delete_plus_add():
    recorder = ChangeRecorder(TEAM_FIELDS)
    old = EntitySnapshot("team", "eng", 0.1, {"name": explicit("eng"), "teamType": default("Group")})
    new = old.with_fields({"teamType": explicit("Department")})

    record = recorder.diff(old, new)

    assert [c.kind for c in record.changes] == [ChangeKind.DELETED, ChangeKind.ADDED]
    assert record.deleted("teamType") == ["Group"]
    assert record.added("teamType") == ["Department"]


def test_replay_and_revert_restore_neighbouring_snapshots():
    recorder = ChangeRecorder(USER_FIELDS)
    old = _user(teams=default([organization_reference()]), displayName=explicit("Alice"))
    new = _user(version=0.2, teams=explicit([_team("eng")]), timezone=explicit("UTC"))
    record = recorder.diff(old, new)

    replayed = recorder.replay(old, record)
    reverted = recorder.revert(new, record)

    assert replayed.version == 0.2
    assert recorder.diff(replayed, new).is_empty
    assert reverted.version == 0.1
    assert recorder.diff(reverted, old).is_empty
    # The implicit default comes back as a default, not an explicit choice.
    assert reverted.get("teams").state is FieldState.DEFAULT


def test_creation_record_lists_initial_fields():
    recorder = ChangeRecorder(USER_FIELDS)
    snapshot = _user(teams=default([organization_reference()]))

    record = recorder.creation(snapshot)

    assert record.update_type is UpdateType.CREATED
    assert record.previous_version == 0.0
    assert record.new_version == 0.1
    assert record.added("teams") == [organization_reference()]


def test_change_record_survives_json_form():
    recorder = ChangeRecorder(USER_FIELDS)
    record = recorder.diff(_user(), _user(teams=explicit([_team("eng")]), displayName=explicit("A")))

    assert ChangeRecord.from_dict(record.to_dict()) == record


@pytest.mark.parametrize(
    "version, update_type, expected",
    [
        (0.1, UpdateType.MINOR, 0.2),
        (0.9, UpdateType.MINOR, 1.0),
        (0.2, UpdateType.MAJOR, 1.2),
        (1.4, UpdateType.NO_CHANGE, 1.4),
    ],
)
def test_next_version(version, update_type, expected):
    assert next_version(version, update_type) == expected
