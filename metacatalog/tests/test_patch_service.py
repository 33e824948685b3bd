from __future__ import annotations

import pytest

pytestmark = pytest.mark.unit

from metacatalog.core.auth.authorization import SYSTEM_CALLER, Caller
from metacatalog.core.changes.fields import EntityReference, FieldState, explicit
from metacatalog.core.changes.models import ChangeKind, UpdateType
from metacatalog.core.errors import Conflict, Forbidden, NotFound
from metacatalog.core.events.event_models import ENTITY_CREATED, ENTITY_UPDATED, EVENT_CATALOG
from metacatalog.core.patching.patch import EntityPatch
from metacatalog.domains.roles.fields import ROLE
from metacatalog.domains.teams.hierarchy import TEAM, organization_reference
from metacatalog.domains.users.fields import USER

ALICE = Caller("alice", frozenset({"admin"}))
BOB = Caller("bob", frozenset({"admin"}))


def _role(name: str) -> EntityReference:
    return EntityReference(ROLE, name)


def _team(name: str) -> EntityReference:
    return EntityReference(TEAM, name)


@pytest.fixture()
def seeded(catalog):
    service = catalog.patch_service
    for role in ("R1", "R2"):
        service.create_entity(ROLE, role, {}, SYSTEM_CALLER)
    service.create_entity(TEAM, "eng", {"defaultRoles": explicit([_role("R1")])}, SYSTEM_CALLER)
    service.create_entity(USER, "u", {"email": explicit("u@x.com")}, SYSTEM_CALLER)
    return catalog


def test_creation_starts_at_initial_version_without_history(seeded):
    user = seeded.patch_service.get_entity(USER, "u")

    assert user.version == 0.1
    assert user.get("teams").state is FieldState.DEFAULT
    assert seeded.patch_service.list_versions(USER, "u") == []


def test_creating_twice_conflicts(seeded):
    with pytest.raises(Conflict):
        seeded.patch_service.create_entity(USER, "u", {"email": explicit("u@x.com")}, SYSTEM_CALLER)


def test_same_patch_twice_is_a_no_op(seeded):
    service = seeded.patch_service
    patch = EntityPatch(set={"displayName": explicit("U")})

    first = service.apply_patch(USER, "u", patch, SYSTEM_CALLER)
    commits = seeded.persistence.commits
    second = service.apply_patch(USER, "u", patch, SYSTEM_CALLER)

    assert first.snapshot.version == 0.2
    assert second.record.update_type is UpdateType.NO_CHANGE
    assert second.snapshot.version == 0.2
    assert seeded.persistence.commits == commits
    assert len(service.list_versions(USER, "u")) == 1


def test_successive_role_additions_share_one_record(seeded):
    service = seeded.patch_service

    service.apply_patch(USER, "u", EntityPatch(add={"roles": (_role("R1"),)}), ALICE)
    seeded.clock.advance(minutes=2)
    outcome = service.apply_patch(USER, "u", EntityPatch(add={"roles": (_role("R2"),)}), ALICE)

    assert outcome.consolidated
    assert outcome.snapshot.version == 0.2
    records = service.list_versions(USER, "u")
    assert len(records) == 1
    assert records[0].added("roles") == [_role("R1"), _role("R2")]
    assert records[0].previous_version == 0.1


def test_concurrent_patch_is_retried_on_the_fresh_version(seeded):
    service = seeded.patch_service

    def bob_commits_first():
        service.apply_patch(USER, "u", EntityPatch(add={"roles": (_role("R2"),)}), BOB)

    seeded.persistence.before_commit = bob_commits_first
    outcome = service.apply_patch(USER, "u", EntityPatch(add={"roles": (_role("R1"),)}), ALICE)

    assert seeded.persistence.conflicts == 1
    assert outcome.snapshot.version == 0.3
    assert {r.name for r in outcome.snapshot.get("roles").items()} == {"R1", "R2"}
    bob_record, alice_record = service.list_versions(USER, "u")
    assert bob_record.updated_by == "bob"
    assert bob_record.added("roles") == [_role("R2")]
    assert alice_record.updated_by == "alice"
    assert alice_record.previous_version == 0.2
    assert alice_record.added("roles") == [_role("R1")]


def test_conflict_surfaces_once_retries_run_out(seeded):
    service = seeded.patch_service
    service.max_retries = 0

    def bob_commits_first():
        service.apply_patch(USER, "u", EntityPatch(add={"roles": (_role("R2"),)}), BOB)

    seeded.persistence.before_commit = bob_commits_first
    with pytest.raises(Conflict):
        service.apply_patch(USER, "u", EntityPatch(add={"roles": (_role("R1"),)}), ALICE)

    stored = service.get_entity(USER, "u")
    assert [r.name for r in stored.get("roles").items()] == ["R2"]


def test_joining_a_team_replaces_the_default_and_leaving_restores_it(seeded):
    service = seeded.patch_service

    joined = service.apply_patch(USER, "u", EntityPatch(add={"teams": (_team("eng"),)}), SYSTEM_CALLER)
    assert joined.snapshot.get("teams") == explicit([_team("eng")])
    assert joined.record.deleted("teams") == [organization_reference()]
    assert joined.record.added("teams") == [_team("eng")]

    seeded.clock.advance(minutes=30)
    left = service.apply_patch(USER, "u", EntityPatch(remove={"teams": (_team("eng"),)}), SYSTEM_CALLER)
    assert left.snapshot.get("teams").state is FieldState.DEFAULT
    assert left.record.deleted("teams") == [_team("eng")]
    assert left.record.added("teams") == [organization_reference()]
    assert left.snapshot.version == 0.3


def test_undoing_within_a_session_drops_the_record(seeded):
    service = seeded.patch_service

    service.apply_patch(USER, "u", EntityPatch(add={"teams": (_team("eng"),)}), SYSTEM_CALLER)
    outcome = service.apply_patch(USER, "u", EntityPatch(remove={"teams": (_team("eng"),)}), SYSTEM_CALLER)

    assert outcome.consolidated
    assert outcome.snapshot.version == 0.1
    assert service.list_versions(USER, "u") == []


def test_inherited_roles_follow_team_membership(seeded):
    service = seeded.patch_service

    joined = service.apply_patch(USER, "u", EntityPatch(add={"teams": (_team("eng"),)}), SYSTEM_CALLER)

    assert joined.snapshot.get("inheritedRoles").items() == (_role("R1"),)
    # Derived values are not part of the recorded diff.
    assert "inheritedRoles" not in joined.record.fields_changed()


def test_unknown_reference_is_rejected(seeded):
    with pytest.raises(NotFound):
        seeded.patch_service.apply_patch(
            USER, "u", EntityPatch(add={"roles": (_role("Ghost"),)}), SYSTEM_CALLER
        )


def test_unknown_entity_is_not_found(seeded):
    with pytest.raises(NotFound):
        seeded.patch_service.apply_patch(USER, "nobody", EntityPatch(set={"displayName": explicit("x")}), ALICE)


def test_non_admin_cannot_patch_other_users(seeded):
    with pytest.raises(Forbidden):
        seeded.patch_service.apply_patch(
            USER, "u", EntityPatch(set={"displayName": explicit("x")}), Caller("mallory")
        )


def test_events_are_published_after_commit(seeded):
    events = []
    seeded.event_bus.subscribe(ENTITY_UPDATED, events.append)
    seeded.event_bus.subscribe(ENTITY_CREATED, events.append)
    service = seeded.patch_service

    service.create_entity(USER, "v", {"email": explicit("v@x.com")}, SYSTEM_CALLER)
    service.apply_patch(USER, "v", EntityPatch(set={"displayName": explicit("V")}), SYSTEM_CALLER)
    service.apply_patch(USER, "v", EntityPatch(set={"displayName": explicit("V")}), SYSTEM_CALLER)

    assert [e.event_type for e in events] == [ENTITY_CREATED, ENTITY_UPDATED]
    assert events[1].payload["version"] == 0.2
    assert events[1].payload["consolidated"] is False
    assert events[1].payload["change_record"]["changes"][0]["kind"] == ChangeKind.ADDED.value
    assert set(events[1].payload) == set(EVENT_CATALOG[ENTITY_UPDATED]["payload"])
    assert set(events[0].payload) == set(EVENT_CATALOG[ENTITY_CREATED]["payload"])

    seeded.event_bus.unsubscribe(ENTITY_UPDATED, events.append)
    service.apply_patch(USER, "v", EntityPatch(set={"displayName": explicit("W")}), SYSTEM_CALLER)
    assert len(events) == 2


def test_upsert_only_touches_listed_fields(seeded):
    service = seeded.patch_service
    service.apply_patch(USER, "u", EntityPatch(set={"description": explicit("keep me")}), SYSTEM_CALLER)

    outcome = service.upsert(USER, "u", {"displayName": explicit("U")}, SYSTEM_CALLER)

    assert outcome.snapshot.value("description") == "keep me"
    assert outcome.snapshot.value("displayName") == "U"
