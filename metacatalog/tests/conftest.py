import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from metacatalog import create_app
from metacatalog.core.auth.authorization import RoleBasedAuthorization
from metacatalog.core.changes.fields import explicit
from metacatalog.core.changes.snapshot import EntitySnapshot
from metacatalog.core.events.event_bus import EventBus
from metacatalog.domains.registry import default_registry
from metacatalog.domains.teams.hierarchy import ORGANIZATION, TEAM
from metacatalog.core.patching.service import PatchService
from metacatalog.extensions import db
from metacatalog.platform.csv.service import BulkCsvService
from metacatalog.platform.jobs import BulkJobRunner, JobRunnerConfig
from metacatalog.platform.persistence import models as persistence_models  # noqa: F401
from metacatalog.platform.persistence.repositories import seed_organization
from metacatalog.platform.persistence.resolver import SnapshotReferenceResolver
from metacatalog.platform.wiring import catalog_services
from metacatalog.tests.fakes import FakeClock, InMemoryChangeHistory, InMemoryPersistence


# ==================== Pytest Markers ====================
def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line("markers", "integration: Integration tests (database, API)")
    config.addinivalue_line("markers", "slow: Slow running tests")


# ==================== In-memory catalog ====================
@pytest.fixture()
def catalog():
    """Engine wired over in-memory collaborators, with the Organization team seeded."""
    registry = default_registry()
    persistence = InMemoryPersistence()
    history = InMemoryChangeHistory()
    clock = FakeClock()
    bus = EventBus()
    persistence.seed(
        EntitySnapshot(
            TEAM,
            ORGANIZATION,
            0.1,
            {"name": explicit(ORGANIZATION), "teamType": explicit(ORGANIZATION)},
            updated_by="system",
            updated_at=clock(),
        )
    )
    patch_service = PatchService(
        registry,
        persistence,
        history,
        authorization=RoleBasedAuthorization(registry),
        resolver=SnapshotReferenceResolver(persistence.load),
        event_bus=bus,
        clock=clock,
    )
    runner = BulkJobRunner(JobRunnerConfig(max_workers=2))
    bulk_service = BulkCsvService(registry, patch_service, runner)
    yield SimpleNamespace(
        registry=registry,
        persistence=persistence,
        history=history,
        clock=clock,
        event_bus=bus,
        patch_service=patch_service,
        runner=runner,
        bulk_service=bulk_service,
    )
    runner.shutdown(wait=True)


# ==================== Flask app ====================
@pytest.fixture()
def app():
    """Per-test app over a fresh in-memory database."""
    app = create_app("testing")
    ctx = app.app_context()
    ctx.push()
    db.create_all()
    seed_organization(catalog_services().persistence)
    try:
        yield app
    finally:
        catalog_services().runner.shutdown(wait=True)
        db.session.remove()
        db.drop_all()
        ctx.pop()


@pytest.fixture()
def client(app):
    return app.test_client()
