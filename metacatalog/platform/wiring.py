"""Builds the catalog services for a Flask app."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from flask import Flask, current_app

from metacatalog.core.auth.authorization import RoleBasedAuthorization
from metacatalog.core.events.event_bus import event_bus
from metacatalog.core.patching.locks import EntityLocks
from metacatalog.core.patching.service import PatchService
from metacatalog.domains.registry import EntityRegistry, default_registry
from metacatalog.platform.csv.service import BulkCsvService
from metacatalog.platform.jobs import BulkJobRunner, JobRunnerConfig
from metacatalog.platform.persistence.repositories import SqlChangeHistoryStore, SqlPersistence
from metacatalog.platform.persistence.resolver import SnapshotReferenceResolver


@dataclass
class CatalogServices:
    registry: EntityRegistry
    persistence: SqlPersistence
    history: SqlChangeHistoryStore
    patch_service: PatchService
    bulk_service: BulkCsvService
    runner: BulkJobRunner


def build_services(app: Flask) -> CatalogServices:
    registry = default_registry()
    persistence = SqlPersistence(registry)
    history = SqlChangeHistoryStore()
    patch_service = PatchService(
        registry,
        persistence,
        history,
        authorization=RoleBasedAuthorization(registry),
        resolver=SnapshotReferenceResolver(persistence.load),
        event_bus=event_bus,
        locks=EntityLocks(),
        max_retries=app.config["PATCH_MAX_RETRIES"],
        session_timeout=timedelta(seconds=app.config["CHANGE_SESSION_TIMEOUT_SECONDS"]),
    )
    runner = BulkJobRunner(
        JobRunnerConfig(max_workers=app.config["BULK_JOB_WORKERS"]),
        context_factory=app.app_context,
    )
    bulk_service = BulkCsvService(
        registry,
        patch_service,
        runner,
        validation_workers=app.config["CSV_VALIDATION_WORKERS"],
        max_rows=app.config["CSV_MAX_ROWS"],
        context_factory=app.app_context,
    )
    return CatalogServices(registry, persistence, history, patch_service, bulk_service, runner)


def init_catalog(app: Flask) -> CatalogServices:
    services = build_services(app)
    app.extensions["catalog"] = services
    return services


def catalog_services() -> CatalogServices:
    return current_app.extensions["catalog"]


__all__ = ["CatalogServices", "build_services", "catalog_services", "init_catalog"]
