"""Bulk CSV import/export, synchronously or as background jobs."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Callable, ContextManager, Dict, Optional

from metacatalog.core.auth.authorization import SYSTEM_CALLER, Caller
from metacatalog.core.changes.fields import FieldValue
from metacatalog.core.changes.models import UpdateType
from metacatalog.core.patching.service import PatchService
from metacatalog.domains.teams.hierarchy import TEAM
from metacatalog.platform.csv import codec
from metacatalog.platform.csv.pipeline import CsvRecordPipeline, RowApplier
from metacatalog.platform.csv.results import ImportExportResult
from metacatalog.platform.jobs import KIND_EXPORT, KIND_IMPORT, BulkJob, BulkJobRunner
from metacatalog.platform.persistence.resolver import SnapshotReferenceResolver

if TYPE_CHECKING:
    from metacatalog.domains.registry import EntityRegistry

logger = logging.getLogger(__name__)


class BulkCsvService:
    def __init__(
        self,
        registry: "EntityRegistry",
        patch_service: PatchService,
        runner: Optional[BulkJobRunner] = None,
        *,
        validation_workers: int = 1,
        max_rows: Optional[int] = None,
        context_factory: Optional[Callable[[], ContextManager]] = None,
    ) -> None:
        self.registry = registry
        self.patch_service = patch_service
        self.runner = runner
        self.validation_workers = validation_workers
        self.max_rows = max_rows
        self.context_factory = context_factory

    @property
    def persistence(self):
        return self.patch_service.persistence

    def pipeline(self, entity_type: str, caller: Caller = SYSTEM_CALLER) -> CsvRecordPipeline:
        return CsvRecordPipeline(
            self.registry.csv_mapping(entity_type),
            load=self.persistence.load,
            apply_row=self._applier(entity_type, caller),
            validation_workers=self.validation_workers,
            max_rows=self.max_rows,
            context_factory=self.context_factory,
        )

    def import_csv(
        self,
        entity_type: str,
        csv_text: str,
        *,
        scope: Optional[str] = None,
        dry_run: bool = False,
        caller: Caller = SYSTEM_CALLER,
        cancel: Optional[threading.Event] = None,
    ) -> ImportExportResult:
        """Validate every row and, unless ``dry_run``, apply them in file order."""
        pipeline = self.pipeline(entity_type, caller)
        self._check_scope(scope)
        return pipeline.run(csv_text, dry_run=dry_run, scope=scope, cancel=cancel)

    def export_csv(self, entity_type: str, scope: Optional[str] = None) -> str:
        """Header row plus one row per entity in scope, sorted by name."""
        mapping = self.registry.csv_mapping(entity_type)
        self._check_scope(scope)
        resolver = SnapshotReferenceResolver(self.persistence.load)
        snapshots = [
            s for s in self.persistence.list(entity_type) if mapping.in_scope(s, scope, resolver)
        ]
        snapshots.sort(key=lambda s: s.name)
        records = [mapping.contract.headers] + [mapping.to_record(s) for s in snapshots]
        logger.info("Exported %s %s entities (scope=%s)", len(snapshots), entity_type, scope or "-")
        return codec.format_records(records)

    def submit_import(
        self,
        entity_type: str,
        csv_text: str,
        *,
        scope: Optional[str] = None,
        dry_run: bool = False,
        caller: Caller = SYSTEM_CALLER,
    ) -> str:
        self.registry.csv_mapping(entity_type)
        self._check_scope(scope)

        def invocation(cancel: threading.Event) -> ImportExportResult:
            return self.import_csv(
                entity_type, csv_text, scope=scope, dry_run=dry_run, caller=caller, cancel=cancel
            )

        return self._require_runner().submit(invocation, KIND_IMPORT, entity_type)

    def submit_export(self, entity_type: str, *, scope: Optional[str] = None) -> str:
        self.registry.csv_mapping(entity_type)
        self._check_scope(scope)

        def invocation(cancel: threading.Event) -> Dict[str, str]:
            return {"csv": self.export_csv(entity_type, scope)}

        return self._require_runner().submit(invocation, KIND_EXPORT, entity_type)

    def get_job_status(self, job_id: str) -> BulkJob:
        return self._require_runner().status(job_id)

    def cancel_job(self, job_id: str) -> BulkJob:
        return self._require_runner().cancel(job_id)

    def documentation(self, entity_type: str) -> dict:
        return self.registry.csv_mapping(entity_type).documentation()

    def _applier(self, entity_type: str, caller: Caller) -> RowApplier:
        def apply_row(name: str, fields: Dict[str, FieldValue]) -> bool:
            outcome = self.patch_service.upsert(entity_type, name, fields, caller)
            return outcome.record.update_type is UpdateType.CREATED

        return apply_row

    def _check_scope(self, scope: Optional[str]) -> None:
        if scope:
            # Raises NotFound for an unknown scope team.
            self.persistence.load(TEAM, scope)

    def _require_runner(self) -> BulkJobRunner:
        if self.runner is None:
            raise RuntimeError("BulkCsvService was built without a job runner")
        return self.runner


__all__ = ["BulkCsvService"]
