"""CSV record pipeline: parse, validate, apply, aggregate."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import nullcontext
from typing import Callable, ContextManager, Dict, List, Optional, Set, Tuple

from metacatalog.core.changes.fields import FieldValue
from metacatalog.core.changes.snapshot import EntitySnapshot
from metacatalog.core.errors import CatalogError, InternalFailure, NotFound, PipelineAbort
from metacatalog.platform.csv import codec, messages
from metacatalog.platform.csv.contract import CsvEntityMapping
from metacatalog.platform.csv.results import CsvRowResult, ImportExportResult
from metacatalog.platform.persistence.resolver import SnapshotReferenceResolver

logger = logging.getLogger(__name__)

Loader = Callable[[str, str], EntitySnapshot]
# Applies one validated row; returns True when the entity was created.
RowApplier = Callable[[str, Dict[str, FieldValue]], bool]


class _StagedLoader:
    """Stored snapshots overlaid with the rows above the one being validated.

    Lets a row reference an entity created earlier in the same file. Rows in
    ``excluded`` failed validation and are never applied, so they are not
    visible to the rows below them.
    """

    def __init__(
        self,
        load: Loader,
        staged: List[Tuple[int, EntitySnapshot]],
        upto: int,
        excluded: Optional[Set[int]] = None,
    ) -> None:
        self._load = load
        excluded = excluded or set()
        self._staged = {
            (snapshot.entity_type, snapshot.name): snapshot
            for index, snapshot in staged
            if index < upto and index not in excluded
        }

    def __call__(self, entity_type: str, name: str) -> EntitySnapshot:
        snapshot = self._staged.get((entity_type, name))
        if snapshot is not None:
            return snapshot
        return self._load(entity_type, name)


class CsvRecordPipeline:
    def __init__(
        self,
        mapping: CsvEntityMapping,
        *,
        load: Loader,
        apply_row: Optional[RowApplier] = None,
        validation_workers: int = 1,
        max_rows: Optional[int] = None,
        context_factory: Optional[Callable[[], ContextManager]] = None,
    ) -> None:
        self.mapping = mapping
        self.load = load
        self.apply_row = apply_row
        self.validation_workers = max(1, validation_workers)
        self.max_rows = max_rows
        self.context_factory = context_factory or nullcontext

    @property
    def headers(self) -> List[str]:
        return self.mapping.contract.headers

    def run(
        self,
        raw_text: str,
        *,
        dry_run: bool,
        scope: Optional[str] = None,
        cancel: Optional[threading.Event] = None,
    ) -> ImportExportResult:
        try:
            records = self._parse(raw_text)
        except PipelineAbort as exc:
            logger.warning("Aborted %s import: %s", self.mapping.entity_type, exc)
            return ImportExportResult.aborted(str(exc), dry_run=dry_run)

        rows, staged = self._rows(records)
        self._validate(rows, staged, scope)
        if dry_run:
            self._preview(rows)
        else:
            self._apply(rows, cancel)

        result = ImportExportResult.from_rows(self.headers, rows, dry_run=dry_run)
        logger.info(
            "%s %s import: %s (%s passed, %s failed)",
            "Dry-run" if dry_run else "Applied",
            self.mapping.entity_type,
            result.status.value,
            result.success_count,
            result.failure_count,
        )
        return result

    def _parse(self, raw_text: str) -> List[List[str]]:
        if not raw_text or not raw_text.strip():
            raise PipelineAbort("CSV payload is empty")
        records = codec.parse(raw_text)
        if not records:
            raise PipelineAbort("CSV payload is empty")
        header = records[0]
        if not self.mapping.contract.matches(header):
            raise PipelineAbort(
                f"Invalid headers {','.join(header)}; expected {','.join(self.headers)}"
            )
        if self.max_rows is not None and len(records) - 1 > self.max_rows:
            raise PipelineAbort(f"CSV has {len(records) - 1} rows; at most {self.max_rows} are accepted")
        return records[1:]

    def _rows(self, records: List[List[str]]) -> Tuple[List[CsvRowResult], List[Tuple[int, EntitySnapshot]]]:
        rows: List[CsvRowResult] = []
        staged: List[Tuple[int, EntitySnapshot]] = []
        width = self.mapping.contract.width
        for index, record in enumerate(records):
            row = CsvRowResult(row_number=index + 1, record=list(record))
            if len(record) != width:
                row.fail(messages.parser_failure(width, len(record)))
            else:
                name = self.mapping.row_name(record)
                if name:
                    fields = self.mapping.to_fields(record)
                    staged.append((index, EntitySnapshot(self.mapping.entity_type, name, 0.0, fields)))
            rows.append(row)
        return rows, staged

    def _validate(
        self,
        rows: List[CsvRowResult],
        staged: List[Tuple[int, EntitySnapshot]],
        scope: Optional[str],
    ) -> None:
        def check(index: int, excluded: Optional[Set[int]] = None) -> List[str]:
            row = rows[index]
            resolver = SnapshotReferenceResolver(_StagedLoader(self.load, staged, index, excluded))
            return self.mapping.validate(row.record, scope=scope, resolver=resolver)

        def check_in_context(index: int) -> List[str]:
            # Worker threads need their own application context.
            with self.context_factory():
                return check(index)

        pending = [i for i, row in enumerate(rows) if row.passed]
        if self.validation_workers > 1 and len(pending) > 1:
            with ThreadPoolExecutor(max_workers=self.validation_workers) as executor:
                outcomes = list(executor.map(check_in_context, pending))
        else:
            outcomes = [check(i) for i in pending]
        for index, errors in zip(pending, outcomes):
            for error in errors:
                rows[index].fail(error)

        # Rows below a failed row may only have resolved through it; re-check
        # them without it until no further row fails.
        staged_indices = {index for index, _ in staged}
        excluded = {index for index in staged_indices if not rows[index].passed}
        newly_failed = set(excluded)
        while newly_failed:
            first = min(newly_failed)
            newly_failed = set()
            for index in range(first + 1, len(rows)):
                if not rows[index].passed:
                    continue
                errors = check(index, excluded)
                for error in errors:
                    rows[index].fail(error)
                if errors and index in staged_indices:
                    newly_failed.add(index)
            excluded |= newly_failed

    def _exists(self, name: str) -> bool:
        try:
            self.load(self.mapping.entity_type, name)
        except NotFound:
            return False
        return True

    def _preview(self, rows: List[CsvRowResult]) -> None:
        seen = set()
        for row in rows:
            if not row.passed:
                continue
            name = self.mapping.row_name(row.record)
            known = name in seen or self._exists(name)
            row.details = messages.ENTITY_UPDATED if known else messages.ENTITY_CREATED
            seen.add(name)

    def _apply(self, rows: List[CsvRowResult], cancel: Optional[threading.Event]) -> None:
        if self.apply_row is None:
            raise InternalFailure(f"No applier configured for {self.mapping.entity_type}")
        for row in rows:
            if not row.passed:
                continue
            if cancel is not None and cancel.is_set():
                row.fail(messages.cancelled())
                continue
            name = self.mapping.row_name(row.record)
            try:
                created = self.apply_row(name, self.mapping.to_fields(row.record))
            except CatalogError as exc:
                logger.info("Row %s (%s) failed to apply: %s", row.row_number, name, exc)
                row.fail(messages.apply_failure(str(exc)))
                continue
            row.details = messages.ENTITY_CREATED if created else messages.ENTITY_UPDATED


__all__ = ["CsvRecordPipeline", "RowApplier"]
