"""Per-row and per-run outcomes of CSV import/export."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import List, Optional

from metacatalog.platform.csv import codec


class RowStatus(str, enum.Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class ImportStatus(str, enum.Enum):
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partialSuccess"
    FAILURE = "failure"
    ABORTED = "aborted"


@dataclass
class CsvRowResult:
    row_number: int
    record: List[str]
    status: RowStatus = RowStatus.SUCCESS
    errors: List[str] = field(default_factory=list)
    details: str = ""

    @property
    def passed(self) -> bool:
        return self.status is RowStatus.SUCCESS

    def fail(self, error: str) -> None:
        self.status = RowStatus.FAILURE
        self.errors.append(error)
        self.details = f"[{'; '.join(self.errors)}]"

    def to_record(self) -> List[str]:
        return [self.status.value, self.details] + list(self.record)

    def to_dict(self) -> dict:
        return {
            "row_number": self.row_number,
            "status": self.status.value,
            "errors": list(self.errors),
            "details": self.details,
        }


def aggregate_status(passed: int, failed: int) -> ImportStatus:
    if failed == 0:
        return ImportStatus.SUCCESS
    if passed == 0:
        return ImportStatus.FAILURE
    return ImportStatus.PARTIAL_SUCCESS


@dataclass
class ImportExportResult:
    """Counts include the header record, which always passes."""

    dry_run: bool
    status: ImportStatus
    total_rows: int = 0
    success_count: int = 0
    failure_count: int = 0
    row_results: List[CsvRowResult] = field(default_factory=list)
    result_csv: str = ""
    abort_reason: Optional[str] = None

    @classmethod
    def aborted(cls, reason: str, *, dry_run: bool) -> "ImportExportResult":
        return cls(dry_run=dry_run, status=ImportStatus.ABORTED, abort_reason=reason)

    @classmethod
    def from_rows(cls, headers: List[str], rows: List[CsvRowResult], *, dry_run: bool) -> "ImportExportResult":
        failed = sum(1 for r in rows if not r.passed)
        passed = len(rows) - failed + 1
        result_records = [["status", "details"] + list(headers)] + [r.to_record() for r in rows]
        return cls(
            dry_run=dry_run,
            status=aggregate_status(passed, failed),
            total_rows=len(rows) + 1,
            success_count=passed,
            failure_count=failed,
            row_results=rows,
            result_csv=codec.format_records(result_records),
        )

    @property
    def failed_rows(self) -> List[CsvRowResult]:
        return [r for r in self.row_results if not r.passed]

    def to_dict(self) -> dict:
        return {
            "dry_run": self.dry_run,
            "status": self.status.value,
            "total_rows": self.total_rows,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "result_csv": self.result_csv,
            "abort_reason": self.abort_reason,
            "rows": [r.to_dict() for r in self.row_results],
        }


__all__ = ["CsvRowResult", "ImportExportResult", "ImportStatus", "RowStatus", "aggregate_status"]
