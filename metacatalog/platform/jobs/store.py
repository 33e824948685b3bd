"""Process-scoped job store: insert on submit, read and purge on demand."""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from metacatalog.core.errors import Conflict, NotFound
from metacatalog.platform.jobs.models import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_RUNNING,
    BulkJob,
)


class JobStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._jobs: Dict[str, BulkJob] = {}

    def insert(self, job: BulkJob) -> None:
        with self._lock:
            if job.job_id in self._jobs:
                raise Conflict(f"job {job.job_id} already exists")
            self._jobs[job.job_id] = job

    def get(self, job_id: str) -> BulkJob:
        """A copy; callers never see a job change underneath them."""
        with self._lock:
            return replace(self._require(job_id))

    def list(self) -> List[BulkJob]:
        with self._lock:
            return [replace(job) for job in self._jobs.values()]

    def delete(self, job_id: str) -> None:
        with self._lock:
            job = self._require(job_id)
            if not job.is_terminal:
                raise Conflict(f"job {job_id} is still {job.state}")
            del self._jobs[job_id]

    def mark_running(self, job_id: str) -> None:
        with self._lock:
            job = self._require(job_id)
            if job.state != STATUS_PENDING:
                return
            job.state = STATUS_RUNNING
            job.started_at = datetime.utcnow()

    def complete(self, job_id: str, result: Any) -> None:
        self._finish(job_id, STATUS_COMPLETED, result=result)

    def fail(self, job_id: str, error: str) -> None:
        self._finish(job_id, STATUS_FAILED, error=error)

    def request_cancel(self, job_id: str) -> BulkJob:
        with self._lock:
            job = self._require(job_id)
            if not job.is_terminal:
                job.cancel_requested = True
                job.cancel_event.set()
            return replace(job)

    def _finish(self, job_id: str, state: str, *, result: Any = None, error: Optional[str] = None) -> None:
        with self._lock:
            job = self._require(job_id)
            if job.is_terminal:
                # Terminal results are immutable.
                return
            job.state = state
            job.result = result
            job.error = error
            job.finished_at = datetime.utcnow()

    def _require(self, job_id: str) -> BulkJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise NotFound(f"job {job_id} not found")
        return job


__all__ = ["JobStore"]
