"""Thread-pool runner for background CSV import/export jobs."""

from __future__ import annotations

import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from contextlib import nullcontext
from typing import Any, Callable, ContextManager, Dict, Optional

from metacatalog.core.errors import NotFound
from metacatalog.platform.jobs.config import JobRunnerConfig
from metacatalog.platform.jobs.models import BulkJob
from metacatalog.platform.jobs.store import JobStore

logger = logging.getLogger(__name__)

# A job body receives the cancellation event it should poll.
JobInvocation = Callable[[threading.Event], Any]


class BulkJobRunner:
    """Runs each submission exactly once; no de-duplication by payload."""

    def __init__(
        self,
        config: Optional[JobRunnerConfig] = None,
        store: Optional[JobStore] = None,
        context_factory: Optional[Callable[[], ContextManager]] = None,
    ) -> None:
        self.config = config or JobRunnerConfig.from_env()
        self.store = store or JobStore()
        self.context_factory = context_factory or nullcontext
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, self.config.max_workers),
            thread_name_prefix=self.config.thread_name_prefix,
        )
        self._futures: Dict[str, Future] = {}
        self._futures_lock = threading.Lock()

    def submit(self, invocation: JobInvocation, kind: str, entity_type: Optional[str] = None) -> str:
        job = BulkJob(job_id=uuid.uuid4().hex, kind=kind, entity_type=entity_type)
        self.store.insert(job)
        future = self._executor.submit(self._run, job.job_id, invocation, job.cancel_event)
        with self._futures_lock:
            self._futures[job.job_id] = future
        future.add_done_callback(lambda _f, job_id=job.job_id: self._forget(job_id))
        logger.info("Submitted %s job %s for %s", kind, job.job_id, entity_type or "-")
        return job.job_id

    def status(self, job_id: str) -> BulkJob:
        return self.store.get(job_id)

    def cancel(self, job_id: str) -> BulkJob:
        """Ask a running job to stop between rows; finished jobs are left alone."""
        job = self.store.request_cancel(job_id)
        if job.cancel_requested:
            logger.info("Cancellation requested for job %s", job_id)
        return job

    def wait(self, job_id: str, timeout: Optional[float] = None) -> BulkJob:
        with self._futures_lock:
            future = self._futures.get(job_id)
        if future is not None:
            try:
                future.result(timeout=timeout)
            except FuturesTimeoutError:
                logger.debug("Timed out waiting for job %s", job_id)
        return self.store.get(job_id)

    def purge(self, job_id: str) -> None:
        self.store.delete(job_id)

    def shutdown(self, wait: bool = True) -> None:
        for job in self.store.list():
            if not job.is_terminal:
                self.store.request_cancel(job.job_id)
        self._executor.shutdown(wait=wait)

    def _forget(self, job_id: str) -> None:
        with self._futures_lock:
            self._futures.pop(job_id, None)

    def _run(self, job_id: str, invocation: JobInvocation, cancel_event: threading.Event) -> None:
        try:
            self.store.mark_running(job_id)
        except NotFound:
            return
        try:
            with self.context_factory():
                result = invocation(cancel_event)
        except Exception as exc:
            logger.exception("Bulk job %s failed", job_id)
            self.store.fail(job_id, str(exc) or exc.__class__.__name__)
            return
        self.store.complete(job_id, result)
        logger.info("Bulk job %s completed", job_id)


__all__ = ["BulkJobRunner", "JobInvocation"]
