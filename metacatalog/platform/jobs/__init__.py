"""Background bulk job runner."""

from metacatalog.platform.jobs.config import JobRunnerConfig
from metacatalog.platform.jobs.models import (
    KIND_EXPORT,
    KIND_IMPORT,
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_RUNNING,
    BulkJob,
)
from metacatalog.platform.jobs.runner import BulkJobRunner
from metacatalog.platform.jobs.store import JobStore

__all__ = [
    "BulkJob",
    "BulkJobRunner",
    "JobRunnerConfig",
    "JobStore",
    "KIND_EXPORT",
    "KIND_IMPORT",
    "STATUS_COMPLETED",
    "STATUS_FAILED",
    "STATUS_PENDING",
    "STATUS_RUNNING",
]
