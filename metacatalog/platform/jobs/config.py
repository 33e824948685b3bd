"""Configuration helpers for the bulk job runner."""

from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass
class JobRunnerConfig:
    """Runtime knobs for background CSV jobs."""

    max_workers: int
    thread_name_prefix: str = "bulk-job"

    @classmethod
    def from_env(cls) -> "JobRunnerConfig":
        """Build config from environment with sensible defaults."""
        return cls(max_workers=int(os.environ.get("BULK_JOB_WORKERS", "4")))
