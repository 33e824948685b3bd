"""Background bulk job records."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

STATUS_PENDING = "pending"
STATUS_RUNNING = "running"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"

TERMINAL_STATES = frozenset({STATUS_COMPLETED, STATUS_FAILED})

KIND_IMPORT = "import"
KIND_EXPORT = "export"


@dataclass
class BulkJob:
    job_id: str
    kind: str
    entity_type: Optional[str] = None
    state: str = STATUS_PENDING
    result: Any = None
    error: Optional[str] = None
    cancel_requested: bool = False
    created_at: datetime = field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    cancel_event: threading.Event = field(default_factory=threading.Event, repr=False, compare=False)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def to_dict(self) -> dict:
        result = self.result
        if hasattr(result, "to_dict"):
            result = result.to_dict()
        return {
            "job_id": self.job_id,
            "kind": self.kind,
            "entity_type": self.entity_type,
            "state": self.state,
            "result": result,
            "error": self.error,
            "cancel_requested": self.cancel_requested,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


__all__ = [
    "BulkJob",
    "KIND_EXPORT",
    "KIND_IMPORT",
    "STATUS_COMPLETED",
    "STATUS_FAILED",
    "STATUS_PENDING",
    "STATUS_RUNNING",
    "TERMINAL_STATES",
]
