"""Per-entity mutual exclusion for in-process writers."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Tuple


class EntityLocks:
    """One lock per (entity_type, name); the persistence version check still guards other processes."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[Tuple[str, str], threading.RLock] = {}

    def lock_for(self, entity_type: str, name: str) -> threading.RLock:
        key = (entity_type, name)
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, entity_type: str, name: str) -> Iterator[None]:
        lock = self.lock_for(entity_type, name)
        with lock:
            yield


__all__ = ["EntityLocks"]
