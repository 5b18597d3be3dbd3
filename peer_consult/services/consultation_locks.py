"""
Per-consultation mutual exclusion for the reply/completion check.

Database row locks (SELECT ... FOR UPDATE) cover multi-process deployments on
PostgreSQL; this in-process registry additionally serializes writers inside one
worker, which is what SQLite relies on. An entry lives only while some thread
holds or waits on it.
"""

import threading
from contextlib import contextmanager
from typing import Dict, List


class ConsultationLockRegistry:
    def __init__(self):
        self._guard = threading.Lock()
        # consultation_id -> [lock, number of holders and waiters]
        self._locks: Dict[int, List] = {}

    def _acquire_entry(self, consultation_id: int) -> threading.Lock:
        with self._guard:
            entry = self._locks.get(consultation_id)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._locks[consultation_id] = entry
            entry[1] += 1
            return entry[0]

    def _release_entry(self, consultation_id: int) -> None:
        with self._guard:
            entry = self._locks[consultation_id]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[consultation_id]

    @contextmanager
    def hold(self, consultation_id: int):
        lock = self._acquire_entry(consultation_id)
        try:
            with lock:
                yield
        finally:
            self._release_entry(consultation_id)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


consultation_locks = ConsultationLockRegistry()
