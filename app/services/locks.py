"""Per-session critical sections for a single-process deployment.

One lock per key, created on first use and dropped once nobody holds or waits
on it. Acquisition is bounded; a timeout surfaces as a retryable SessionBusy.
"""
import logging
import threading
from contextlib import contextmanager

from app.services.errors import SessionBusy

logger = logging.getLogger(__name__)


class KeyedLocks:
    def __init__(self, timeout: float = 2.0):
        self.timeout = timeout
        self._guard = threading.Lock()
        self._locks = {}  # key -> [lock, users]

    @contextmanager
    def hold(self, key: str):
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1

        acquired = entry[0].acquire(timeout=self.timeout)
        try:
            if not acquired:
                logger.warning(f"Timed out after {self.timeout}s waiting for lock on {key}")
                raise SessionBusy("Session is busy with another request, retry shortly")
            try:
                yield
            finally:
                entry[0].release()
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(key, None)

    def __len__(self):
        with self._guard:
            return len(self._locks)
