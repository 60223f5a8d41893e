import threading
from contextlib import contextmanager
from typing import Hashable


class KeyedLocks:
    """Process-local lock per key, created on first use"""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = {}

    def _lock_for(self, key: Hashable) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: Hashable, blocking: bool = True, timeout: float = -1):
        """Yield True while holding the key's lock, False when it could not be taken"""
        lock = self._lock_for(key)
        if blocking:
            acquired = lock.acquire(timeout=timeout)
        else:
            acquired = lock.acquire(blocking=False)
        try:
            yield acquired
        finally:
            if acquired:
                lock.release()


# Shared across service instances within one process
venue_sync_locks = KeyedLocks()
venue_booking_locks = KeyedLocks()
credential_refresh_locks = KeyedLocks()
