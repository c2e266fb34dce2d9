"""Per-aggregate mutual exclusion for read-check-write sequences."""
import threading
from contextlib import contextmanager
from typing import Dict, Hashable


class KeyedLocks:
    """
    One re-entrant lock per key, created on first use.

    Re-entrancy lets a service that already holds a donor or inventory key call
    another service operation on the same key without deadlocking itself.
    """

    def __init__(self, name: str):
        self.name = name
        self._locks: Dict[Hashable, threading.RLock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, key: Hashable) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.RLock()
            return lock

    @contextmanager
    def hold(self, key: Hashable):
        lock = self._lock_for(key)
        with lock:
            yield

    def __len__(self) -> int:
        return len(self._locks)


class LockRegistry:
    """Lock families for each aggregate. Acquire in order: request, donor, inventory."""

    def __init__(self):
        self.requests = KeyedLocks("request")
        self.donors = KeyedLocks("donor")
        self.inventory = KeyedLocks("inventory")
