"""
Per-collection write locks.

One re-entrant lock per collection name: a thread already holding a
collection's lock (the ledger, across validate + deduct) can call the store's
mutating methods on that collection again without deadlocking. Readers do not
take the lock; files are replaced atomically so a read never sees a torn file.
"""
import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class CollectionLockManager:

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}

    def lock_for(self, collection: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(collection)
            if lock is None:
                lock = threading.RLock()
                self._locks[collection] = lock
            return lock

    @contextmanager
    def hold(self, collection: str) -> Iterator[None]:
        """Block until ``collection`` is free, then hold it for the ``with`` body."""
        lock = self.lock_for(collection)
        with lock:
            yield
