"""Per-cluster locking for reconciliation passes.

Kopf serializes handlers per watched object, but the three objects of one
cluster (ManagedCluster, auto-import secret, import secret) are different
objects and their handlers can run at the same time. Every pass for a
cluster holds that cluster's lock; passes for different clusters never wait
on each other.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Generator

logger = logging.getLogger(__name__)


class KeyedLock:
    """Thread-safe mutual exclusion keyed by cluster name.

    A key's lock exists only while a pass holds it or waits for it, so the
    map stays as small as the number of clusters being reconciled.
    """

    def __init__(self) -> None:
        self._locks: dict[str, threading.Lock] = {}
        self._users: dict[str, int] = {}
        self._guard = threading.Lock()

    def _acquire_ref(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            self._users[key] = self._users.get(key, 0) + 1
            return lock

    def _release_ref(self, key: str) -> None:
        with self._guard:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    @contextmanager
    def hold(self, key: str) -> Generator[None, None, None]:
        """Hold the lock for one key (context manager).

        Usage:
            with locks.hold(cluster_name):
                # reconcile the cluster
        """
        lock = self._acquire_ref(key)
        try:
            if not lock.acquire(blocking=False):
                logger.debug("Waiting for in-flight reconciliation of %s", key)
                lock.acquire()
            try:
                yield
            finally:
                lock.release()
        finally:
            self._release_ref(key)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def __repr__(self) -> str:
        return f"KeyedLock(keys={len(self)})"
