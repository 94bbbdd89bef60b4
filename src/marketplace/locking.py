"""Per-resource mutual exclusion for concurrent requests.

Requests run concurrently in the server's thread pool. Operations that read
and then write shared rows (cart lines, product stock, a delivery's driver,
a payment's terminal status) hold a lock per touched resource for the whole
unit of work. Locks are always acquired in one canonical order so that two
operations touching overlapping resources cannot deadlock.
"""

import threading
from contextlib import contextmanager

# Acquisition order: coarse owners first, shared stock last.
_KIND_RANK = {
    "cart": 0,
    "order": 1,
    "payment": 2,
    "delivery": 3,
    "driver": 4,
    "actor": 5,
    "product": 6,
}


class KeyedLocks:
    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[tuple[str, str], threading.RLock] = {}

    def _lock_for(self, key: tuple[str, str]) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.RLock()
            return lock

    @staticmethod
    def ordered(keys) -> list[tuple[str, str]]:
        unique = {(kind, str(value)) for kind, value in keys if value is not None}
        for kind, _ in unique:
            if kind not in _KIND_RANK:
                raise ValueError(f"Unknown lock kind: {kind}")
        return sorted(unique, key=lambda key: (_KIND_RANK[key[0]], key[1]))

    @contextmanager
    def hold(self, *keys):
        acquired = []
        try:
            for key in self.ordered(keys):
                lock = self._lock_for(key)
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


_locks = KeyedLocks()


def exclusive(*keys):
    """Hold the process-wide locks for ``keys`` (``(kind, id)`` pairs)."""
    return _locks.hold(*keys)


def cart(buyer_id):
    return ("cart", buyer_id)


def order(order_id):
    return ("order", order_id)


def payment(reference):
    return ("payment", reference)


def delivery(delivery_id):
    return ("delivery", delivery_id)


def driver(driver_id):
    return ("driver", driver_id)


def actor(actor_id):
    return ("actor", actor_id)


def product(product_id):
    return ("product", product_id)
