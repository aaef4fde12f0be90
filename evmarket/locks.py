"""Per-entity critical sections.

A listing row and an order row each belong to exactly one lock scope.
Operations that touch both always take the listing lock first.
"""
import threading
from contextlib import contextmanager


class _Slot:
    __slots__ = ("lock", "holders")

    def __init__(self):
        self.lock = threading.Lock()
        self.holders = 0


class KeyedLocks:
    """One lock per key, kept only while someone holds or waits on it."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict = {}

    def __len__(self):
        with self._guard:
            return len(self._locks)

    def _checkout(self, key) -> _Slot:
        with self._guard:
            slot = self._locks.get(key)
            if slot is None:
                slot = self._locks[key] = _Slot()
            slot.holders += 1
            return slot

    def _checkin(self, key, slot: _Slot):
        with self._guard:
            slot.holders -= 1
            if slot.holders == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, key):
        slot = self._checkout(key)
        try:
            with slot.lock:
                yield
        finally:
            self._checkin(key, slot)


_registry = KeyedLocks()


def listing_lock(listing_id):
    return _registry.hold(("listing", int(listing_id)))


def order_lock(order_id):
    return _registry.hold(("order", int(order_id)))
