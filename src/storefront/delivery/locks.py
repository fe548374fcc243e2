"""Per-order mutex around the fulfillment critical section.

The memory and SQL providers used here offer no conditional
"update-if-status-is-not-X", so concurrent fulfillment passes for the same
order are serialised in-process. Locks are re-entrant: a webhook handler
that already holds the order's lock can call into fulfillment.

An order's entry lives only while some thread holds or waits on it.
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class _OrderLock:
    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.holders = 0


_registry_lock = threading.Lock()
_order_locks: dict[str, _OrderLock] = {}


def _checkout(order_id: str) -> _OrderLock:
    with _registry_lock:
        entry = _order_locks.get(order_id)
        if entry is None:
            entry = _OrderLock()
            _order_locks[order_id] = entry
        entry.holders += 1
        return entry


def _checkin(order_id: str, entry: _OrderLock) -> None:
    with _registry_lock:
        entry.holders -= 1
        if entry.holders == 0 and _order_locks.get(order_id) is entry:
            del _order_locks[order_id]


@contextmanager
def order_lock(order_id: str) -> Iterator[None]:
    key = str(order_id)
    entry = _checkout(key)
    try:
        with entry.lock:
            yield
    finally:
        _checkin(key, entry)


def reset_locks() -> None:
    with _registry_lock:
        _order_locks.clear()
