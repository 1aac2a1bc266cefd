"""
mzone/core/idempotency.py
In-process serialization of work keyed by an idempotency key.

The database unique constraint is the cross-process guarantee; this lock
keeps concurrent handlers in one process from racing to it.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator

_registry_lock = threading.Lock()
_key_locks: Dict[str, threading.Lock] = {}
_key_users: Dict[str, int] = {}


@contextmanager
def reference_lock(key: str) -> Iterator[None]:
    """
    Hold an exclusive lock for `key` for the duration of the block.

    Locks are reference-counted and dropped once no caller holds or waits
    on them, so the registry does not grow with every key ever seen.
    """
    with _registry_lock:
        lock = _key_locks.get(key)
        if lock is None:
            lock = threading.Lock()
            _key_locks[key] = lock
        _key_users[key] = _key_users.get(key, 0) + 1

    lock.acquire()
    try:
        yield
    finally:
        lock.release()
        with _registry_lock:
            _key_users[key] -= 1
            if _key_users[key] == 0:
                del _key_users[key]
                del _key_locks[key]


def active_keys() -> int:
    """Number of keys currently held or awaited (testing/monitoring)."""
    with _registry_lock:
        return len(_key_locks)
