"""Scoped mutual exclusion.

Acquire a lock, run an action, release the lock on every exit path,
including when the action raises.  Acquisition blocks; there is no
timeout and no reentrancy beyond what the lock object itself provides.

``KeyedLocks`` hands out one lock per key (``"tenant:42"``) so unrelated
work does not serialize on a single global lock.

Example::

    lock = threading.Lock()
    total = run_locked(lock, counter.increment, 5)

    locks = KeyedLocks()
    with locks.hold("upload:abc"):
        store_chunk()
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager, contextmanager
from typing import Any, Protocol, TypeVar

from resguard.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class Lockable(Protocol):
    def acquire(self, blocking: bool = ..., timeout: float = ...) -> bool: ...

    def release(self) -> None: ...


def run_locked(lock: Lockable, action: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run ``action(*args, **kwargs)`` while holding ``lock``."""
    lock.acquire()
    try:
        return action(*args, **kwargs)
    finally:
        lock.release()


@contextmanager
def locked(lock: Lockable, name: str = "lock") -> Iterator[Lockable]:
    """Context-manager form of :func:`run_locked` with debug logging."""
    lock.acquire()
    logger.debug("lock_acquired", lock=name)
    try:
        yield lock
    finally:
        lock.release()
        logger.debug("lock_released", lock=name)


class KeyedLocks:
    """One lock per key, created on first use.

    Keys follow the ``"<kind>:<id>"`` convention.  Locks are kept for the
    lifetime of the registry; call ``discard`` for keys that will not be
    seen again.
    """

    def __init__(self, factory: Callable[[], Lockable] = threading.Lock):
        self._factory = factory
        self._locks: dict[str, Lockable] = {}
        self._registry_lock = threading.Lock()

    def get(self, key: str) -> Lockable:
        with self._registry_lock:
            if key not in self._locks:
                self._locks[key] = self._factory()
            return self._locks[key]

    def hold(self, key: str) -> AbstractContextManager[Lockable]:
        return locked(self.get(key), name=key)

    def run(self, key: str, action: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        return run_locked(self.get(key), action, *args, **kwargs)

    def discard(self, key: str) -> None:
        with self._registry_lock:
            self._locks.pop(key, None)

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._locks)


__all__ = ["Lockable", "run_locked", "locked", "KeyedLocks"]
