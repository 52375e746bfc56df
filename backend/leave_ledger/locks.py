"""Per-key mutual exclusion for balance mutations.

Optimistic versioning on the ``leave_balance`` row protects against writers
in other processes. Within one process, workflow operations additionally hold
an ``asyncio.Lock`` per balance key for their whole read-check-write-commit
span, so two reservations against the same key are applied one after the
other instead of one of them losing a version race.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Hashable


class KeyedLocks:
    """A registry of ``asyncio.Lock`` objects created on demand per key.

    Locks are dropped once nobody holds or waits for them, so the registry
    only ever contains keys with in-flight work.
    """

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._refs: dict[Hashable, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def _ref(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._refs[key] = self._refs.get(key, 0) + 1
        return lock

    def _unref(self, key: Hashable) -> None:
        remaining = self._refs[key] - 1
        if remaining:
            self._refs[key] = remaining
        else:
            del self._refs[key]
            del self._locks[key]

    def is_locked(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, *keys: Hashable) -> AsyncIterator[None]:
        """Acquire every key's lock, in a stable order, for the duration of the block."""
        ordered = sorted(set(keys), key=repr)
        acquired: list[Hashable] = []
        try:
            for key in ordered:
                lock = self._ref(key)
                try:
                    await lock.acquire()
                except BaseException:
                    self._unref(key)
                    raise
                acquired.append(key)
            yield
        finally:
            for key in reversed(acquired):
                self._locks[key].release()
                self._unref(key)


_ledger_locks = KeyedLocks()


def get_ledger_locks() -> KeyedLocks:
    """Return the process-wide lock registry for balance keys."""
    return _ledger_locks


def set_ledger_locks(locks: KeyedLocks) -> None:
    """Override the registry (for testing)."""
    global _ledger_locks
    _ledger_locks = locks
