"""
Keyed asyncio locks for serializing per-entity operations.

Every pause, resume, check-in and daily recompute for one aligner runs under
that aligner's lock, so a close-then-open sequence is never interleaved with
another one in the same process. Across processes, the partial unique index
on open sessions and SELECT ... FOR UPDATE provide the same guarantee.
"""

from __future__ import annotations

import asyncio
import weakref


class KeyedLockRegistry:
    """
    Lazily created asyncio.Lock per (operation, *identifiers) key.

    Entries are weakly held: a lock lives while a holder or waiter references
    it and is dropped afterwards, so the registry does not grow with every
    aligner ever touched.

    Locks are not reentrant: code already holding a key must call the
    unlocked variant of any helper that would take the same key.

    >>> locks = KeyedLockRegistry()
    >>> async with locks.get("aligner", "al-1"):
    ...     ...
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def get(self, operation: str, *identifiers: str) -> asyncio.Lock:
        lock_key = f"{operation}:{':'.join(str(i) for i in identifiers)}"
        lock = self._locks.get(lock_key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[lock_key] = lock
        return lock

    def aligner(self, aligner_id: str) -> asyncio.Lock:
        return self.get("aligner", aligner_id)

    def __len__(self) -> int:
        return len(self._locks)
