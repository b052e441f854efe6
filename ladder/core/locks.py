"""
In-process exclusive locks keyed by entity.

Complements database row locks (SELECT ... FOR UPDATE), which SQLite
ignores. Entries are dropped as soon as nobody holds or waits on them.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import Dict, Hashable, List


class KeyedLockRegistry:
    """Registry of asyncio locks, one per key."""

    def __init__(self):
        # key -> [lock, holders + waiters]
        self._entries: Dict[Hashable, List] = {}

    def is_locked(self, key: Hashable) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry[0].locked()

    @asynccontextmanager
    async def hold(self, key: Hashable):
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = [asyncio.Lock(), 0]
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)


# Shared by every close operation in this process
round_locks = KeyedLockRegistry()
