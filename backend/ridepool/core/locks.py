"""Per-key asyncio locks.

Serializes work on one key (an OTP identity, a ride id) while letting
unrelated keys proceed in parallel. Entries are dropped once no coroutine
holds or waits on them, so the registry does not grow with every key ever
seen.

Note: asyncio locks coordinate coroutines on one event loop. Cross-process
exclusion for rides comes from the database row lock in the SQL inventory.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Hashable


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class KeyedLock:
    """Registry of asyncio locks keyed by an arbitrary hashable value.

    Usage:
        locks = KeyedLock()
        async with locks.hold(ride_id):
            ...  # exclusive for this ride_id only
    """

    def __init__(self) -> None:
        self._entries: dict[Hashable, _Entry] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        """Acquire the lock for ``key`` for the duration of the block."""
        entry = self._entries.get(key)
        if entry is None:
            entry = _Entry()
            self._entries[key] = entry
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._entries[key]

    def is_locked(self, key: Hashable) -> bool:
        """Whether some coroutine currently holds the lock for ``key``."""
        entry = self._entries.get(key)
        return entry is not None and entry.lock.locked()

    def __len__(self) -> int:
        return len(self._entries)
