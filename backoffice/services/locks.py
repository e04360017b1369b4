"""
In-process keyed locks for lifecycle mutations.

Each key (a rate-adjustment kind, a quote id, a catalog uniqueness key) gets
its own ``asyncio.Lock`` so that check-then-write sequences on the same key
run one at a time inside a worker. Across processes the partial unique
indexes on the tables are what keep these rules; rows are additionally
read with ``SELECT ... FOR UPDATE`` where the database honours it.
"""

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Hashable


class KeyedLock:
    """A registry of asyncio locks, created on demand and dropped when idle."""

    def __init__(self, name: str):
        self.name = name
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._users: dict[Hashable, int] = defaultdict(int)

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] <= 0:
                self._users.pop(key, None)
                self._locks.pop(key, None)

    def is_locked(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return bool(lock and lock.locked())


rate_adjustment_locks = KeyedLock("rate_adjustment")
quote_locks = KeyedLock("quote")
catalog_locks = KeyedLock("catalog")
