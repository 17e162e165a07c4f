"""
Keyed asyncio locks

One lock per key (product id), created on first use. Holders of different
keys never wait on each other.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import Dict, Hashable


class KeyedLockManager:
    def __init__(self):
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._lock = asyncio.Lock()  # Protects _locks dict creation

    async def get_lock(self, key: Hashable) -> asyncio.Lock:
        """Get or create the lock for a key."""
        async with self._lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[key] = lock
            return lock

    @asynccontextmanager
    async def hold(self, key: Hashable):
        lock = await self.get_lock(key)
        async with lock:
            yield
