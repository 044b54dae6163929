from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List


def organ_key(token_id: int) -> str:
    return f"organ:{token_id}"


def recipient_key(address: str) -> str:
    return f"recipient:{address}"


def hospital_key(address: str) -> str:
    return f"hospital:{address}"


class KeyedLocks:
    """One asyncio lock per entity key.

    Callers acquire organ locks first, then recipient locks, then hospital
    locks; :meth:`hold` takes keys in the order given and releases them in
    reverse.
    """

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}

    def lock(self, key: str) -> asyncio.Lock:
        return self._locks.setdefault(key, asyncio.Lock())

    @asynccontextmanager
    async def hold(self, *keys: str) -> AsyncIterator[None]:
        acquired: List[asyncio.Lock] = []
        try:
            for key in dict.fromkeys(keys):
                lock = self.lock(key)
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()
