"""Async coordination helpers shared by the stores, router and recorder."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Hashable, Optional


class KeyedLock:
    """A family of ``asyncio.Lock`` objects addressed by key.

    Read-modify-write sequences against the same card or project aggregate are
    serialized by holding the lock for that key; different keys never contend.
    A key's lock is dropped once nobody holds or waits on it.
    """

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._users: dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def locked(self, key: Hashable) -> bool:
        return key in self._locks and self._locks[key].locked()

    @property
    def key_count(self) -> int:
        return len(self._locks)


class CancellationToken:
    """Cooperative cancellation signal passed through the LLM client boundary."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()
