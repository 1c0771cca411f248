"""In-process locks serializing inventory work per room type and date."""

import asyncio
from contextlib import asynccontextmanager
from datetime import date
from typing import AsyncIterator, Iterable
import uuid

LockKey = tuple[str, date]


class InventoryLockRegistry:
    """
    Registry of ``asyncio.Lock`` objects keyed by ``(room_type_id, date)``.

    Locks are always acquired in sorted key order so that two units of work
    touching overlapping keys cannot deadlock. Database row locks still
    apply on PostgreSQL; this registry covers concurrent requests inside a
    single worker process and SQLite, which has no row locks.

    An entry lives only while some task holds or waits for it.
    """

    def __init__(self) -> None:
        self._locks: dict[LockKey, asyncio.Lock] = {}
        self._users: dict[LockKey, int] = {}

    def _checkout(self, key: LockKey) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._users[key] = self._users.get(key, 0) + 1
        return lock

    def _checkin(self, key: LockKey) -> None:
        remaining = self._users[key] - 1
        if remaining:
            self._users[key] = remaining
        else:
            del self._users[key]
            del self._locks[key]

    @asynccontextmanager
    async def hold(self, keys: Iterable[tuple[uuid.UUID | str, date]]) -> AsyncIterator[None]:
        """Acquire every key's lock for the duration of the block."""
        ordered = sorted({(str(room_type_id), day) for room_type_id, day in keys})
        claimed: list[LockKey] = []
        acquired: list[asyncio.Lock] = []
        try:
            for key in ordered:
                lock = self._checkout(key)
                claimed.append(key)
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for key in claimed:
                self._checkin(key)

    def __len__(self) -> int:
        return len(self._locks)
