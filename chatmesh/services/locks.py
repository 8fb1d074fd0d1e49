# =============================================================================
# Session Locks — One Message at a Time per Chat Session
# =============================================================================
#
# Two messages sent to the same session in quick succession must be
# answered in order: the second one's agents need the first one's reply
# in their history. SessionLocks hands out one asyncio.Lock per session
# id; different sessions never wait on each other.
#
# Locks are dropped once no request holds or waits on them, so the map
# doesn't grow with every session ever seen.
# =============================================================================

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class SessionLocks:
    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, session_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        self._waiters[session_id] = self._waiters.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[session_id] -= 1
            if self._waiters[session_id] == 0:
                del self._waiters[session_id]
                del self._locks[session_id]

    def is_locked(self, session_id: str) -> bool:
        lock = self._locks.get(session_id)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
