"""
Per-game locks.

One mutation in flight per game id. Local commands hold the lock
across validate -> ledger submit -> store update; the poller takes it
only to reconcile a snapshot it has already read.

Locks of finished or forgotten games are dropped with forget(). A lock
someone is holding or waiting on is only dropped once the last of them
lets go, so two callers never end up with different locks for one id.
"""

from __future__ import annotations
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class GameLocks:
    """Lazily created asyncio.Lock per (case-insensitive) game id."""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}  # holders and waiters per id
        self._retired: set[str] = set()

    def lock_for(self, game_id: str) -> asyncio.Lock:
        key = game_id.lower()
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, game_id: str) -> AsyncIterator[asyncio.Lock]:
        """
        Acquire the game's lock for the duration of the block.

        Usage:
            async with locks.hold(game_id):
                ...
        """
        key = game_id.lower()
        lock = self.lock_for(key)
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield lock
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                if key in self._retired:
                    self._retired.discard(key)
                    if self._locks.get(key) is lock:
                        del self._locks[key]

    def forget(self, game_id: str):
        """Drop the lock for `game_id` now, or when its last user releases it."""
        key = game_id.lower()
        if self._users.get(key):
            self._retired.add(key)
            return
        self._locks.pop(key, None)

    def clear(self):
        self._locks = {k: v for k, v in self._locks.items() if self._users.get(k)}
        self._retired = set(self._locks)

    def __len__(self) -> int:
        return len(self._locks)
