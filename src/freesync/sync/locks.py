"""Per-path mutual exclusion.

The full-sync apply loop and the incremental event handler can target the
same path at the same time.  ``PathLocks`` hands out one ``asyncio.Lock``
per path and drops it again once nobody holds or waits for it.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class PathLocks:
    """Registry of per-path locks."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, *paths: str) -> AsyncIterator[None]:
        """Hold the locks of all *paths* for the duration of the block.

        Locks are taken in sorted order so two holders of overlapping
        path sets cannot deadlock.
        """
        ordered = sorted(set(paths))
        for path in ordered:
            self._users[path] = self._users.get(path, 0) + 1
            self._locks.setdefault(path, asyncio.Lock())

        acquired: list[str] = []
        try:
            for path in ordered:
                await self._locks[path].acquire()
                acquired.append(path)
            yield
        finally:
            for path in reversed(acquired):
                self._locks[path].release()
            for path in ordered:
                self._users[path] -= 1
                if self._users[path] == 0:
                    del self._users[path]
                    del self._locks[path]

    def locked(self, path: str) -> bool:
        """Return ``True`` if *path* is currently held."""
        lock = self._locks.get(path)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
