"""Debounce and coalesce bursts of file events.

Editors save often: a minute of typing can produce dozens of ``modify``
events for one file.  ``ChangeScheduler`` sits between the file watcher
and ``SyncEngine.on_file_event`` and lets through at most one call per
key and window.

Two modes, selected by ``leading_edge``:

* **Leading edge** (default): the first event of an idle period runs
  immediately; every further event with the same key inside the window
  is dropped, not queued.
* **Trailing edge**: each event restarts the key's timer; only the last
  event runs, once the key has been quiet for a full window.

The key is ``(event.kind, event.path)``, so a ``delete`` arriving right
after a ``modify`` of the same file is never swallowed.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Hashable

from .models import FileEvent

logger = logging.getLogger(__name__)

Handler = Callable[[FileEvent], Awaitable[Any]]

_PRUNE_THRESHOLD = 256


def event_key(event: FileEvent) -> Hashable:
    """Coalescing key of an event."""
    return (event.kind, event.path)


class ChangeScheduler:
    """Rate-limit file events before they reach the engine.

    Args:
        handler: Coroutine function invoked with the surviving events.
        window: Coalescing window in seconds.
        leading_edge: Run the first event of a burst (``True``) or the
            last one (``False``).
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        handler: Handler,
        window: float = 1.0,
        leading_edge: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if window < 0:
            raise ValueError(f"window must be >= 0, got {window}")
        self.handler = handler
        self.window = window
        self.leading_edge = leading_edge
        self._clock = clock
        self._last_run: dict[Hashable, float] = {}
        self._pending: dict[Hashable, asyncio.Task] = {}
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    @property
    def in_flight(self) -> int:
        """Number of handler calls running or waiting for their window."""
        return len(self._tasks)

    def submit(self, event: FileEvent) -> bool:
        """Offer *event* to the scheduler.

        Must be called from inside the running event loop.

        Returns:
            ``True`` if the event was accepted (run now or scheduled),
            ``False`` if it was dropped.
        """
        if self._closed:
            logger.debug("Scheduler closed, dropping %s", event)
            return False

        key = event_key(event)
        if self.leading_edge:
            return self._submit_leading(key, event)
        self._submit_trailing(key, event)
        return True

    def _submit_leading(self, key: Hashable, event: FileEvent) -> bool:
        now = self._clock()
        last = self._last_run.get(key)
        if last is not None and now - last < self.window:
            logger.debug(
                "Dropping %s %s within %.2fs window",
                event.kind.value,
                event.path,
                self.window,
            )
            return False

        self._last_run[key] = now
        if len(self._last_run) > _PRUNE_THRESHOLD:
            self._prune(now)
        self._spawn(self.handler(event))
        return True

    def _submit_trailing(self, key: Hashable, event: FileEvent) -> None:
        previous = self._pending.pop(key, None)
        if previous is not None and not previous.done():
            previous.cancel()
            logger.debug(
                "Superseding pending %s %s", event.kind.value, event.path
            )
        self._pending[key] = self._spawn(self._run_later(key, event))

    async def _run_later(self, key: Hashable, event: FileEvent) -> None:
        await asyncio.sleep(self.window)
        self._pending.pop(key, None)
        await self.handler(event)

    def _spawn(self, coro: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("File event handler failed: %s", exc, exc_info=exc)

    def _prune(self, now: float) -> None:
        expired = [
            k for k, ts in self._last_run.items() if now - ts >= self.window
        ]
        for k in expired:
            del self._last_run[k]

    async def drain(self) -> None:
        """Wait until every accepted event has been handled."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Stop accepting events and cancel everything not yet finished."""
        self._closed = True
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self._pending.clear()
