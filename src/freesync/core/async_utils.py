"""Async utilities for bridging blocking storage and filesystem calls to the engine.

The blob store client and the local filesystem are synchronous; the engine
is a single event loop.  Every blocking call is pushed to a worker thread
with ``run_sync`` so hashing N files or transferring N blobs can overlap,
while ``ConcurrencyLimiter`` keeps the number in flight bounded.
"""

import asyncio
import logging
import random
from typing import Any, Callable, Coroutine, Sequence, TypeVar

from ..errors import SyncCancelled, TransientStorageError

T = TypeVar("T")
logger = logging.getLogger(__name__)


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Example:
        data = await run_sync(store.get, "notes/today.md")
    """
    return await asyncio.to_thread(func, *args, **kwargs)


class ConcurrencyLimiter:
    """Bounded worker pool for blocking calls.

    One instance is owned by each ``SyncContext``; there is no
    module-level semaphore.

    Args:
        max_parallel: Maximum number of calls running at once.
    """

    def __init__(self, max_parallel: int = 8) -> None:
        if max_parallel < 1:
            raise ValueError(
                f"max_parallel must be at least 1, got {max_parallel}"
            )
        self.max_parallel = max_parallel
        self._semaphore = asyncio.Semaphore(max_parallel)
        logger.debug(
            "Concurrency limiter initialized: max_parallel=%d",
            max_parallel,
        )

    async def run_sync(
        self, func: Callable[..., T], *args: Any, **kwargs: Any
    ) -> T:
        """Like ``run_sync`` but waits for a free slot first."""
        return await self.run_timed(None, func, *args, **kwargs)

    async def run_timed(
        self,
        timeout: float | None,
        func: Callable[..., T],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """Run *func* in a slot, timing only the call itself.

        The timeout starts once a slot is held, so time spent queued
        behind other calls never counts against it.  A call that times
        out or whose caller is cancelled keeps its slot until the worker
        thread actually returns.

        Raises:
            asyncio.TimeoutError: If the call ran longer than *timeout*.
        """
        await self._semaphore.acquire()
        try:
            future = asyncio.ensure_future(
                asyncio.to_thread(func, *args, **kwargs)
            )
        except BaseException:
            self._semaphore.release()
            raise
        future.add_done_callback(self._release)
        return await asyncio.wait_for(asyncio.shield(future), timeout)

    def _release(self, future: asyncio.Future) -> None:
        self._semaphore.release()
        # Abandoned calls are never awaited; consume their outcome here
        if not future.cancelled():
            future.exception()


async def gather_limited(
    coros: Sequence[Coroutine[Any, Any, T]],
) -> list[T]:
    """Run coroutines concurrently and return their results in order.

    Each coroutine should bound itself through a ``ConcurrencyLimiter``.
    If one coroutine raises, the still-pending ones are cancelled before
    the exception propagates, so an aborted sync does not keep
    transferring in the background.

    Args:
        coros: Sequence of coroutines to run concurrently.

    Returns:
        List of results in the same order as input coroutines.
    """
    tasks = [asyncio.ensure_future(c) for c in coros]
    if not tasks:
        return []
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


async def call_with_retry(
    func: Callable[..., T],
    *args: Any,
    limiter: ConcurrencyLimiter | None = None,
    attempts: int = 3,
    base_delay: float = 0.5,
    timeout: float | None = None,
    **kwargs: Any,
) -> T:
    """Run a blocking storage call with timeout and bounded retry.

    Only ``TransientStorageError`` (and timeouts, which are converted to
    it) are retried, with exponential backoff plus jitter.  Every other
    exception propagates on the first failure.

    The worker thread of a timed-out call cannot be interrupted; its
    result is discarded, but it keeps its limiter slot until it returns.
    Only the call itself is timed, not the wait for a slot.

    Args:
        func: Synchronous function to call.
        limiter: Optional pool bounding concurrent calls.
        attempts: Total number of tries (at least 1).
        base_delay: Delay before the first retry in seconds.
        timeout: Per-try timeout in seconds, ``None`` for no limit.

    Returns:
        Result of func(*args, **kwargs)

    Raises:
        TransientStorageError: If every attempt failed transiently.
    """
    attempts = max(1, attempts)
    last_exc: TransientStorageError | None = None

    for attempt in range(1, attempts + 1):
        if limiter is not None:
            call = limiter.run_timed(timeout, func, *args, **kwargs)
        else:
            call = asyncio.wait_for(run_sync(func, *args, **kwargs), timeout)
        try:
            return await call
        except asyncio.TimeoutError:
            last_exc = TransientStorageError(
                f"{getattr(func, '__name__', func)} timed out after {timeout}s"
            )
        except TransientStorageError as exc:
            last_exc = exc

        if attempt < attempts:
            delay = base_delay * (2 ** (attempt - 1))
            delay += random.uniform(0, base_delay / 2)
            logger.warning(
                "Transient storage failure (attempt %d/%d): %s -- retrying in %.2fs",
                attempt,
                attempts,
                last_exc,
                delay,
            )
            await asyncio.sleep(delay)

    assert last_exc is not None
    raise last_exc


class CancellationToken:
    """Cooperative cancellation flag checked at each suspension point.

    Cancelling the token does not interrupt a call already running in a
    worker thread; the next ``raise_if_cancelled()`` stops the sync.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        """Request cancellation."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        """True once ``cancel()`` has been called."""
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise ``SyncCancelled`` if cancellation was requested."""
        if self._event.is_set():
            raise SyncCancelled("Sync cancelled")

    async def wait(self) -> None:
        """Block until cancellation is requested."""
        await self._event.wait()
