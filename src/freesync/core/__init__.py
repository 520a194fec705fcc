"""Async plumbing shared by the sync engine and the CLI."""

from .async_utils import (
    CancellationToken,
    ConcurrencyLimiter,
    call_with_retry,
    gather_limited,
    run_sync,
)

__all__ = [
    "CancellationToken",
    "ConcurrencyLimiter",
    "call_with_retry",
    "gather_limited",
    "run_sync",
]
