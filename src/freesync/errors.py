"""Exception hierarchy for the sync engine.

- ``HashError`` / ``ApplyError``: per-path failures.  The apply loop and
  snapshot capture record them and move on.
- ``StorageError``: a blob store call failed.  ``NotFoundError`` is only
  benign for the reserved snapshot key; ``UnauthorizedError`` and
  ``TransientStorageError`` (once retries are exhausted) abort the sync
  attempt.
- ``SnapshotVersionConflict``: the conditional snapshot write lost a race
  with another committer.
- ``SyncError``: aggregate failure surfaced to callers of a full sync or
  the incremental handler.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .sync.models import SyncReport


class FreeSyncError(Exception):
    """Base class for all FreeSync errors."""


class HashError(FreeSyncError):
    """Content of *path* could not be read or digested."""

    def __init__(self, path: str, cause: BaseException | str) -> None:
        self.path = path
        self.cause = cause
        super().__init__(f"Cannot hash '{path}': {cause}")


class ApplyError(FreeSyncError):
    """A local write, delete or directory creation failed for *path*."""

    def __init__(self, path: str, cause: BaseException | str) -> None:
        self.path = path
        self.cause = cause
        super().__init__(f"Cannot apply change to '{path}': {cause}")


class StorageError(FreeSyncError):
    """A blob store operation failed."""

    def __init__(self, message: str, key: str | None = None) -> None:
        self.key = key
        super().__init__(message)


class NotFoundError(StorageError):
    """The requested key does not exist in the blob store."""


class UnauthorizedError(StorageError):
    """The credentials were rejected by the blob store."""


class TransientStorageError(StorageError):
    """A retryable failure (throttling, 5xx, connection reset, timeout)."""


class SnapshotVersionConflict(StorageError):
    """The snapshot key changed since it was read (conditional write failed)."""


class SyncCancelled(FreeSyncError):
    """The sync was cancelled through its ``CancellationToken``."""


class SyncError(FreeSyncError):
    """A sync attempt failed as a whole.

    Attributes:
        report: Partial report describing what had been applied before
            the failure, when available.
    """

    def __init__(
        self, message: str, report: SyncReport | None = None
    ) -> None:
        self.report = report
        super().__init__(message)
