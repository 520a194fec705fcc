"""Snapshot capture and commit-snapshot assembly.

Local snapshots are computed on demand by hashing every file in the tree
and are never persisted.  The remote snapshot is the only persisted
state; it is decoded here and the next one to commit is assembled by
``build_commit_snapshot()``.

Key design choices:

* **Best-effort capture** -- a file that cannot be read is left out of
  the snapshot and reported in ``CaptureResult.skipped``; the capture
  itself never fails because of one bad file.
* **Reconciled commits** -- the committed snapshot is the fresh local
  capture, except where the store is not known to hold that content
  (failed transfers, edits made after a transfer): those paths keep the
  digest of what the store holds, so the record keeps describing the
  content keys actually present in the store.
* **Tombstones** -- deletions are recorded in ``deleted_files`` with an
  epoch-millisecond timestamp and pruned after a TTL.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Iterable, Mapping, NamedTuple

from pydantic import ValidationError

from ..core.async_utils import gather_limited
from ..errors import HashError, StorageError
from .models import SkippedPath, Snapshot

if TYPE_CHECKING:
    from ..core.async_utils import CancellationToken, ConcurrencyLimiter
    from ..tree import FileTree
    from .hasher import ContentHasher

logger = logging.getLogger(__name__)

MS_PER_DAY = 24 * 60 * 60 * 1000


class CaptureResult(NamedTuple):
    """A possibly-partial local snapshot plus the paths left out of it."""

    snapshot: Snapshot
    skipped: list[SkippedPath]

    @property
    def skipped_paths(self) -> set[str]:
        return {s.path for s in self.skipped}


class RemoteSnapshot(NamedTuple):
    """Decoded remote snapshot and the version marker it was read at.

    ``version`` is ``None`` when no snapshot has ever been committed.
    """

    snapshot: Snapshot
    version: str | None


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


async def capture_snapshot(
    tree: FileTree,
    hasher: ContentHasher,
    limiter: ConcurrencyLimiter,
    cancel: CancellationToken | None = None,
) -> CaptureResult:
    """Hash every file of *tree* and assemble a ``Snapshot``.

    Hashing runs concurrently through *limiter*.  Per-path ``HashError``s
    are collected, never raised.

    Raises:
        SyncCancelled: If *cancel* is triggered before a hash starts.
    """
    if cancel is not None:
        cancel.raise_if_cancelled()
    paths = await limiter.run_sync(tree.enumerate)

    async def _hash_one(path: str) -> tuple[str, str | None, str | None]:
        if cancel is not None:
            cancel.raise_if_cancelled()
        try:
            digest = await hasher.hash_path(tree, path, limiter)
        except HashError as exc:
            logger.warning("Skipping %s: %s", path, exc.cause)
            return path, None, str(exc.cause)
        return path, digest, None

    outcomes = await gather_limited([_hash_one(p) for p in paths])

    files: dict[str, str] = {}
    skipped: list[SkippedPath] = []
    for path, digest, error in outcomes:
        if digest is None:
            skipped.append(SkippedPath(path=path, error=error or "unknown"))
        else:
            files[path] = digest

    logger.debug(
        "Captured %d files (%d skipped)", len(files), len(skipped)
    )
    return CaptureResult(Snapshot(files=files), skipped)


def decode_snapshot(data: bytes, key: str) -> Snapshot:
    """Parse the persisted snapshot record stored under *key*.

    Raises:
        StorageError: If the record is not a valid snapshot.  A corrupt
            record is never treated as empty.
    """
    try:
        return Snapshot.from_json(data)
    except ValidationError as exc:
        raise StorageError(
            f"Snapshot record under '{key}' is corrupt: {exc.error_count()} "
            f"validation error(s)",
            key=key,
        ) from exc


def build_commit_snapshot(
    local: Snapshot,
    previous: Snapshot,
    *,
    failed: Iterable[str] = (),
    deleted: Iterable[str] = (),
    stored: Mapping[str, str] | None = None,
    now: int | None = None,
    tombstone_ttl_days: int = 30,
) -> Snapshot:
    """Assemble the snapshot to persist after applying changes.

    A local entry is committed only when the store is known to hold the
    same content: the digest transferred during this attempt (*stored*)
    or, for untouched paths, the *previous* entry.  A file edited after
    its transfer, or never transferred at all, keeps the digest the store
    actually holds, or is omitted if the store never had it.  The next
    plan then sees the difference instead of an equal digest.

    Args:
        local: Fresh capture of the local tree.
        previous: Remote snapshot the changes were planned against.
        failed: Paths whose operation failed or whose local content could
            not be hashed.  They keep their previous remote entry, or are
            omitted if the remote never had them.
        deleted: Paths removed from the remote store during this attempt;
            each gets a tombstone unless it exists again locally.
        stored: Path to digest of the content written to or read from
            the store by this attempt's successful operations.
        now: Commit time in epoch milliseconds (defaults to now).
        tombstone_ttl_days: Tombstones older than this are dropped.

    Returns:
        New ``Snapshot``; *local* and *previous* are not modified.
    """
    now = now_ms() if now is None else now
    failed = set(failed)
    deleted = set(deleted)
    in_store = {**previous.files, **(stored or {})}
    for path in deleted:
        in_store.pop(path, None)

    files: dict[str, str] = {}
    for path, digest in local.files.items():
        if path in failed:
            continue
        held = in_store.get(path)
        if held is None:
            logger.debug("%s was never stored, left out of commit", path)
            continue
        if held != digest:
            logger.debug("%s changed after its transfer", path)
        files[path] = held

    for path in failed:
        if path in previous.files:
            files[path] = previous.files[path]

    cutoff = now - tombstone_ttl_days * MS_PER_DAY
    tombstones = {
        path: ts
        for path, ts in previous.deleted_files.items()
        if path not in files and ts >= cutoff
    }
    for path in deleted:
        if path not in files:
            tombstones[path] = now

    return Snapshot(files=files, deleted_files=tombstones)
