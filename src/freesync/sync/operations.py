"""Per-path transfer primitives.

``TransferOps`` is the single place where the engine touches the blob
store and the local tree.  The full-sync apply loop, the incremental
event path and the conflict resolvers all go through it, so every call
gets the same worker pool, timeout, retry policy and path validation.

Errors keep their taxonomy:

* local read failure -> ``HashError``
* local write/delete/mkdir failure or invalid path -> ``ApplyError``
* store failure -> ``StorageError`` subclass (after retries)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, TypeVar

from ..core.async_utils import ConcurrencyLimiter, call_with_retry
from ..errors import ApplyError, HashError, NotFoundError
from ..validators import DEFAULT_SNAPSHOT_KEY, validate_sync_path
from .hasher import ContentHasher
from .locks import PathLocks
from .models import Snapshot
from .snapshot import RemoteSnapshot, decode_snapshot

if TYPE_CHECKING:
    from ..storage.base import BlobStore
    from ..tree import FileTree

T = TypeVar("T")
logger = logging.getLogger(__name__)


class TransferOps:
    """Unified upload/download/delete operations for one tree and store.

    Args:
        tree: Local file tree.
        store: Remote blob store.
        limiter: Worker pool shared with hashing.
        snapshot_key: Reserved key of the snapshot record.
        attempts: Tries per store call on transient failures.
        base_delay: First retry backoff in seconds.
        timeout: Per store call timeout in seconds.
        hasher: Digests the bytes each transfer moved.
        locks: Per-path locks shared with the engine.
    """

    def __init__(
        self,
        tree: FileTree,
        store: BlobStore,
        limiter: ConcurrencyLimiter,
        snapshot_key: str = DEFAULT_SNAPSHOT_KEY,
        attempts: int = 3,
        base_delay: float = 0.5,
        timeout: float | None = 60.0,
        hasher: ContentHasher | None = None,
        locks: PathLocks | None = None,
    ) -> None:
        self.tree = tree
        self.store = store
        self.limiter = limiter
        self.snapshot_key = snapshot_key
        self.attempts = attempts
        self.base_delay = base_delay
        self.timeout = timeout
        self.hasher = hasher if hasher is not None else ContentHasher()
        # PathLocks is falsy while empty
        self.locks = locks if locks is not None else PathLocks()

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    async def store_call(
        self, func: Callable[..., T], *args: Any, **kwargs: Any
    ) -> T:
        """Run a blocking store method with the configured retry policy."""
        return await call_with_retry(
            func,
            *args,
            limiter=self.limiter,
            attempts=self.attempts,
            base_delay=self.base_delay,
            timeout=self.timeout,
            **kwargs,
        )

    def _check_path(self, path: str) -> None:
        ok, reason = validate_sync_path(path, self.snapshot_key)
        if not ok:
            raise ApplyError(path, reason)

    async def _local(self, path: str, func: Callable[..., T], *args: Any) -> T:
        try:
            return await self.limiter.run_sync(func, *args)
        except (OSError, ValueError) as exc:
            raise ApplyError(path, exc) from exc

    # ------------------------------------------------------------------
    # Remote side
    # ------------------------------------------------------------------

    async def read_remote(self, path: str) -> bytes:
        """Fetch the content blob stored under *path*."""
        self._check_path(path)
        return await self.store_call(self.store.get, path)

    async def put_remote(self, path: str, data: bytes) -> None:
        """Store *data* under the content key *path*."""
        self._check_path(path)
        await self.store_call(self.store.put, path, data)

    async def delete_remote(self, path: str) -> None:
        """Remove the content key *path*; an absent key is fine."""
        self._check_path(path)
        await self.store_call(self.store.delete, path)
        logger.info("Deleted remote %s", path)

    # ------------------------------------------------------------------
    # Local side
    # ------------------------------------------------------------------

    async def read_local(self, path: str) -> bytes:
        """Read the whole local file."""
        self._check_path(path)
        try:
            return await self.limiter.run_sync(self.tree.read, path)
        except (OSError, ValueError) as exc:
            raise HashError(path, exc) from exc

    async def ensure_parents(self, path: str) -> None:
        """Create every missing parent directory of *path*, one at a time.

        An already existing directory is not an error.
        """
        segments = path.split("/")[:-1]
        for depth in range(1, len(segments) + 1):
            prefix = "/".join(segments[:depth])
            try:
                await self.limiter.run_sync(self.tree.make_dir, prefix)
            except FileExistsError:
                continue
            except (OSError, ValueError) as exc:
                raise ApplyError(path, exc) from exc

    async def write_local(self, path: str, data: bytes) -> None:
        """Write *data* to the local file, creating parents first."""
        self._check_path(path)
        await self.ensure_parents(path)
        await self._local(path, self.tree.write, path, data)

    async def delete_local(self, path: str) -> None:
        """Remove the local file; an absent file is fine."""
        self._check_path(path)
        await self._local(path, self.tree.delete, path)
        logger.info("Deleted local %s", path)

    async def local_exists(self, path: str) -> bool:
        """Return ``True`` if *path* is a file in the local tree."""
        self._check_path(path)
        return await self._local(path, self.tree.exists, path)

    async def digest(self, data: bytes) -> str:
        """Hash *data* on a worker thread."""
        return await self.limiter.run_sync(self.hasher.hash, data)

    # ------------------------------------------------------------------
    # Transfers
    # ------------------------------------------------------------------

    async def upload(self, path: str) -> str:
        """Copy the local file at *path* to the store under the same key.

        Returns:
            Digest of the bytes that were stored, which may differ from
            the file's current content if it changed afterwards.
        """
        self._check_path(path)
        data, digest = await self.limiter.run_sync(
            self.hasher.read_and_hash, self.tree, path
        )
        await self.put_remote(path, data)
        logger.info("Uploaded %s (%d bytes)", path, len(data))
        return digest

    async def download(self, path: str) -> str:
        """Copy the blob under *path* into the local tree.

        Returns:
            Digest of the blob that was fetched.
        """
        # Checked before any network call
        self._check_path(path)
        data = await self.read_remote(path)
        await self.write_local(path, data)
        logger.info("Downloaded %s (%d bytes)", path, len(data))
        return await self.digest(data)

    # ------------------------------------------------------------------
    # Snapshot record
    # ------------------------------------------------------------------

    async def load_snapshot(self) -> RemoteSnapshot:
        """Read the committed snapshot and its version marker.

        An absent snapshot key means nothing was ever committed and is
        returned as an empty snapshot with version ``None``.
        """
        try:
            data, version = await self.store_call(
                self.store.get_versioned, self.snapshot_key
            )
        except NotFoundError:
            logger.info(
                "No snapshot under '%s' yet, starting from empty state",
                self.snapshot_key,
            )
            return RemoteSnapshot(Snapshot.empty(), None)
        return RemoteSnapshot(decode_snapshot(data, self.snapshot_key), version)

    async def commit_snapshot(
        self, snapshot: Snapshot, expected_version: str | None
    ) -> str | None:
        """Persist *snapshot* if the record is still at *expected_version*.

        Raises:
            SnapshotVersionConflict: If another committer got there first.
        """
        if expected_version is None:
            return await self.store_call(
                self.store.put,
                self.snapshot_key,
                snapshot.to_json(),
                if_none_match=True,
            )
        return await self.store_call(
            self.store.put,
            self.snapshot_key,
            snapshot.to_json(),
            if_match=expected_version,
        )
