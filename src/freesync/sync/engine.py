"""Reconciliation engine: capture, plan, apply and commit.

The ``SyncEngine`` ties together snapshot capture, planner, transfer
operations and conflict resolver.  A full sync:

1. Loads the committed remote snapshot together with its version marker.
2. Captures a fresh local snapshot (unreadable files are skipped).
3. Plans one op per differing path.
4. Applies the ops concurrently, each under its path lock.
5. Recaptures the local tree and commits the reconciled snapshot with a
   conditional write.  A path is recorded with the digest the store is
   known to hold, never with local content that was not transferred.
   Losing that race restarts at step 1.
6. Builds and returns a ``SyncReport``.

Error handling is per path: a ``HashError``, ``ApplyError`` or missing
content blob fails that path only.  Any other ``StorageError`` aborts the
attempt: pending transfers are cancelled, nothing is committed and
``SyncError`` carries the partial report.

The incremental path (``on_file_event``) skips planning: it mirrors one
local event to the store and then commits the reconciled local snapshot.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Iterable

from ..core.async_utils import CancellationToken, gather_limited
from ..errors import (
    ApplyError,
    HashError,
    NotFoundError,
    SnapshotVersionConflict,
    StorageError,
    SyncError,
)
from . import planner
from .locks import PathLocks
from .models import (
    ChangeKind,
    ChangeOp,
    FileEvent,
    FileEventKind,
    PathResult,
    SkippedPath,
    Snapshot,
    SyncReport,
)
from .operations import TransferOps
from .resolver import Resolution, create_resolver
from .snapshot import (
    CaptureResult,
    RemoteSnapshot,
    build_commit_snapshot,
    capture_snapshot,
)

if TYPE_CHECKING:
    from ..context import SyncContext

logger = logging.getLogger(__name__)

_PER_PATH_ERRORS = (HashError, ApplyError, NotFoundError)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SyncEngine:
    """Keep one local tree and one blob store converged.

    Args:
        context: Tree, store, settings and worker pool to operate on.
    """

    def __init__(self, context: SyncContext) -> None:
        self.context = context
        self.settings = context.settings
        self.locks = PathLocks()
        self.ops = TransferOps(
            tree=context.tree,
            store=context.store,
            limiter=context.limiter,
            snapshot_key=self.settings.snapshot_key,
            attempts=self.settings.retry_attempts,
            base_delay=self.settings.retry_base_delay,
            timeout=self.settings.operation_timeout,
            hasher=context.hasher,
            locks=self.locks,
        )
        self.resolver = create_resolver(
            self.settings.conflict_strategy, self.settings.conflict_suffix
        )
        # Serialises capture-write of the snapshot key in this process
        self.commit_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Building blocks
    # ------------------------------------------------------------------

    async def capture(
        self, cancel: CancellationToken | None = None
    ) -> CaptureResult:
        """Capture the local tree with the engine's hasher and pool."""
        return await capture_snapshot(
            self.context.tree,
            self.context.hasher,
            self.context.limiter,
            cancel,
        )

    async def load_remote(self) -> RemoteSnapshot:
        """Load the committed remote snapshot (empty if none exists)."""
        return await self.ops.load_snapshot()

    async def plan(
        self, cancel: CancellationToken | None = None
    ) -> tuple[RemoteSnapshot, CaptureResult, list[ChangeOp]]:
        """Load, capture and classify without changing anything.

        Paths that could not be hashed locally are left out of the plan:
        an unreadable local file must not be overwritten by a download or
        deleted remotely.
        """
        remote = await self.load_remote()
        local = await self.capture(cancel)
        skipped = local.skipped_paths
        policy = planner.RemoteMissingPolicy(self.settings.remote_missing)
        modified_at: dict[str, int] = {}
        if policy is planner.RemoteMissingPolicy.HONOR_TOMBSTONES:
            modified_at = await self._modified_times(
                planner.tombstoned_local_paths(local.snapshot, remote.snapshot)
            )
        changes = [
            op
            for op in planner.plan(
                local.snapshot, remote.snapshot, policy, modified_at
            )
            if op.path not in skipped
        ]
        return remote, local, changes

    async def _modified_times(self, paths: list[str]) -> dict[str, int]:
        """Local modification times of *paths*; unreadable ones are left out."""

        async def _one(path: str) -> tuple[str, int | None]:
            try:
                mtime = await self.context.limiter.run_sync(
                    self.context.tree.modified_at, path
                )
            except (OSError, ValueError) as exc:
                logger.debug("No modification time for %s: %s", path, exc)
                return path, None
            return path, mtime

        outcomes = await gather_limited([_one(p) for p in paths])
        return {path: mtime for path, mtime in outcomes if mtime is not None}

    async def _execute(self, op: ChangeOp) -> Resolution:
        if op.kind is ChangeKind.UPLOAD:
            return Resolution(None, {op.path: await self.ops.upload(op.path)})
        if op.kind is ChangeKind.DOWNLOAD:
            return Resolution(
                None, {op.path: await self.ops.download(op.path)}
            )
        if op.kind is ChangeKind.DELETE:
            await self.ops.delete_local(op.path)
            await self.ops.delete_remote(op.path)
            return Resolution(None, {})
        return await self.resolver.resolve(op.path, self.ops)

    async def apply_one(self, op: ChangeOp) -> PathResult:
        """Apply one op under its path lock and return its result.

        Per-path failures are returned as ``PathResult(success=False)``;
        fatal storage errors propagate.
        """
        async with self.locks.hold(op.path):
            try:
                outcome = await self._execute(op)
            except _PER_PATH_ERRORS as exc:
                logger.error("%s failed: %s", op, exc)
                return PathResult(
                    path=op.path, kind=op.kind, success=False, error=str(exc)
                )
        logger.info("%s done", op)
        return PathResult(
            path=op.path,
            kind=op.kind,
            success=True,
            detail=outcome.detail,
            stored=outcome.stored,
        )

    async def apply(
        self,
        changes: Iterable[ChangeOp],
        cancel: CancellationToken | None = None,
        results: list[PathResult] | None = None,
    ) -> list[PathResult]:
        """Apply *changes* concurrently.

        Args:
            changes: The ChangeSet to apply.
            cancel: Checked before each op starts.
            results: Optional list receiving each result as it completes,
                so a caller still sees finished work if the batch aborts.

        Returns:
            One ``PathResult`` per op, in input order.

        Raises:
            StorageError: On a fatal store failure; in-flight ops are
                cancelled first.
            SyncCancelled: If *cancel* was triggered.
        """
        sink = results if results is not None else []

        async def _run(op: ChangeOp) -> PathResult:
            if cancel is not None:
                cancel.raise_if_cancelled()
            result = await self.apply_one(op)
            sink.append(result)
            return result

        return await gather_limited([_run(op) for op in changes])

    async def commit(
        self,
        remote: RemoteSnapshot,
        *,
        failed: Iterable[str] = (),
        deleted: Iterable[str] = (),
        stored: dict[str, str] | None = None,
        cancel: CancellationToken | None = None,
    ) -> tuple[Snapshot, str | None]:
        """Recapture the local tree and persist it as the new snapshot.

        A recaptured path is committed with its fresh digest only if the
        store is known to hold that content; see
        ``build_commit_snapshot()``.

        Args:
            remote: Snapshot and version the changes were planned against.
            failed: Paths whose op failed; they keep their old entry.
            deleted: Paths removed from the store; they get tombstones.
            stored: Digests of the content this attempt transferred.
            cancel: Checked before the recapture.

        Returns:
            ``(committed_snapshot, new_version)``.

        Raises:
            SnapshotVersionConflict: If the record moved since *remote*
                was loaded.
        """
        async with self.commit_lock:
            fresh = await self.capture(cancel)
            snapshot = build_commit_snapshot(
                fresh.snapshot,
                remote.snapshot,
                failed=set(failed) | fresh.skipped_paths,
                deleted=deleted,
                stored=stored,
                tombstone_ttl_days=self.settings.tombstone_ttl_days,
            )
            version = await self.ops.commit_snapshot(snapshot, remote.version)
        logger.info(
            "Committed snapshot: %d files, %d tombstones (version %s)",
            len(snapshot.files),
            len(snapshot.deleted_files),
            version,
        )
        return snapshot, version

    async def apply_and_commit(
        self,
        changes: list[ChangeOp],
        remote: RemoteSnapshot | None = None,
        cancel: CancellationToken | None = None,
    ) -> Snapshot:
        """Apply *changes* and commit a fresh local snapshot.

        Args:
            changes: ChangeSet planned against *remote*.
            remote: Snapshot the changes were planned against; loaded
                from the store when omitted.
            cancel: Optional cancellation token.

        Returns:
            The committed snapshot.

        Raises:
            SyncError: If a fatal store failure aborted the batch.
            SnapshotVersionConflict: If the commit lost a race.
        """
        results: list[PathResult] = []
        try:
            if remote is None:
                remote = await self.load_remote()
            await self.apply(changes, cancel, results)
            snapshot, _ = await self.commit(
                remote,
                failed=_failed_paths(results),
                deleted=_deleted_paths(results),
                stored=_stored_digests(results),
                cancel=cancel,
            )
        except SnapshotVersionConflict:
            raise
        except StorageError as exc:
            raise SyncError(
                f"Sync aborted: {exc}",
                report=self._report("full", _now_iso(), results=results),
            ) from exc
        return snapshot

    # ------------------------------------------------------------------
    # Full sync
    # ------------------------------------------------------------------

    async def full_sync(
        self,
        dry_run: bool = False,
        cancel: CancellationToken | None = None,
    ) -> SyncReport:
        """Run one complete capture-plan-apply-commit cycle.

        Args:
            dry_run: If ``True``, plan but apply and commit nothing.
            cancel: Optional cancellation token honoured at every
                suspension point.

        Returns:
            A ``SyncReport``.  ``report.committed`` is ``True`` after a
            real run; per-path failures make it ``degraded``.

        Raises:
            SyncError: If the attempt aborted or the snapshot kept
                changing for more than ``max_replans`` restarts.
            SyncCancelled: If *cancel* was triggered.
        """
        started_at = _now_iso()
        replans = 0
        logger.info("Starting full sync%s", " (dry run)" if dry_run else "")

        while True:
            results: list[PathResult] = []
            skipped: list[SkippedPath] = []
            try:
                remote, local, changes = await self.plan(cancel)
                skipped = local.skipped
                if dry_run:
                    return self._report(
                        "full",
                        started_at,
                        dry_run=True,
                        results=[
                            PathResult(
                                path=op.path,
                                kind=op.kind,
                                success=True,
                                detail="planned",
                            )
                            for op in changes
                        ],
                        skipped=skipped,
                        replans=replans,
                    )

                await self.apply(changes, cancel, results)
                failed = _failed_paths(results) | local.skipped_paths
                snapshot, version = await self.commit(
                    remote,
                    failed=failed,
                    deleted=_deleted_paths(results),
                    stored=_stored_digests(results),
                    cancel=cancel,
                )
            except SnapshotVersionConflict as exc:
                if replans >= self.settings.max_replans:
                    raise SyncError(
                        f"Remote snapshot kept changing; gave up after "
                        f"{replans} replans",
                        report=self._report(
                            "full",
                            started_at,
                            results=results,
                            skipped=skipped,
                            replans=replans,
                        ),
                    ) from exc
                replans += 1
                logger.warning(
                    "Remote snapshot changed during sync, replanning (%d/%d)",
                    replans,
                    self.settings.max_replans,
                )
                continue
            except StorageError as exc:
                logger.error("Sync aborted: %s", exc)
                raise SyncError(
                    f"Sync aborted: {exc}",
                    report=self._report(
                        "full",
                        started_at,
                        results=results,
                        skipped=skipped,
                        replans=replans,
                    ),
                ) from exc

            report = self._report(
                "full",
                started_at,
                results=results,
                skipped=skipped,
                committed=True,
                snapshot=snapshot,
                version=version,
                replans=replans,
            )
            logger.info(
                "Full sync finished: %d ops, %d failed",
                len(report.results),
                len(report.errors),
            )
            return report

    # ------------------------------------------------------------------
    # Incremental path
    # ------------------------------------------------------------------

    async def _mirror_event(
        self, event: FileEvent, results: list[PathResult]
    ) -> None:
        if event.kind in (FileEventKind.CREATE, FileEventKind.MODIFY):
            results.append(
                await self.apply_one(
                    ChangeOp(kind=ChangeKind.UPLOAD, path=event.path)
                )
            )
            return

        if event.kind is FileEventKind.DELETE:
            results.append(await self._delete_remote_only(event.path))
            return

        # Rename: drop the old key, then upload the new path.
        if event.old_path is None:
            raise ValueError(f"Rename event without old_path: {event.path}")
        results.append(await self._delete_remote_only(event.old_path))
        results.append(
            await self.apply_one(
                ChangeOp(kind=ChangeKind.UPLOAD, path=event.path)
            )
        )

    async def _delete_remote_only(self, path: str) -> PathResult:
        try:
            async with self.locks.hold(path):
                await self.ops.delete_remote(path)
        except ApplyError as exc:
            logger.error("delete(%s) failed: %s", path, exc)
            return PathResult(
                path=path, kind=ChangeKind.DELETE, success=False, error=str(exc)
            )
        return PathResult(path=path, kind=ChangeKind.DELETE, success=True)

    async def on_file_event(self, event: FileEvent) -> SyncReport:
        """Mirror one local change to the store, then commit.

        * ``create`` / ``modify``: upload the current content.
        * ``delete``: delete the remote key.
        * ``rename``: delete the key at ``old_path``, upload ``path``.

        The committed snapshot is the reconciled fresh local capture,
        not a patch.  If another committer wins the race, the remote snapshot
        is reloaded (for its tombstones) and the commit retried.

        Raises:
            SyncError: If a fatal store failure aborted the handler.
        """
        started_at = _now_iso()
        results: list[PathResult] = []
        logger.info("File event: %s %s", event.kind.value, event.path)

        try:
            remote = await self.load_remote()
            await self._mirror_event(event, results)
            failed = _failed_paths(results)
            deleted = _deleted_paths(results)
            stored = _stored_digests(results)

            attempt = 0
            while True:
                try:
                    snapshot, version = await self.commit(
                        remote, failed=failed, deleted=deleted, stored=stored
                    )
                    break
                except SnapshotVersionConflict:
                    if attempt >= self.settings.max_replans:
                        raise
                    attempt += 1
                    logger.warning(
                        "Remote snapshot changed, reloading (%d/%d)",
                        attempt,
                        self.settings.max_replans,
                    )
                    remote = await self.load_remote()
        except StorageError as exc:
            logger.error("Incremental sync of %s aborted: %s", event.path, exc)
            raise SyncError(
                f"Incremental sync of {event.path} aborted: {exc}",
                report=self._report("event", started_at, results=results),
            ) from exc

        return self._report(
            "event",
            started_at,
            results=results,
            committed=True,
            snapshot=snapshot,
            version=version,
            replans=attempt,
        )

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    @staticmethod
    def _report(
        trigger: str,
        started_at: str,
        *,
        dry_run: bool = False,
        results: list[PathResult] | None = None,
        skipped: list[SkippedPath] | None = None,
        committed: bool = False,
        snapshot: Snapshot | None = None,
        version: str | None = None,
        replans: int = 0,
    ) -> SyncReport:
        return SyncReport(
            trigger=trigger,
            dry_run=dry_run,
            results=sorted(results or [], key=lambda r: (r.path, r.kind.value)),
            skipped=list(skipped or []),
            started_at=started_at,
            completed_at=_now_iso(),
            committed=committed,
            committed_files=len(snapshot.files) if snapshot else 0,
            snapshot_version=version,
            replans=replans,
        )


def _failed_paths(results: Iterable[PathResult]) -> set[str]:
    return {r.path for r in results if not r.success}


def _deleted_paths(results: Iterable[PathResult]) -> set[str]:
    return {
        r.path for r in results if r.kind is ChangeKind.DELETE and r.success
    }


def _stored_digests(results: Iterable[PathResult]) -> dict[str, str]:
    stored: dict[str, str] = {}
    for r in results:
        if r.success:
            stored.update(r.stored)
    return stored
