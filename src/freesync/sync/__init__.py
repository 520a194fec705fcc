"""Content-hash reconciliation engine.

Public API for keeping a local file tree and a remote blob store
converged.

Architecture
------------
Both replicas are described by a ``Snapshot`` (path -> SHA-256 digest).
The local snapshot is computed on demand; the remote one is the single
persisted record, stored under a reserved key in the blob store.  A sync
compares the two, applies one operation per differing path, and commits
a fresh local snapshot with a conditional write.

Modules:

- ``engine``     -- ``SyncEngine``: full sync and the incremental path.
- ``planner``    -- ``plan()``: classify paths into upload/download/
  delete/conflict.
- ``snapshot``   -- capture and commit-snapshot assembly.
- ``hasher``     -- ``ContentHasher``.
- ``operations`` -- ``TransferOps``: per-path store and tree primitives.
- ``resolver``   -- Conflict policies (local-wins, preserve-remote,
  remote-wins).
- ``scheduler``  -- ``ChangeScheduler``: debounce file events.
- ``locks``      -- ``PathLocks``: per-path mutual exclusion.
- ``models``     -- ``Snapshot``, ``ChangeOp``, ``FileEvent``,
  ``PathResult``, ``SyncReport``: core data contracts.
- ``reporter``   -- Human-readable and JSON report formatting.

Usage example
-------------
::

    from freesync.context import SyncContext
    from freesync.storage import InMemoryBlobStore
    from freesync.sync import SyncEngine, format_sync_report
    from freesync.tree import LocalFileTree

    ctx = SyncContext(tree=LocalFileTree(vault), store=InMemoryBlobStore())
    engine = SyncEngine(ctx)

    preview = await engine.full_sync(dry_run=True)
    print(format_sync_report(preview))

    report = await engine.full_sync()
    print(format_sync_report(report))
"""

from .engine import SyncEngine
from .hasher import ContentHasher
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
from .planner import RemoteMissingPolicy, plan
from .reporter import (
    format_dry_run_preview,
    format_sync_report,
    report_to_json,
)
from .scheduler import ChangeScheduler

__all__ = [
    "ChangeKind",
    "ChangeOp",
    "ChangeScheduler",
    "ContentHasher",
    "FileEvent",
    "FileEventKind",
    "PathResult",
    "RemoteMissingPolicy",
    "SkippedPath",
    "Snapshot",
    "SyncEngine",
    "SyncReport",
    "format_dry_run_preview",
    "format_sync_report",
    "plan",
    "report_to_json",
]
