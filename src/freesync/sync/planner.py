"""Three-way change classification.

``plan()`` is a pure function over two snapshots (plus, for tombstoned
paths, local modification times): it walks the sorted
union of paths and emits at most one ``ChangeOp`` per path.

====================  =====================  ==============================
local                 remote                 op
====================  =====================  ==============================
digest                (absent)               Upload
(absent)              digest                 Download (policy dependent)
digest A              digest A               nothing
digest A              digest B               Conflict
====================  =====================  ==============================

A path present only remotely is ambiguous: the local tree may be missing
content (fresh device) or the user may have deleted it.  The
``RemoteMissingPolicy`` makes that choice explicit.  Under
``HONOR_TOMBSTONES`` a local-only path with a tombstone is deleted only
when the local file is known to be no newer than the tombstone; a file
created or edited after the deletion is uploaded again.
"""

from __future__ import annotations

from enum import Enum
from typing import Mapping

from .models import ChangeKind, ChangeOp, Snapshot


class RemoteMissingPolicy(str, Enum):
    """What a path known only to the remote snapshot means."""

    DOWNLOAD = "download"
    """Local is missing content the remote has: pull it down."""

    DELETE = "delete"
    """Local should not have it: delete it on both sides."""

    HONOR_TOMBSTONES = "honor-tombstones"
    """Download, but apply remote tombstones to older local-only paths."""


def plan(
    local: Snapshot,
    remote: Snapshot,
    remote_missing: RemoteMissingPolicy | str = RemoteMissingPolicy.DOWNLOAD,
    modified_at: Mapping[str, int] | None = None,
) -> list[ChangeOp]:
    """Compute the ChangeSet that brings *local* and *remote* together.

    Args:
        local: Snapshot of the local tree.
        remote: Last committed remote snapshot.
        remote_missing: Policy for remote-only paths.
        modified_at: Local modification times in epoch milliseconds,
            consulted for tombstoned local-only paths.  A path without
            an entry is treated as newer than its tombstone.

    Returns:
        Ops sorted by path.  Digest equality is the only notion of
        "unchanged"; identical snapshots yield an empty list.

    Raises:
        ValueError: If *remote_missing* is not a known policy.
    """
    policy = RemoteMissingPolicy(remote_missing)
    modified_at = modified_at or {}
    changes: list[ChangeOp] = []

    for path in sorted(set(local.files) | set(remote.files)):
        local_digest = local.files.get(path)
        remote_digest = remote.files.get(path)

        if remote_digest is None:
            tombstone = remote.deleted_files.get(path)
            mtime = modified_at.get(path)
            if (
                policy is RemoteMissingPolicy.HONOR_TOMBSTONES
                and tombstone is not None
                and mtime is not None
                and mtime <= tombstone
            ):
                kind = ChangeKind.DELETE
            else:
                kind = ChangeKind.UPLOAD
        elif local_digest is None:
            if policy is RemoteMissingPolicy.DELETE:
                kind = ChangeKind.DELETE
            else:
                kind = ChangeKind.DOWNLOAD
        elif local_digest != remote_digest:
            kind = ChangeKind.CONFLICT
        else:
            continue

        changes.append(ChangeOp(kind=kind, path=path))

    return changes


def tombstoned_local_paths(local: Snapshot, remote: Snapshot) -> list[str]:
    """Local-only paths carrying a remote tombstone, sorted.

    These are the paths whose modification time ``plan()`` needs under
    ``HONOR_TOMBSTONES``.
    """
    return sorted(
        path
        for path in local.files
        if path not in remote.files and path in remote.deleted_files
    )
