"""Blob store contract.

The engine treats the remote side as an opaque keyed store of byte blobs.
File content lives under the file's sync path; the serialized snapshot
lives under one reserved key.  Implementations are synchronous and are
driven from worker threads by the engine.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class BlobStore(Protocol):
    """Keyed get/put/delete of byte blobs.

    Every method raises a ``freesync.errors.StorageError`` subclass on
    failure: ``NotFoundError`` for absent keys, ``UnauthorizedError`` for
    rejected credentials, ``TransientStorageError`` for retryable faults
    and ``SnapshotVersionConflict`` when a conditional put loses.
    """

    def get(self, key: str) -> bytes:
        """Return the full content stored under *key*."""
        ...  # pragma: no cover

    def get_versioned(self, key: str) -> tuple[bytes, str | None]:
        """Return ``(content, version_marker)`` for *key*.

        The version marker is opaque (an ETag for S3) and is only ever
        passed back to ``put(..., if_match=...)``.
        """
        ...  # pragma: no cover

    def put(
        self,
        key: str,
        data: bytes,
        *,
        if_match: str | None = None,
        if_none_match: bool = False,
    ) -> str | None:
        """Store *data* under *key* and return the new version marker.

        Args:
            key: Blob key.
            data: Complete content.
            if_match: Only write if the current version equals this marker.
            if_none_match: Only write if the key does not exist yet.
        """
        ...  # pragma: no cover

    def delete(self, key: str) -> None:
        """Remove *key*.  Deleting an absent key is not an error."""
        ...  # pragma: no cover

    def check_access(self) -> None:
        """Verify the store is reachable with the configured credentials."""
        ...  # pragma: no cover
