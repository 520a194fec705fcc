"""In-process blob store.

Backs the test suite and local dry experiments.  Versions are
monotonically increasing strings so conditional writes behave like S3
ETag preconditions.
"""

from __future__ import annotations

import itertools
import threading

from ..errors import NotFoundError, SnapshotVersionConflict


class InMemoryBlobStore:
    """Thread-safe dict-backed ``BlobStore``."""

    def __init__(self, blobs: dict[str, bytes] | None = None) -> None:
        self._lock = threading.Lock()
        self._counter = itertools.count(1)
        self._blobs: dict[str, tuple[bytes, str]] = {}
        for key, data in (blobs or {}).items():
            self._blobs[key] = (bytes(data), self._next_version())

    def _next_version(self) -> str:
        return f"v{next(self._counter)}"

    def get(self, key: str) -> bytes:
        return self.get_versioned(key)[0]

    def get_versioned(self, key: str) -> tuple[bytes, str | None]:
        with self._lock:
            try:
                data, version = self._blobs[key]
            except KeyError:
                raise NotFoundError(f"No such key: {key}", key=key) from None
            return data, version

    def put(
        self,
        key: str,
        data: bytes,
        *,
        if_match: str | None = None,
        if_none_match: bool = False,
    ) -> str | None:
        with self._lock:
            current = self._blobs.get(key)
            if if_none_match and current is not None:
                raise SnapshotVersionConflict(
                    f"Key {key} already exists", key=key
                )
            if if_match is not None and (
                current is None or current[1] != if_match
            ):
                raise SnapshotVersionConflict(
                    f"Key {key} changed (expected version {if_match})",
                    key=key,
                )
            version = self._next_version()
            self._blobs[key] = (bytes(data), version)
            return version

    def delete(self, key: str) -> None:
        with self._lock:
            self._blobs.pop(key, None)

    def check_access(self) -> None:
        return None

    def keys(self) -> list[str]:
        """Return all stored keys, sorted."""
        with self._lock:
            return sorted(self._blobs)
