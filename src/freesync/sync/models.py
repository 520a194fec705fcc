"""Pydantic models for the reconciliation engine.

Defines the core data contracts used across all sync modules:

- ``Snapshot``: hash state of every known path at one point in time.
- ``ChangeKind`` / ``ChangeOp``: one planned per-path operation.
- ``FileEventKind`` / ``FileEvent``: a local file-tree notification.
- ``SkippedPath``: a path left out of a snapshot capture.
- ``PathResult``: outcome of applying one operation.
- ``SyncReport``: aggregate outcome of one sync attempt.

All models are frozen (immutable).  A new state is always a new value.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class Snapshot(BaseModel):
    """Immutable map from sync path to content digest.

    Attributes:
        files: Path to hex digest.  Map keys make paths unique.
        deleted_files: Tombstones, path to deletion time in epoch
            milliseconds.  Serialized as ``deletedFiles``.
    """

    files: dict[str, str] = Field(default_factory=dict)
    deleted_files: dict[str, int] = Field(
        default_factory=dict, alias="deletedFiles"
    )

    model_config = {"frozen": True, "populate_by_name": True}

    @classmethod
    def empty(cls) -> Snapshot:
        """Snapshot of a store that has never been committed to."""
        return cls(files={}, deleted_files={})

    @classmethod
    def from_json(cls, data: bytes | str) -> Snapshot:
        """Parse the persisted record (``files`` + ``deletedFiles``)."""
        return cls.model_validate_json(data)

    def to_json(self) -> bytes:
        """Serialize to the persisted record format."""
        return self.model_dump_json(by_alias=True).encode("utf-8")


class ChangeKind(str, Enum):
    """Possible per-path operations of a ChangeSet."""

    UPLOAD = "upload"
    DOWNLOAD = "download"
    DELETE = "delete"
    CONFLICT = "conflict"


class ChangeOp(BaseModel):
    """One planned operation; carries exactly a kind and a path."""

    kind: ChangeKind
    path: str

    model_config = {"frozen": True}

    def __str__(self) -> str:
        return f"{self.kind.value}({self.path})"


class FileEventKind(str, Enum):
    """Kinds of local file-tree notifications."""

    CREATE = "create"
    MODIFY = "modify"
    DELETE = "delete"
    RENAME = "rename"


class FileEvent(BaseModel):
    """A single local change notification.

    Attributes:
        kind: What happened.
        path: Sync path affected (the new path for renames).
        old_path: Previous path, only set for renames.
    """

    kind: FileEventKind
    path: str
    old_path: str | None = None

    model_config = {"frozen": True}


class SkippedPath(BaseModel):
    """A path excluded from a snapshot because it could not be hashed."""

    path: str
    error: str

    model_config = {"frozen": True}


class PathResult(BaseModel):
    """Result of applying one operation.

    Attributes:
        path: Sync path.
        kind: Operation that was (or would be) applied.
        success: Whether the operation succeeded.
        error: Error message if the operation failed.
        detail: Extra outcome information (e.g. the conflict resolution).
        stored: Digest of the content the store holds for each key this
            operation wrote or read, keyed by path.
    """

    path: str
    kind: ChangeKind
    success: bool
    error: str | None = None
    detail: str | None = None
    stored: dict[str, str] = Field(default_factory=dict)

    model_config = {"frozen": True}


class SyncReport(BaseModel):
    """Aggregate report for one sync attempt.

    Attributes:
        trigger: ``"full"`` for an explicit sync, ``"event"`` for the
            incremental path.
        dry_run: Whether operations were only planned.
        results: Per-path results.
        skipped: Paths left out of the local capture.
        started_at: ISO 8601 timestamp when the attempt started.
        completed_at: ISO 8601 timestamp when it finished.
        committed: Whether a new snapshot was persisted.
        committed_files: Number of files in the committed snapshot.
        snapshot_version: Version marker of the committed snapshot.
        replans: Restarts caused by lost snapshot races.
    """

    trigger: str = "full"
    dry_run: bool = False
    results: list[PathResult] = []
    skipped: list[SkippedPath] = []
    started_at: str
    completed_at: str | None = None
    committed: bool = False
    committed_files: int = 0
    snapshot_version: str | None = None
    replans: int = 0

    model_config = {"frozen": True}

    def _of_kind(self, kind: ChangeKind) -> list[PathResult]:
        return [r for r in self.results if r.kind == kind]

    @property
    def uploads(self) -> list[PathResult]:
        """Results where kind is UPLOAD."""
        return self._of_kind(ChangeKind.UPLOAD)

    @property
    def downloads(self) -> list[PathResult]:
        """Results where kind is DOWNLOAD."""
        return self._of_kind(ChangeKind.DOWNLOAD)

    @property
    def deletes(self) -> list[PathResult]:
        """Results where kind is DELETE."""
        return self._of_kind(ChangeKind.DELETE)

    @property
    def conflicts(self) -> list[PathResult]:
        """Results where kind is CONFLICT."""
        return self._of_kind(ChangeKind.CONFLICT)

    @property
    def errors(self) -> list[PathResult]:
        """Results where success is False."""
        return [r for r in self.results if not r.success]

    @property
    def degraded(self) -> bool:
        """True when some path failed or was skipped during capture."""
        return bool(self.errors or self.skipped)

    @property
    def success(self) -> bool:
        """True when the attempt reached its end state.

        A dry run succeeds without committing; a real run must commit.
        """
        return self.dry_run or self.committed

    def summary(self) -> str:
        """Format a human-readable summary of the sync attempt.

        Returns:
            Multi-line summary string with counts by kind.
        """
        if not self.success:
            status = "FAILED"
        elif self.degraded:
            status = "ok (degraded)"
        else:
            status = "ok"
        lines = [
            f"Sync ({self.trigger}) {status}"
            + (" (dry run)" if self.dry_run else ""),
            f"  Uploaded:   {len(self.uploads)}",
            f"  Downloaded: {len(self.downloads)}",
            f"  Deleted:    {len(self.deletes)}",
            f"  Conflicts:  {len(self.conflicts)}",
            f"  Errors:     {len(self.errors)}",
            f"  Skipped:    {len(self.skipped)}",
            f"  Total:      {len(self.results)}",
        ]
        return "\n".join(lines)
