"""Local file tree: enumerate, read, write, delete and watch the vault.

``FileTree`` is the contract the engine depends on; ``LocalFileTree`` is
the filesystem implementation.  Paths crossing this boundary are always
vault-relative POSIX strings (``notes/today.md``).
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Awaitable, Callable, Protocol

from watchfiles import Change, awatch

from .sync.models import FileEvent, FileEventKind
from .validators import DEFAULT_SNAPSHOT_KEY, is_excluded, validate_sync_path

logger = logging.getLogger(__name__)

EventCallback = Callable[[FileEvent], Awaitable[Any] | Any]

TEMP_PREFIX = ".freesync-"


class FileTree(Protocol):
    """Hierarchical local namespace the engine reconciles."""

    def enumerate(self) -> list[str]:
        """Return every syncable file path, sorted."""
        ...  # pragma: no cover

    def read(self, path: str) -> bytes:
        """Return the full content of *path*."""
        ...  # pragma: no cover

    def write(self, path: str, data: bytes) -> None:
        """Replace *path* with *data*, creating missing parents."""
        ...  # pragma: no cover

    def delete(self, path: str) -> None:
        """Remove *path*; removing an absent file is not an error."""
        ...  # pragma: no cover

    def make_dir(self, path: str) -> None:
        """Create one directory; raises ``FileExistsError`` if present."""
        ...  # pragma: no cover

    def exists(self, path: str) -> bool:
        """Return ``True`` if *path* is an existing file."""
        ...  # pragma: no cover

    def modified_at(self, path: str) -> int:
        """Last modification time of *path* in epoch milliseconds."""
        ...  # pragma: no cover

    async def watch(
        self,
        callback: EventCallback,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        """Deliver change events to *callback* until *stop_event* is set."""
        ...  # pragma: no cover


class LocalFileTree:
    """``FileTree`` rooted at a directory on disk.

    Args:
        root: Vault directory.
        exclude: Glob patterns (vault-relative) never enumerated or watched.
        snapshot_key: Reserved blob key; a file with that path is ignored.
        watch_debounce: Milliseconds watchfiles groups raw events for.
    """

    def __init__(
        self,
        root: Path,
        exclude: list[str] | None = None,
        snapshot_key: str = DEFAULT_SNAPSHOT_KEY,
        watch_debounce: int = 200,
    ) -> None:
        self.root = Path(root).expanduser().resolve()
        self.exclude = list(exclude or [])
        self.snapshot_key = snapshot_key
        self.watch_debounce = watch_debounce

    # ------------------------------------------------------------------
    # Path handling
    # ------------------------------------------------------------------

    def _resolve(self, path: str) -> Path:
        """Map a sync path to an absolute path inside the root.

        Raises:
            ValueError: If the path is invalid or escapes the root.
        """
        ok, reason = validate_sync_path(path, self.snapshot_key)
        if not ok:
            raise ValueError(reason)
        target = self.root / path
        if not target.resolve().is_relative_to(self.root):
            raise ValueError(
                f"Path escapes vault root: {path} -> {target.resolve()}"
            )
        return target

    def _to_sync_path(self, absolute: Path | str) -> str | None:
        """Convert an absolute path to a syncable sync path, or ``None``."""
        try:
            rel = Path(absolute).relative_to(self.root).as_posix()
        except ValueError:
            return None
        # In-progress atomic writes
        if Path(rel).name.startswith(TEMP_PREFIX):
            return None
        if is_excluded(rel, self.exclude):
            return None
        ok, reason = validate_sync_path(rel, self.snapshot_key)
        if not ok:
            logger.warning("Ignoring unsyncable path %s: %s", rel, reason)
            return None
        return rel

    # ------------------------------------------------------------------
    # FileTree operations
    # ------------------------------------------------------------------

    def enumerate(self) -> list[str]:
        paths: list[str] = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            base = Path(dirpath)
            # Prune excluded directories in place so os.walk skips them
            dirnames[:] = sorted(
                d
                for d in dirnames
                if not is_excluded(
                    (base / d).relative_to(self.root).as_posix(),
                    self.exclude,
                )
            )
            for name in filenames:
                sync_path = self._to_sync_path(base / name)
                if sync_path is not None:
                    paths.append(sync_path)
        return sorted(paths)

    def read(self, path: str) -> bytes:
        return self._resolve(path).read_bytes()

    def write(self, path: str, data: bytes) -> None:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(
            dir=str(target.parent), prefix=TEMP_PREFIX, suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            os.replace(tmp_path, target)
        except BaseException:
            # Clean up temp file on any failure.
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    def delete(self, path: str) -> None:
        self._resolve(path).unlink(missing_ok=True)

    def make_dir(self, path: str) -> None:
        self._resolve(path).mkdir()

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def modified_at(self, path: str) -> int:
        return self._resolve(path).stat().st_mtime_ns // 1_000_000

    # ------------------------------------------------------------------
    # Watching
    # ------------------------------------------------------------------

    def translate_changes(
        self, changes: set[tuple[Change, str]]
    ) -> list[FileEvent]:
        """Turn one batch of raw watchfiles changes into ``FileEvent``s.

        A batch containing exactly one deletion and one addition is
        reported as a single rename, which is how a move shows up on
        every platform watchfiles supports.
        """
        added: list[str] = []
        modified: list[str] = []
        deleted: list[str] = []

        for change, raw_path in changes:
            sync_path = self._to_sync_path(raw_path)
            if sync_path is None:
                continue
            if change == Change.deleted:
                deleted.append(sync_path)
            elif Path(raw_path).is_file():
                if change == Change.added:
                    added.append(sync_path)
                else:
                    modified.append(sync_path)

        if len(added) == 1 and len(deleted) == 1:
            events = [
                FileEvent(
                    kind=FileEventKind.RENAME,
                    path=added[0],
                    old_path=deleted[0],
                )
            ]
        else:
            events = [
                FileEvent(kind=FileEventKind.CREATE, path=p)
                for p in sorted(added)
            ]
            events += [
                FileEvent(kind=FileEventKind.DELETE, path=p)
                for p in sorted(deleted)
            ]
        events += [
            FileEvent(kind=FileEventKind.MODIFY, path=p)
            for p in sorted(modified)
        ]
        return events

    async def watch(
        self,
        callback: EventCallback,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        logger.info("Watching %s for changes", self.root)
        async for changes in awatch(
            self.root,
            debounce=self.watch_debounce,
            recursive=True,
            stop_event=stop_event,
        ):
            for event in self.translate_changes(changes):
                logger.debug("File event: %s %s", event.kind.value, event.path)
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
