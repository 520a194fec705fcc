"""Shared pytest fixtures for freesync tests."""

import time

import pytest

from freesync.config import Config
from freesync.config_schema import SyncSettings
from freesync.context import SyncContext
from freesync.storage.memory import InMemoryBlobStore
from freesync.sync.engine import SyncEngine
from freesync.tree import LocalFileTree

_ENV_VARS = (
    "FREESYNC_ENDPOINT",
    "FREESYNC_ACCESS_KEY_ID",
    "FREESYNC_SECRET_ACCESS_KEY",
    "FREESYNC_BUCKET",
    "FREESYNC_REGION",
    "FREESYNC_VAULT",
    "FREESYNC_CONFIG",
    "LOG_LEVEL",
    "LOG_FILE",
)


class MemoryFileTree:
    """Dict-backed FileTree.

    ``fail_reads`` holds paths whose read raises ``PermissionError``,
    ``fail_writes`` paths whose write does.  ``mtimes`` maps paths to
    modification times in epoch milliseconds; unlisted files report 0.
    """

    def __init__(self, files=None):
        self.files = dict(files or {})
        self.dirs = set()
        self.fail_reads = set()
        self.fail_writes = set()
        self.make_dir_calls = []
        self.mtimes = {}
        for path in self.files:
            self._add_parents(path)

    def _add_parents(self, path):
        parts = path.split("/")[:-1]
        for depth in range(1, len(parts) + 1):
            self.dirs.add("/".join(parts[:depth]))

    def enumerate(self):
        return sorted(self.files)

    def read(self, path):
        if path in self.fail_reads:
            raise PermissionError(f"Permission denied: {path}")
        try:
            return self.files[path]
        except KeyError:
            raise FileNotFoundError(path) from None

    def write(self, path, data):
        if path in self.fail_writes:
            raise PermissionError(f"Permission denied: {path}")
        self._add_parents(path)
        self.files[path] = bytes(data)
        self.mtimes[path] = int(time.time() * 1000)

    def delete(self, path):
        self.files.pop(path, None)

    def make_dir(self, path):
        self.make_dir_calls.append(path)
        if path in self.dirs:
            raise FileExistsError(path)
        self.dirs.add(path)

    def exists(self, path):
        return path in self.files

    def modified_at(self, path):
        if path not in self.files:
            raise FileNotFoundError(path)
        return self.mtimes.get(path, 0)

    async def watch(self, callback, stop_event=None):
        if stop_event is not None:
            await stop_event.wait()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's FREESYNC_* and LOG_* variables out of tests."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def settings():
    """SyncSettings with retries that do not sleep."""
    return SyncSettings(retry_base_delay=0, operation_timeout=5)


@pytest.fixture
def store():
    return InMemoryBlobStore()


@pytest.fixture
def memory_tree():
    return MemoryFileTree()


@pytest.fixture
def vault(tmp_path):
    path = tmp_path / "vault"
    path.mkdir()
    return path


@pytest.fixture
def local_tree(vault):
    return LocalFileTree(vault, exclude=[".git/**"])


@pytest.fixture
def make_engine():
    """Factory building a SyncEngine over a tree and a store."""

    def _make(tree, store, **overrides):
        overrides.setdefault("retry_base_delay", 0)
        overrides.setdefault("operation_timeout", 5)
        return SyncEngine(
            SyncContext(
                tree=tree, store=store, settings=SyncSettings(**overrides)
            )
        )

    return _make


@pytest.fixture
def mock_config(tmp_path):
    """A valid Config pointing at a fake R2 endpoint."""
    return Config(
        endpoint="https://account.r2.cloudflarestorage.com",
        access_key_id="key-id",
        secret_access_key="secret",
        bucket="free-sync",
        vault_path=tmp_path,
    )

