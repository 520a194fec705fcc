"""Tests for freesync.context -- SyncContext and the open_engine() lifecycle.

open_engine() is expected to:
- Merge config from CLI overrides, env vars and YAML
- Create the S3 store and validate bucket access
- Fail fast (RuntimeError) on config errors or an unreachable bucket
- Drain scheduled file events on a clean exit and cancel them on error
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from freesync.config_schema import StorageConfig, SyncSettings, UnifiedConfig
from freesync.context import SyncContext, build_scheduler, open_engine
from freesync.errors import UnauthorizedError
from freesync.sync.engine import SyncEngine
from freesync.sync.scheduler import ChangeScheduler
from freesync.tree import LocalFileTree

ENDPOINT = "https://account.r2.cloudflarestorage.com"


def _unified(vault, **sync):
    return UnifiedConfig(
        storage=StorageConfig(
            endpoint=ENDPOINT,
            access_key_id="key-id",
            secret_access_key="secret",
            vault_path=str(vault),
        ),
        sync=SyncSettings(**sync),
    )


@pytest.fixture(autouse=True)
def _isolated_cwd(tmp_path, monkeypatch):
    # Keep a developer's .env and .freesync/ out of the lifecycle tests
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))


# -------------------------------------------------------------------------
# SyncContext
# -------------------------------------------------------------------------


class TestSyncContext:
    """Tests for the SyncContext dataclass."""

    def test_limiter_built_from_settings(self, memory_tree, store):
        ctx = SyncContext(
            tree=memory_tree,
            store=store,
            settings=SyncSettings(max_parallel_transfers=3),
        )
        assert ctx.limiter.max_parallel == 3

    def test_explicit_limiter_kept(self, memory_tree, store):
        limiter = MagicMock()
        ctx = SyncContext(tree=memory_tree, store=store, limiter=limiter)
        assert ctx.limiter is limiter

    def test_build_scheduler_uses_settings(self, memory_tree, store):
        engine = SyncEngine(
            SyncContext(
                tree=memory_tree,
                store=store,
                settings=SyncSettings(debounce_window=2.5, leading_edge=False),
            )
        )

        scheduler = build_scheduler(engine)

        assert scheduler.window == 2.5
        assert scheduler.leading_edge is False
        assert scheduler.handler == engine.on_file_event


# -------------------------------------------------------------------------
# open_engine() -- startup
# -------------------------------------------------------------------------


class TestOpenEngineSuccess:
    """Tests for the happy path through open_engine()."""

    async def test_builds_engine_over_vault(self, vault):
        with (
            patch("freesync.context.S3BlobStore") as mock_store_cls,
            patch("freesync.context._stderr_print"),
        ):
            async with open_engine(unified=_unified(vault)) as (
                engine,
                scheduler,
            ):
                assert isinstance(engine, SyncEngine)
                assert isinstance(scheduler, ChangeScheduler)
                assert engine.context.store is mock_store_cls.return_value
                assert isinstance(engine.context.tree, LocalFileTree)
                assert engine.context.tree.root == vault.resolve()

        mock_store_cls.return_value.check_access.assert_called_once_with()
        config = mock_store_cls.call_args[0][0]
        assert config.endpoint == ENDPOINT
        assert config.bucket == "free-sync"

    async def test_cli_overrides_applied(self, vault):
        with patch("freesync.context.S3BlobStore") as mock_store_cls:
            async with open_engine(
                config_overrides={"bucket": "other-bucket"},
                unified=_unified(vault),
            ):
                pass

        assert mock_store_cls.call_args[0][0].bucket == "other-bucket"

    async def test_settings_flow_into_tree_and_store(self, vault):
        unified = _unified(
            vault,
            exclude=["*.tmp"],
            snapshot_key="meta/snapshot",
            operation_timeout=12,
        )
        with patch("freesync.context.S3BlobStore") as mock_store_cls:
            async with open_engine(unified=unified) as (engine, _):
                tree = engine.context.tree
                assert tree.exclude == ["*.tmp"]
                assert tree.snapshot_key == "meta/snapshot"
                assert engine.ops.snapshot_key == "meta/snapshot"

        assert mock_store_cls.call_args[1]["read_timeout"] == 12

    async def test_discovers_yaml_when_unified_omitted(
        self, vault, tmp_path
    ):
        cfg = tmp_path / ".freesync" / "config.yml"
        cfg.parent.mkdir()
        cfg.write_text(
            f"storage:\n"
            f"  endpoint: {ENDPOINT}\n"
            f"  access_key_id: yaml-key\n"
            f"  secret_access_key: yaml-secret\n"
            f"  vault_path: {vault}\n"
            f"sync:\n"
            f"  conflict_strategy: remote-wins\n"
        )

        with patch("freesync.context.S3BlobStore") as mock_store_cls:
            async with open_engine() as (engine, _):
                assert engine.settings.conflict_strategy == "remote-wins"

        assert mock_store_cls.call_args[0][0].access_key_id == "yaml-key"


# -------------------------------------------------------------------------
# open_engine() -- failures and shutdown
# -------------------------------------------------------------------------


class TestOpenEngineFailures:
    """Tests for fail-fast startup and shutdown behaviour."""

    async def test_missing_endpoint_raises_runtime_error(self, vault):
        unified = UnifiedConfig(
            storage=StorageConfig(
                access_key_id="k", secret_access_key="s", vault_path=str(vault)
            )
        )
        with (
            patch("freesync.context.S3BlobStore") as mock_store_cls,
            patch("freesync.context._stderr_print") as mock_print,
        ):
            with pytest.raises(RuntimeError, match="Configuration error"):
                async with open_engine(unified=unified):
                    pass

        mock_store_cls.assert_not_called()
        assert "Endpoint not found" in mock_print.call_args[0][0]

    async def test_bucket_unreachable_raises_runtime_error(self, vault):
        with (
            patch("freesync.context.S3BlobStore") as mock_store_cls,
            patch("freesync.context._stderr_print") as mock_print,
        ):
            mock_store_cls.return_value.check_access.side_effect = (
                UnauthorizedError("Access denied")
            )
            with pytest.raises(RuntimeError, match="Bucket access failed"):
                async with open_engine(unified=_unified(vault)):
                    pytest.fail("body must not run")

        assert "Cannot access bucket 'free-sync'" in mock_print.call_args[0][0]

    async def test_clean_exit_drains_scheduler(self, vault):
        with (
            patch("freesync.context.S3BlobStore"),
            patch.object(
                ChangeScheduler, "drain", new_callable=AsyncMock
            ) as mock_drain,
            patch.object(
                ChangeScheduler, "close", new_callable=AsyncMock
            ) as mock_close,
        ):
            async with open_engine(unified=_unified(vault)):
                pass

        mock_drain.assert_awaited_once()
        mock_close.assert_not_awaited()

    async def test_error_exit_closes_scheduler(self, vault):
        with (
            patch("freesync.context.S3BlobStore"),
            patch.object(
                ChangeScheduler, "drain", new_callable=AsyncMock
            ) as mock_drain,
            patch.object(
                ChangeScheduler, "close", new_callable=AsyncMock
            ) as mock_close,
        ):
            with pytest.raises(ValueError, match="boom"):
                async with open_engine(unified=_unified(vault)):
                    raise ValueError("boom")

        mock_close.assert_awaited_once()
        mock_drain.assert_not_awaited()
