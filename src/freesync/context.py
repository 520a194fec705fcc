"""Engine context and lifespan management.

``SyncContext`` bundles everything one engine instance operates on.  It
is built once and passed explicitly; nothing in the package keeps a
module-level engine, store or tree.

``open_engine()`` is the startup/shutdown lifecycle used by the CLI.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from dotenv import load_dotenv

from .config_loader import discover_config_files, load_hierarchical_config
from .config_schema import (
    SyncSettings,
    UnifiedConfig,
    build_config,
    to_legacy_config,
)
from .core.async_utils import ConcurrencyLimiter, run_sync
from .storage.base import BlobStore
from .storage.s3 import S3BlobStore
from .sync.engine import SyncEngine
from .sync.hasher import ContentHasher
from .sync.scheduler import ChangeScheduler
from .tree import FileTree, LocalFileTree

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback."""
    print(msg, file=sys.stderr, flush=True)


@dataclass
class SyncContext:
    """Collaborators of one ``SyncEngine``.

    Attributes:
        tree: Local file tree.
        store: Remote blob store.
        settings: Engine behaviour knobs.
        hasher: Content digest function.
        limiter: Worker pool for hashing and transfers; built from
            ``settings.max_parallel_transfers`` when omitted.
    """

    tree: FileTree
    store: BlobStore
    settings: SyncSettings = field(default_factory=SyncSettings)
    hasher: ContentHasher = field(default_factory=ContentHasher)
    limiter: ConcurrencyLimiter = None  # type: ignore[assignment]

    def __post_init__(self) -> None:
        if self.limiter is None:
            self.limiter = ConcurrencyLimiter(
                self.settings.max_parallel_transfers
            )


def build_scheduler(engine: SyncEngine) -> ChangeScheduler:
    """Scheduler feeding file events into *engine* per its settings."""
    settings = engine.settings
    return ChangeScheduler(
        engine.on_file_event,
        window=settings.debounce_window,
        leading_edge=settings.leading_edge,
    )


@asynccontextmanager
async def open_engine(
    config_overrides: dict[str, Any] | None = None,
    unified: UnifiedConfig | None = None,
) -> AsyncIterator[tuple[SyncEngine, ChangeScheduler]]:
    """
    Manage engine startup and shutdown lifecycle.

    On startup:
    - Load .env file (so values are available for env var lookups and YAML interpolation)
    - Load YAML config files if present (storage fallbacks and sync settings)
    - Merge all sources: CLI > env vars > .env > YAML > defaults
    - Create the S3 store and validate bucket access
    - Fail fast if the bucket is unreachable

    On shutdown:
    - Wait for scheduled file events to finish

    Args:
        config_overrides: Optional dict with config values from CLI
            (endpoint, access_key_id, secret_access_key, bucket, vault_path)
        unified: Pre-built configuration; discovered from disk when omitted.

    Yields:
        ``(engine, scheduler)`` sharing one ``SyncContext``.

    Raises:
        RuntimeError: If configuration is invalid or the bucket is unreachable.
    """
    try:
        # 1. Load .env early (before YAML, so ${VAR} interpolation can use .env values)
        load_dotenv()

        # 2. Load YAML config if present
        sources = []
        if unified is None:
            config_files = discover_config_files()
            unified = build_config(load_hierarchical_config())
            if config_files:
                sources.append(f"config file: {config_files[0]}")

        # 3. Resolve connection settings with all sources merged
        overrides = config_overrides or {}
        config = to_legacy_config(unified, cli_overrides=overrides)

        if overrides:
            sources.append("CLI arguments")
        sources.append("environment variables")
        logger.info("Configuration loaded from: %s", ", ".join(sources))
        logger.info(
            "Vault: %s -> %s/%s", config.vault_path, config.endpoint, config.bucket
        )
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        raise RuntimeError(f"Configuration error: {e}") from e

    settings = unified.sync
    store = S3BlobStore(config, read_timeout=settings.operation_timeout)

    logger.info("Validating bucket access...")
    try:
        await run_sync(store.check_access)
    except Exception as e:
        logger.error("Cannot access bucket %s: %s", config.bucket, e)
        _stderr_print(f"ERROR: Cannot access bucket '{config.bucket}': {e}")
        raise RuntimeError(
            f"Bucket access failed: {e}. Check FREESYNC_ENDPOINT, "
            "FREESYNC_ACCESS_KEY_ID, FREESYNC_SECRET_ACCESS_KEY, FREESYNC_BUCKET."
        ) from e

    tree = LocalFileTree(
        config.vault_path,
        exclude=settings.exclude,
        snapshot_key=settings.snapshot_key,
    )
    context = SyncContext(tree=tree, store=store, settings=settings)
    engine = SyncEngine(context)
    scheduler = build_scheduler(engine)

    try:
        yield engine, scheduler
    except BaseException:
        await scheduler.close()
        raise
    else:
        await scheduler.drain()
    finally:
        logger.info("Engine shut down")
