"""Unified configuration schema for freesync.

Defines Pydantic models for the unified config structure with dedicated
sections for the storage connection, sync behaviour and logging.  Includes
an adapter to the ``Config`` dataclass used to build the blob store.

Usage:
    from freesync.config_schema import build_config, to_legacy_config

    raw = load_hierarchical_config()
    unified = build_config(raw)
    legacy = to_legacy_config(unified, cli_overrides={"bucket": "notes"})
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, Field

from .validators import DEFAULT_SNAPSHOT_KEY

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class StorageConfig(BaseModel):
    """Remote bucket connection settings.

    All fields are optional here so env vars and CLI args can supply
    them at runtime; ``load_config()`` enforces the required ones.
    """

    endpoint: str | None = Field(
        default=None, description="S3-compatible endpoint URL"
    )
    access_key_id: str | None = Field(
        default=None, description="Access key id"
    )
    secret_access_key: str | None = Field(
        default=None, description="Secret access key"
    )
    bucket: str | None = Field(default=None, description="Bucket name")
    region: str | None = Field(
        default=None, description="Signing region (R2 uses 'auto')"
    )
    vault_path: str | None = Field(
        default=None, description="Local directory to sync"
    )

    model_config = {"frozen": True}


ConflictStrategy = Literal["local-wins", "preserve-remote", "remote-wins"]
RemoteMissingPolicyName = Literal["download", "delete", "honor-tombstones"]


class SyncSettings(BaseModel):
    """Behaviour of the reconciliation engine.

    Attributes:
        conflict_strategy: Policy applied to every Conflict op.
            ``local-wins`` (default) overwrites the remote version.
        remote_missing: What a path present only remotely means.
        conflict_suffix: Suffix of the sibling written by ``preserve-remote``.
        debounce_window: Coalescing window for file events (seconds).
        leading_edge: Execute the first event of a burst immediately.
        max_parallel_transfers: Worker pool size for hashing and transfers.
        operation_timeout: Per blob operation timeout (seconds).
        retry_attempts: Tries per blob operation on transient failures.
        retry_base_delay: First backoff delay (seconds).
        max_replans: Full-sync restarts allowed after a lost snapshot race.
        tombstone_ttl_days: Age after which tombstones are pruned.
        snapshot_key: Reserved blob key holding the snapshot.
        exclude: Glob patterns of local paths never synced.
    """

    conflict_strategy: ConflictStrategy = "local-wins"
    remote_missing: RemoteMissingPolicyName = "download"
    conflict_suffix: str = Field(default=".remote", min_length=1)
    debounce_window: float = Field(default=1.0, ge=0, le=60)
    leading_edge: bool = True
    max_parallel_transfers: int = Field(default=8, ge=1, le=32)
    operation_timeout: float = Field(default=60.0, gt=0)
    retry_attempts: int = Field(default=3, ge=1, le=10)
    retry_base_delay: float = Field(default=0.5, ge=0)
    max_replans: int = Field(default=3, ge=0, le=10)
    tombstone_ttl_days: int = Field(default=30, ge=1)
    snapshot_key: str = Field(default=DEFAULT_SNAPSHOT_KEY, min_length=1)
    exclude: list[str] = Field(
        default_factory=lambda: [".freesync/**", ".git/**"]
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL);
            ``None`` keeps the per-mode default.
        file: Optional log file path.
    """

    level: str | None = Field(default=None, description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has defaults, so ``UnifiedConfig()`` is always valid.
    """

    storage: StorageConfig = Field(default_factory=StorageConfig)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Missing sections get defaults; unknown sections are ignored.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


def to_legacy_config(
    unified: UnifiedConfig,
    cli_overrides: dict | None = None,
) -> Config:
    """Convert a ``UnifiedConfig`` into the ``Config`` dataclass,
    applying CLI overrides on top and validating the result.

    CLI overrides dict keys: endpoint, access_key_id, secret_access_key,
    bucket, vault_path.  Environment variables are consulted between the
    overrides and the YAML values, exactly as in ``load_config()``.

    Raises:
        ValueError: If a required field is missing or invalid.
    """
    from .config import load_config

    overrides = cli_overrides or {}
    fallbacks = {
        k: v
        for k, v in unified.storage.model_dump().items()
        if v is not None
    }

    return load_config(
        endpoint=overrides.get("endpoint"),
        access_key_id=overrides.get("access_key_id"),
        secret_access_key=overrides.get("secret_access_key"),
        bucket=overrides.get("bucket"),
        vault_path=overrides.get("vault_path"),
        yaml_fallbacks=fallbacks,
    )
