"""
Hierarchical YAML configuration loader for freesync.

Discovers config files by convention, merges them with "project wins"
semantics and interpolates ``${VAR}`` references from the environment.

Usage:
    from freesync.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

# Matches ${VAR} and ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Replace ``${VAR}`` and ``${VAR:-default}`` patterns with env values.

    * ``${VAR}`` is replaced with ``os.environ.get(VAR, "")``.
    * ``${VAR:-default}`` uses *default* when VAR is unset or empty.
    """

    def _replace(match: re.Match) -> str:
        env_val = os.environ.get(match.group(1))
        if env_val:
            return env_val
        return match.group(2) or ""

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _interpolate_recursive(obj: Any) -> Any:
    """Walk a nested dict/list and interpolate env vars in all strings."""
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _interpolate_recursive(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_interpolate_recursive(item) for item in obj]
    return obj


def discover_config_files() -> list[Path]:
    """Return existing config file paths in precedence order (highest first).

    Search order:
        1. ``FREESYNC_CONFIG`` env var (explicit single path)
        2. ``.freesync/config.yml`` in CWD (project-level)
        3. ``~/.config/freesync/config.yml`` (XDG global)

    Only paths that exist on disk are returned.
    """
    candidates: list[Path] = []

    env_path = os.environ.get("FREESYNC_CONFIG")
    if env_path:
        candidates.append(Path(env_path).expanduser().resolve())

    candidates.append(Path.cwd() / ".freesync" / "config.yml")
    candidates.append(Path.home() / ".config" / "freesync" / "config.yml")

    return [p for p in candidates if p.exists()]


_STARTER_CONFIG = """\
# freesync configuration
#
# Connection settings can also come from environment variables:
#   FREESYNC_ENDPOINT, FREESYNC_ACCESS_KEY_ID, FREESYNC_SECRET_ACCESS_KEY,
#   FREESYNC_BUCKET
#
# storage:
#   endpoint: https://<account>.r2.cloudflarestorage.com
#   access_key_id: ${R2_ACCESS_KEY_ID}
#   secret_access_key: ${R2_SECRET_ACCESS_KEY}
#   bucket: free-sync
#   vault_path: ~/Notes
#
# sync:
#   conflict_strategy: local-wins     # local-wins | preserve-remote | remote-wins
#   remote_missing: download          # download | delete | honor-tombstones
#   debounce_window: 1.0
#   max_parallel_transfers: 8
#   exclude:
#     - ".freesync/**"
#     - ".git/**"
#
# logging:
#   level: INFO
#   file: null
"""


def ensure_config(target: Path | None = None) -> Path:
    """Ensure a config file exists, writing a commented starter if needed.

    Args:
        target: Explicit path to create.  Defaults to
            ``CWD / .freesync / config.yml``.

    Returns:
        Path to the config file (existing or newly created).
    """
    existing = discover_config_files()
    if existing:
        logger.debug("Config file already exists: %s", existing[0])
        return existing[0]

    config_path = target or Path.cwd() / ".freesync" / "config.yml"
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", config_path)

    return config_path


def load_hierarchical_config() -> dict[str, Any]:
    """Load and merge all discovered config files.

    Files are loaded from lowest precedence to highest; each file's
    top-level keys **replace** (not deep-merge) those from earlier files.
    Env var interpolation is applied after the merge.

    Returns an empty dict when no config files exist (zero-config).
    """
    paths = discover_config_files()

    if not paths:
        logger.debug("No config files found, using defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        with open(path, encoding="utf-8") as fh:
            data = yaml.safe_load(fh)

        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Config file %s has non-dict root (%s), skipping",
                path,
                type(data).__name__,
            )

    return _interpolate_recursive(merged)
