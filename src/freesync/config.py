"""Connection configuration for the remote bucket.

Reads the four storage settings from CLI args, environment variables,
.env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    FREESYNC_ENDPOINT: S3-compatible endpoint URL (required)
    FREESYNC_ACCESS_KEY_ID: Access key id (required)
    FREESYNC_SECRET_ACCESS_KEY: Secret access key (required)
    FREESYNC_BUCKET: Bucket name (optional, default: free-sync)
    FREESYNC_REGION: Signing region (optional, default: auto)
    FREESYNC_VAULT: Local directory to sync (optional, default: CWD)
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_BUCKET = "free-sync"


@dataclass
class Config:
    endpoint: str
    access_key_id: str
    secret_access_key: str
    bucket: str = DEFAULT_BUCKET
    region: str = "auto"
    vault_path: Path = field(default_factory=Path.cwd)


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Runs once when the engine is built; individual operations do not
    re-validate.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If the endpoint is malformed or a required field is empty.
    """
    config.endpoint = config.endpoint.strip()

    if not config.endpoint.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid endpoint '{config.endpoint}': must start with http:// or https://"
        )

    parsed = urlparse(config.endpoint)
    if not parsed.hostname:
        raise ValueError(
            f"Invalid endpoint '{config.endpoint}': URL must include a hostname"
        )

    config.endpoint = config.endpoint.removesuffix("/")

    if not config.access_key_id.strip():
        raise ValueError(
            "Access key id cannot be empty. Set FREESYNC_ACCESS_KEY_ID environment variable."
        )

    if not config.secret_access_key.strip():
        raise ValueError(
            "Secret access key cannot be empty. Set FREESYNC_SECRET_ACCESS_KEY environment variable."
        )

    if not config.bucket.strip():
        raise ValueError(
            "Bucket name cannot be empty. Set FREESYNC_BUCKET environment variable."
        )

    if config.endpoint.startswith("http://"):
        logger.warning(
            "WARNING: endpoint %s is not using TLS; credentials are sent in clear text.",
            config.endpoint,
        )


def load_config(
    endpoint: str | None = None,
    access_key_id: str | None = None,
    secret_access_key: str | None = None,
    bucket: str | None = None,
    vault_path: str | Path | None = None,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        endpoint: Override endpoint URL.
        access_key_id: Override access key id.
        secret_access_key: Override secret access key.
        bucket: Override bucket name.
        vault_path: Override local directory to sync.
        yaml_fallbacks: Dict of values from the YAML ``storage`` section.
            Used as fallback when CLI arg and env var are both unset.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If a required value is missing after checking all
            sources, or fails validation.
    """
    fb = yaml_fallbacks or {}

    final_endpoint = (
        endpoint or os.getenv("FREESYNC_ENDPOINT") or fb.get("endpoint")
    )
    if not final_endpoint:
        raise ValueError(
            "Endpoint not found. Set FREESYNC_ENDPOINT environment variable, "
            "pass --endpoint CLI argument, or add 'endpoint' to config.yml."
        )

    final_key_id = (
        access_key_id
        or os.getenv("FREESYNC_ACCESS_KEY_ID")
        or fb.get("access_key_id")
    )
    if not final_key_id:
        raise ValueError(
            "Access key id not found. Set FREESYNC_ACCESS_KEY_ID environment variable, "
            "pass --access-key-id CLI argument, or add 'access_key_id' to config.yml."
        )

    final_secret = (
        secret_access_key
        or os.getenv("FREESYNC_SECRET_ACCESS_KEY")
        or fb.get("secret_access_key")
    )
    if not final_secret:
        raise ValueError(
            "Secret access key not found. Set FREESYNC_SECRET_ACCESS_KEY environment variable, "
            "pass --secret-access-key CLI argument, or add 'secret_access_key' to config.yml."
        )

    final_bucket = (
        bucket
        or os.getenv("FREESYNC_BUCKET")
        or fb.get("bucket")
        or DEFAULT_BUCKET
    )
    final_region = os.getenv("FREESYNC_REGION") or fb.get("region") or "auto"

    final_vault = (
        vault_path or os.getenv("FREESYNC_VAULT") or fb.get("vault_path")
    )

    config = Config(
        endpoint=final_endpoint.strip(),
        access_key_id=final_key_id.strip(),
        secret_access_key=final_secret.strip(),
        bucket=final_bucket.strip(),
        region=final_region.strip(),
        vault_path=Path(final_vault).expanduser() if final_vault else Path.cwd(),
    )

    validate_config(config)

    return config
