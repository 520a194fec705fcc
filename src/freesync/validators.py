"""
Input validation for sync paths.

Paths travel between the local tree, snapshot records and blob keys, so
every path taken from the remote side is checked here before it is
allowed to touch the local filesystem.
"""

from fnmatch import fnmatch

DEFAULT_SNAPSHOT_KEY = "current_snapshot"


def format_validation_error(field_name: str, reason: str) -> str:
    """
    Generate consistent error message for validation failures.

    Args:
        field_name: Human-readable field name (e.g., "Sync path")
        reason: Description of validation failure (e.g., "cannot be empty")

    Returns:
        Formatted error message string
    """
    return f"{field_name} {reason}"


def validate_sync_path(
    path: str, snapshot_key: str = DEFAULT_SNAPSHOT_KEY
) -> tuple[bool, str]:
    """
    Validate a vault-relative sync path.

    Args:
        path: The path to validate (POSIX separators, relative to the vault)
        snapshot_key: Reserved blob key that no file may use

    Returns:
        Tuple of (is_valid, error_message).
        Returns (True, "") if valid, (False, reason) if invalid.

    Validation rules:
        - Cannot be empty or whitespace-only
        - Cannot be absolute or use backslashes
        - Cannot contain '.' or '..' segments (path traversal protection)
        - Cannot have empty path segments (e.g., 'notes//a.md')
        - Cannot equal the reserved snapshot key
    """
    if not path or not path.strip():
        return (
            False,
            format_validation_error("Sync path", "cannot be empty"),
        )

    if path.startswith("/") or "\\" in path:
        return (
            False,
            format_validation_error(
                "Sync path", f"must be relative with '/' separators: {path!r}"
            ),
        )

    segments = path.split("/")
    if any(seg in (".", "..") for seg in segments):
        return (
            False,
            format_validation_error(
                "Sync path", f"cannot contain '.' or '..': {path!r}"
            ),
        )

    if any(seg == "" for seg in segments):
        return (
            False,
            format_validation_error(
                "Sync path", f"cannot have empty path segments: {path!r}"
            ),
        )

    if path == snapshot_key:
        return (
            False,
            format_validation_error(
                "Sync path", f"collides with reserved key '{snapshot_key}'"
            ),
        )

    return (True, "")


def is_excluded(path: str, patterns: list[str]) -> bool:
    """Return ``True`` if *path* matches any of the exclude globs.

    A pattern ending in ``/**`` also matches the directory prefix itself,
    so ``.git/**`` excludes everything below ``.git/``.
    """
    for pattern in patterns:
        if fnmatch(path, pattern):
            return True
        if pattern.endswith("/**") and (
            path == pattern[:-3] or path.startswith(pattern[:-2])
        ):
            return True
    return False
