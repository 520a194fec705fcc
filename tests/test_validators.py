"""Tests for freesync.validators -- sync path rules and exclude globs."""

import pytest

from freesync.validators import (
    DEFAULT_SNAPSHOT_KEY,
    format_validation_error,
    is_excluded,
    validate_sync_path,
)


class TestValidateSyncPath:
    """Tests for validate_sync_path()."""

    @pytest.mark.parametrize(
        "path",
        ["a.md", "notes/today.md", "deep/nested/dir/file.bin", ".hidden"],
    )
    def test_valid_paths(self, path):
        assert validate_sync_path(path) == (True, "")

    @pytest.mark.parametrize(
        "path, fragment",
        [
            ("", "cannot be empty"),
            ("   ", "cannot be empty"),
            ("/etc/passwd", "must be relative"),
            ("notes\\a.md", "must be relative"),
            ("../escape.md", "cannot contain '.' or '..'"),
            ("notes/../../x", "cannot contain '.' or '..'"),
            ("./a.md", "cannot contain '.' or '..'"),
            ("notes//a.md", "empty path segments"),
            ("notes/", "empty path segments"),
        ],
    )
    def test_invalid_paths(self, path, fragment):
        ok, reason = validate_sync_path(path)
        assert not ok
        assert fragment in reason
        assert reason.startswith("Sync path ")

    def test_reserved_snapshot_key_rejected(self):
        ok, reason = validate_sync_path(DEFAULT_SNAPSHOT_KEY)
        assert not ok
        assert "reserved key" in reason

    def test_custom_snapshot_key(self):
        assert validate_sync_path(DEFAULT_SNAPSHOT_KEY, "meta/snap")[0]
        assert not validate_sync_path("meta/snap", "meta/snap")[0]


class TestIsExcluded:
    """Tests for is_excluded()."""

    def test_directory_glob_matches_contents(self):
        assert is_excluded(".git/HEAD", [".git/**"])
        assert is_excluded(".git/refs/heads/main", [".git/**"])

    def test_directory_glob_matches_directory_itself(self):
        assert is_excluded(".git", [".git/**"])

    def test_prefix_lookalike_not_excluded(self):
        assert not is_excluded(".gitignore", [".git/**"])

    def test_file_glob(self):
        assert is_excluded("notes/draft.tmp", ["*.tmp"])
        assert not is_excluded("notes/draft.md", ["*.tmp"])

    def test_no_patterns(self):
        assert not is_excluded("a.md", [])


def test_format_validation_error():
    assert (
        format_validation_error("Sync path", "cannot be empty")
        == "Sync path cannot be empty"
    )
