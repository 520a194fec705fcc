"""Tests for freesync.sync.models -- snapshot record format and reports."""

import json

import pytest
from pydantic import ValidationError

from freesync.sync.models import (
    ChangeKind,
    ChangeOp,
    FileEvent,
    FileEventKind,
    PathResult,
    SkippedPath,
    Snapshot,
    SyncReport,
)


class TestSnapshot:
    """Tests for the persisted snapshot record."""

    def test_empty(self):
        snapshot = Snapshot.empty()
        assert snapshot.files == {}
        assert snapshot.deleted_files == {}

    def test_serialized_field_names(self):
        snapshot = Snapshot(files={"a.md": "ab12"}, deleted_files={"b": 5})
        assert json.loads(snapshot.to_json()) == {
            "files": {"a.md": "ab12"},
            "deletedFiles": {"b": 5},
        }

    def test_parses_record_without_tombstones(self):
        snapshot = Snapshot.from_json(b'{"files": {"a.md": "ab12"}}')
        assert snapshot.files == {"a.md": "ab12"}
        assert snapshot.deleted_files == {}

    def test_parses_tombstones_alias(self):
        snapshot = Snapshot.from_json(
            '{"files": {}, "deletedFiles": {"gone.md": 1700000000000}}'
        )
        assert snapshot.deleted_files == {"gone.md": 1700000000000}

    def test_rejects_wrong_types(self):
        with pytest.raises(ValidationError):
            Snapshot.from_json(b'{"files": ["a.md"]}')

    def test_frozen(self):
        snapshot = Snapshot.empty()
        with pytest.raises(ValidationError):
            snapshot.files = {"a": "b"}

    def test_equality_is_by_value(self):
        assert Snapshot(files={"a": "1"}) == Snapshot(files={"a": "1"})


class TestChangeOp:
    """Tests for ChangeOp."""

    def test_str(self):
        op = ChangeOp(kind=ChangeKind.UPLOAD, path="notes/a.md")
        assert str(op) == "upload(notes/a.md)"

    def test_kind_from_string(self):
        assert ChangeOp(kind="conflict", path="a").kind is ChangeKind.CONFLICT


class TestFileEvent:
    """Tests for FileEvent."""

    def test_old_path_defaults_to_none(self):
        event = FileEvent(kind=FileEventKind.MODIFY, path="a.md")
        assert event.old_path is None

    def test_rename_carries_old_path(self):
        event = FileEvent(
            kind=FileEventKind.RENAME, path="new.md", old_path="old.md"
        )
        assert event.old_path == "old.md"


class TestSyncReport:
    """Tests for SyncReport aggregation."""

    def _report(self, **kwargs):
        kwargs.setdefault("started_at", "2026-01-01T00:00:00+00:00")
        return SyncReport(**kwargs)

    def test_kind_filters(self):
        report = self._report(
            committed=True,
            results=[
                PathResult(path="a", kind=ChangeKind.UPLOAD, success=True),
                PathResult(path="b", kind=ChangeKind.DOWNLOAD, success=True),
                PathResult(path="c", kind=ChangeKind.DELETE, success=True),
                PathResult(
                    path="d",
                    kind=ChangeKind.CONFLICT,
                    success=False,
                    error="boom",
                ),
            ],
        )
        assert [r.path for r in report.uploads] == ["a"]
        assert [r.path for r in report.downloads] == ["b"]
        assert [r.path for r in report.deletes] == ["c"]
        assert [r.path for r in report.conflicts] == ["d"]
        assert [r.path for r in report.errors] == ["d"]
        assert report.degraded
        assert report.success

    def test_uncommitted_real_run_is_not_success(self):
        assert not self._report().success

    def test_dry_run_succeeds_without_commit(self):
        assert self._report(dry_run=True).success

    def test_skipped_marks_degraded(self):
        report = self._report(
            committed=True,
            skipped=[SkippedPath(path="x", error="Permission denied")],
        )
        assert report.degraded

    def test_summary(self):
        report = self._report(
            committed=True,
            results=[
                PathResult(path="a", kind=ChangeKind.UPLOAD, success=True)
            ],
        )
        summary = report.summary()
        assert summary.splitlines()[0] == "Sync (full) ok"
        assert "Uploaded:   1" in summary
        assert "Total:      1" in summary

    def test_summary_failed(self):
        assert self._report().summary().startswith("Sync (full) FAILED")
