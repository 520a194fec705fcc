"""Tests for sync reporter formatting functions.

Covers:
- format_sync_report with various result combinations
- format_dry_run_preview formatting
- report_to_json structure and completeness
- Empty report produces concise output
"""

from __future__ import annotations

import json

from freesync.sync.models import (
    ChangeKind,
    PathResult,
    SkippedPath,
    SyncReport,
)
from freesync.sync.reporter import (
    format_dry_run_preview,
    format_sync_report,
    report_to_json,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_report(
    results: list[PathResult] | None = None,
    dry_run: bool = False,
    committed: bool = True,
    **kwargs,
) -> SyncReport:
    """Build a SyncReport with sensible defaults."""
    return SyncReport(
        dry_run=dry_run,
        results=results or [],
        started_at="2026-02-07T10:00:00Z",
        completed_at="2026-02-07T10:01:00Z",
        committed=committed and not dry_run,
        **kwargs,
    )


def _result(
    kind: ChangeKind,
    path: str = "notes/readme.md",
    success: bool = True,
    error: str | None = None,
    detail: str | None = None,
) -> PathResult:
    return PathResult(
        path=path, kind=kind, success=success, error=error, detail=detail
    )


# ---------------------------------------------------------------------------
# format_sync_report
# ---------------------------------------------------------------------------


class TestFormatSyncReport:
    """Tests for format_sync_report()."""

    def test_header_contains_trigger(self):
        text = format_sync_report(_make_report(trigger="event"))
        assert text.splitlines()[0] == "Sync report (event)"

    def test_dry_run_indicator_in_header(self):
        text = format_sync_report(_make_report(dry_run=True))
        assert "DRY RUN" in text

    def test_no_dry_run_indicator_when_false(self):
        assert "DRY RUN" not in format_sync_report(_make_report())

    def test_summary_line_counts(self):
        results = [
            _result(ChangeKind.UPLOAD, "a.md"),
            _result(ChangeKind.UPLOAD, "b.md"),
            _result(ChangeKind.DOWNLOAD, "c.md"),
            _result(ChangeKind.DELETE, "d.md"),
            _result(ChangeKind.CONFLICT, "e.md", detail="local"),
        ]
        text = format_sync_report(_make_report(results))
        assert (
            "Synced 5 files (ok): 2 uploaded, 1 downloaded, 1 deleted, "
            "1 conflicts, 0 errors"
        ) in text

    def test_sections_list_paths(self):
        results = [
            _result(ChangeKind.UPLOAD, "a.md"),
            _result(ChangeKind.CONFLICT, "e.md", detail="remote"),
        ]
        text = format_sync_report(_make_report(results))
        assert "Uploaded:\n  a.md" in text
        assert "Conflicts:\n  e.md (remote)" in text
        assert "Downloaded:" not in text

    def test_errors_section(self):
        results = [
            _result(
                ChangeKind.DOWNLOAD,
                "lost.md",
                success=False,
                error="No such key: lost.md",
            )
        ]
        text = format_sync_report(_make_report(results))
        assert "completed with errors" in text
        assert "Errors:\n  download lost.md: No such key: lost.md" in text

    def test_skipped_section(self):
        report = _make_report(
            skipped=[SkippedPath(path="locked.md", error="Permission denied")]
        )
        text = format_sync_report(report)
        assert "Skipped (unreadable): 1 files" in text
        assert "  locked.md: Permission denied" in text

    def test_commit_and_replans_shown(self):
        report = _make_report(
            committed_files=12, snapshot_version='"etag"', replans=2
        )
        text = format_sync_report(report)
        assert 'Committed snapshot: 12 files (version "etag")' in text
        assert "Replanned 2 time(s)" in text

    def test_failed_report(self):
        text = format_sync_report(_make_report(committed=False))
        assert "(FAILED)" in text
        assert "Committed snapshot" not in text

    def test_empty_report_is_concise(self):
        text = format_sync_report(_make_report())
        assert "Synced 0 files (ok)" in text
        assert not text.endswith("\n")


# ---------------------------------------------------------------------------
# format_dry_run_preview
# ---------------------------------------------------------------------------


class TestFormatDryRunPreview:
    """Tests for format_dry_run_preview()."""

    def test_groups_by_kind(self):
        results = [
            _result(ChangeKind.DOWNLOAD, "c.md"),
            _result(ChangeKind.UPLOAD, "a.md"),
            _result(ChangeKind.UPLOAD, "b.md"),
        ]
        text = format_dry_run_preview(_make_report(results, dry_run=True))

        assert text.startswith("DRY RUN -- No changes will be made")
        assert "[UPLOAD]\n  a.md\n  b.md" in text
        assert "[DOWNLOAD]\n  c.md" in text
        # Uploads listed before downloads
        assert text.index("[UPLOAD]") < text.index("[DOWNLOAD]")

    def test_no_changes(self):
        text = format_dry_run_preview(_make_report(dry_run=True))
        assert "No changes needed." in text

    def test_skipped_count(self):
        report = _make_report(
            dry_run=True,
            skipped=[SkippedPath(path="x", error="denied")],
        )
        assert "Skipped: 1 files (unreadable)" in format_dry_run_preview(
            report
        )


# ---------------------------------------------------------------------------
# report_to_json
# ---------------------------------------------------------------------------


class TestReportToJson:
    """Tests for report_to_json()."""

    def test_structure(self):
        results = [
            _result(ChangeKind.UPLOAD, "a.md"),
            _result(ChangeKind.CONFLICT, "b.md", detail="local"),
            _result(
                ChangeKind.DOWNLOAD, "c.md", success=False, error="boom"
            ),
        ]
        report = _make_report(
            results,
            skipped=[SkippedPath(path="d.md", error="denied")],
            committed_files=3,
            snapshot_version="v7",
        )

        data = report_to_json(report)

        assert data["trigger"] == "full"
        assert data["success"] is True
        assert data["degraded"] is True
        assert data["committed"] is True
        assert data["snapshot_version"] == "v7"
        assert data["counts"] == {
            "total": 3,
            "uploaded": 1,
            "downloaded": 1,
            "deleted": 0,
            "conflicts": 1,
            "errors": 1,
            "skipped": 1,
        }
        assert data["results"][0] == {
            "path": "a.md",
            "kind": "upload",
            "success": True,
        }
        assert data["results"][1]["detail"] == "local"
        assert data["results"][2]["error"] == "boom"
        assert data["skipped"] == [{"path": "d.md", "error": "denied"}]

    def test_is_json_serialisable(self):
        data = report_to_json(
            _make_report([_result(ChangeKind.DELETE, "x.md")])
        )
        assert json.loads(json.dumps(data)) == data
