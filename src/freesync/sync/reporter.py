"""Sync report formatting functions.

Provides human-readable and machine-readable output for sync operations:

- ``format_sync_report`` -- full post-sync summary.
- ``format_dry_run_preview`` -- dry-run preview grouped by operation.
- ``report_to_json`` -- structured dict for ``--json`` output.
"""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING

from .models import ChangeKind

if TYPE_CHECKING:
    from .models import SyncReport

_DISPLAY_ORDER = [
    ChangeKind.UPLOAD,
    ChangeKind.DOWNLOAD,
    ChangeKind.DELETE,
    ChangeKind.CONFLICT,
]

_SECTION_TITLES = {
    ChangeKind.UPLOAD: "Uploaded:",
    ChangeKind.DOWNLOAD: "Downloaded:",
    ChangeKind.DELETE: "Deleted:",
    ChangeKind.CONFLICT: "Conflicts:",
}

# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_sync_report(report: SyncReport) -> str:
    """Format a complete sync report as human-readable text.

    Sections are only included when they contain at least one result.

    Args:
        report: The completed sync report.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    # Header
    header = f"Sync report ({report.trigger})"
    if report.dry_run:
        header += " (DRY RUN)"
    lines.append(header)
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")

    # Summary line
    if not report.success:
        status = "FAILED"
    elif report.degraded:
        status = "completed with errors"
    else:
        status = "ok"
    lines.append(
        f"Synced {len(report.results)} files ({status}): "
        f"{len(report.uploads)} uploaded, {len(report.downloads)} downloaded, "
        f"{len(report.deletes)} deleted, {len(report.conflicts)} conflicts, "
        f"{len(report.errors)} errors"
    )
    if report.committed:
        lines.append(
            f"Committed snapshot: {report.committed_files} files "
            f"(version {report.snapshot_version})"
        )
    if report.replans:
        lines.append(f"Replanned {report.replans} time(s)")
    lines.append("")

    # Per-kind sections of successful results
    for kind in _DISPLAY_ORDER:
        done = [r for r in report.results if r.kind == kind and r.success]
        if not done:
            continue
        lines.append(_SECTION_TITLES[kind])
        for r in done:
            suffix = f" ({r.detail})" if r.detail else ""
            lines.append(f"  {r.path}{suffix}")
        lines.append("")

    if report.errors:
        lines.append("Errors:")
        for r in report.errors:
            lines.append(f"  {r.kind.value} {r.path}: {r.error}")
        lines.append("")

    if report.skipped:
        lines.append(f"Skipped (unreadable): {len(report.skipped)} files")
        for s in report.skipped:
            lines.append(f"  {s.path}: {s.error}")
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# Dry-run preview
# ------------------------------------------------------------------


def format_dry_run_preview(report: SyncReport) -> str:
    """Format a dry-run preview grouped by operation kind.

    Each planned op is shown as ``[KIND]`` followed by its paths.

    Args:
        report: A dry-run sync report (``dry_run=True``).

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []
    lines.append("DRY RUN -- No changes will be made")
    lines.append("")

    groups: dict[ChangeKind, list[str]] = defaultdict(list)
    for r in report.results:
        groups[r.kind].append(r.path)

    for kind in _DISPLAY_ORDER:
        if kind not in groups:
            continue
        lines.append(f"[{kind.value.upper()}]")
        for path in groups[kind]:
            lines.append(f"  {path}")
        lines.append("")

    if report.skipped:
        lines.append(f"Skipped: {len(report.skipped)} files (unreadable)")
        lines.append("")

    if not groups:
        lines.append("No changes needed.")
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: SyncReport) -> dict:
    """Convert a sync report to a structured dict for JSON serialisation.

    Args:
        report: The sync report.

    Returns:
        Dict with status, counts, and per-result details.
    """
    results_list = []
    for r in report.results:
        entry: dict = {
            "path": r.path,
            "kind": r.kind.value,
            "success": r.success,
        }
        if r.error:
            entry["error"] = r.error
        if r.detail:
            entry["detail"] = r.detail
        results_list.append(entry)

    return {
        "trigger": report.trigger,
        "dry_run": report.dry_run,
        "success": report.success,
        "degraded": report.degraded,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "committed": report.committed,
        "committed_files": report.committed_files,
        "snapshot_version": report.snapshot_version,
        "replans": report.replans,
        "counts": {
            "total": len(report.results),
            "uploaded": len(report.uploads),
            "downloaded": len(report.downloads),
            "deleted": len(report.deletes),
            "conflicts": len(report.conflicts),
            "errors": len(report.errors),
            "skipped": len(report.skipped),
        },
        "results": results_list,
        "skipped": [{"path": s.path, "error": s.error} for s in report.skipped],
    }
