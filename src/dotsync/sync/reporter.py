"""Sync report formatting functions.

Provides human-readable and machine-readable output for sync operations:

- ``generate_commit_message`` -- commit message for a batch of pushes.
- ``format_summary`` -- one-line (or few-line) outcome of a batch run.
- ``format_sync_report`` -- full post-sync summary.
- ``format_detection`` -- status listing grouped by mode and state.
- ``format_machines`` / ``format_restorable`` / ``format_restore_result``
  -- restore listings and outcomes.
- ``report_to_json`` -- structured dict for ``--json`` output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .hashing import quick_hash
from .models import FileInfo, FileState, SyncOutcome

if TYPE_CHECKING:
    from .models import (
        DetectionResult,
        Machine,
        RestorableFile,
        RestoreResult,
        SyncReport,
    )

_MAX_APPS_IN_MESSAGE = 3

_STATE_LABELS: dict[FileState, str] = {
    FileState.SYNCED: "synced",
    FileState.LOCAL_MODIFIED: "modified locally",
    FileState.REMOTE_MODIFIED: "updated remotely",
    FileState.CONFLICT: "conflict",
    FileState.LOCAL_NEW: "new locally",
    FileState.REMOTE_NEW: "new remotely",
    FileState.DELETED: "deleted",
}

# ------------------------------------------------------------------
# Commit message
# ------------------------------------------------------------------


def generate_commit_message(files: list[FileInfo]) -> str:
    """Build the commit message for a set of pushed files.

    * no files: ``sync: update configs``
    * one app: ``sync: update <app> (<n> files)``
    * several: ``sync: update a, b, c +K more`` (suffix only when K > 0)

    Apps are listed in first-seen order.
    """
    if not files:
        return "sync: update configs"

    apps: list[str] = []
    for f in files:
        if f.app_id not in apps:
            apps.append(f.app_id)

    if len(apps) == 1:
        return f"sync: update {apps[0]} ({len(files)} files)"

    listed = ", ".join(apps[:_MAX_APPS_IN_MESSAGE])
    extra = len(apps) - _MAX_APPS_IN_MESSAGE
    if extra > 0:
        listed += f" +{extra} more"
    return f"sync: update {listed}"


# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_summary(report: SyncReport) -> str:
    """Short outcome text for a batch run."""
    if report.outcome == SyncOutcome.FAILED:
        return f"Error: {report.error}"
    if report.outcome == SyncOutcome.SYNCED:
        return "All files are in sync"
    if report.outcome == SyncOutcome.BACKED_UP:
        return f"Backed up {len(report.backed_up)} files"

    parts: list[str] = []
    if report.backed_up:
        parts.append(f"Backed up: {len(report.backed_up)} files")
    if report.pending_push:
        parts.append(f"{len(report.pending_push)} modified (push)")
    if report.pending_pull:
        parts.append(f"{len(report.pending_pull)} outdated (pull)")
    if report.pending_conflicts:
        parts.append(f"{len(report.pending_conflicts)} conflicts")
    if not parts:
        return "No changes"
    return "\n".join(parts)


def format_sync_report(report: SyncReport) -> str:
    """Format a complete batch report as human-readable text.

    Sections are only included when they contain at least one entry.

    Args:
        report: The completed sync report.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []
    lines.append(f"Sync report ({report.outcome.value})")
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    if report.fetched:
        lines.append("Fetched remote changes")
    lines.append("")

    lines.append(format_summary(report))
    lines.append("")

    if report.backed_up:
        lines.append("Backed up:")
        for r in report.backed_up:
            lines.append(f"  {r.file.app_id}/{r.file.rel_path}")
        lines.append("")

    if report.pending:
        lines.append("Needs attention (sync mode):")
        for f in report.pending:
            lines.append(f"  {_describe(f)}")
        lines.append("")

    if report.errors:
        lines.append("Errors:")
        for r in report.errors:
            lines.append(
                f"  {r.file.app_id}/{r.file.rel_path}: {r.error}"
            )
        lines.append("")

    if report.committed and report.commit_message:
        lines.append(f"Committed: {report.commit_message}")
        lines.append("")

    return "\n".join(lines).rstrip()


def format_detection(detection: DetectionResult) -> str:
    """Format a detection pass grouped by mode.

    Each file is shown as ``app/file: state`` with short digests when
    both replicas exist.
    """
    lines: list[str] = [detection.summary(), ""]

    groups = [
        ("Backup mode:", [f for f in detection.files if not f.synced]),
        ("Sync mode:", detection.sync_files),
    ]
    for title, files in groups:
        if not files:
            continue
        lines.append(title)
        for f in files:
            lines.append(f"  {_describe(f)}")
        lines.append("")

    return "\n".join(lines).rstrip()


def _describe(f: FileInfo) -> str:
    if f.state is None:
        return f"{f.app_id}/{f.rel_path}: error: {f.error}"
    text = f"{f.app_id}/{f.rel_path}: {_STATE_LABELS[f.state]}"
    if f.local_hash and f.remote_hash and f.local_hash != f.remote_hash:
        text += (
            f" (local {quick_hash(f.local_hash)}, "
            f"remote {quick_hash(f.remote_hash)})"
        )
    return text


# ------------------------------------------------------------------
# Restore
# ------------------------------------------------------------------


def format_machines(machines: list[Machine], current: str) -> str:
    """List registered machines, marking *current* with ``*``."""
    if not machines:
        return "No machines registered yet"
    lines = []
    for m in machines:
        marker = "*" if m.name == current else " "
        lines.append(f"{marker} {m.name}  last sync: {m.last_sync or 'never'}")
    return "\n".join(lines)


def format_restorable(machine: str, files: list[RestorableFile]) -> str:
    if not files:
        return f"{machine} has no backups of tracked files"
    lines = [f"Restorable from {machine}:"]
    for f in files:
        lines.append(
            f"  {f.app_id}/{f.rel_path}: {f.status} ({f.size} bytes, {f.modified_at})"
        )
    return "\n".join(lines)


def format_restore_result(result: RestoreResult) -> str:
    """Restored files (with kept copies) followed by failures."""
    if not result.restored and not result.failures:
        return f"Nothing to restore from {result.source_machine}"
    lines: list[str] = []
    for f in result.restored:
        line = f"Restored {f.app_id}/{f.rel_path} from {result.source_machine}"
        if f.saved_copy:
            line += f" (previous copy: {f.saved_copy})"
        lines.append(line)
    for failure in result.failures:
        lines.append(f"Failed {failure.target}: {failure.error}")
    return "\n".join(lines)


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: SyncReport) -> dict:
    """Convert a sync report to a structured dict for JSON serialisation.

    Args:
        report: The sync report.

    Returns:
        Dict with outcome, counts, and per-file details.
    """
    results_list = []
    for r in report.results:
        entry: dict = {
            "app_id": r.file.app_id,
            "rel_path": r.file.rel_path,
            "action": r.action.value,
            "success": r.success,
        }
        if r.error:
            entry["error"] = r.error
        results_list.append(entry)

    pending_list = [
        {
            "app_id": f.app_id,
            "rel_path": f.rel_path,
            "state": f.state.value if f.state else None,
        }
        for f in report.pending
    ]

    return {
        "outcome": report.outcome.value,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "fetched": report.fetched,
        "committed": report.committed,
        "commit_message": report.commit_message,
        "error": report.error,
        "counts": {
            "total": len(report.detection.files),
            "backed_up": len(report.backed_up),
            "pending_push": len(report.pending_push),
            "pending_pull": len(report.pending_pull),
            "conflicts": len(report.pending_conflicts),
            "errors": len(report.errors),
        },
        "results": results_list,
        "pending": pending_list,
    }
