"""Sync report formatting functions.

Provides human-readable and machine-readable output for sync runs:

- ``format_sync_report`` -- full post-sync summary.
- ``format_status`` -- one-paragraph view of a ``SyncStatus``.
- ``report_to_json`` / ``status_to_json`` -- structured dicts for MCP tool
  output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import SyncReport, SyncStatus

# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_sync_report(report: SyncReport) -> str:
    """Format a complete sync report as human-readable text.

    Sections are only included when they contain at least one result.
    Skipped entities are summarised by count only to avoid excessive output.

    Args:
        report: The completed sync report.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    lines.append(
        f"Sync report for config '{report.config_id}' ({report.state.value})"
    )
    lines.append(f"Started: {report.started_at.isoformat()}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at.isoformat()}")
    lines.append("")

    lines.append(
        f"Processed {len(report.results)} entities: "
        f"{len(report.uploaded)} uploaded, "
        f"{len(report.downloaded)} downloaded, "
        f"{len(report.conflicts)} conflicts, "
        f"{len(report.errors)} errors"
    )
    lines.append("")

    if report.uploaded:
        lines.append("Uploaded:")
        for r in report.uploaded:
            lines.append(f"  {r.entity_key}")
        lines.append("")

    if report.downloaded:
        lines.append("Downloaded:")
        for r in report.downloaded:
            lines.append(f"  {r.entity_key}")
        lines.append("")

    if report.conflicts:
        lines.append("Conflicts:")
        for r in report.conflicts:
            outcome = f"{r.winner} version kept" if r.winner else "unresolved"
            lines.append(f"  {r.entity_key}: {outcome}")
        lines.append("")

    if report.errors:
        lines.append("Errors:")
        for r in report.errors:
            lines.append(f"  {r.entity_key}: {r.error}")
        lines.append("")

    if report.skipped:
        lines.append(f"Skipped: {len(report.skipped)} entities")
        lines.append("")

    return "\n".join(lines).rstrip()


def format_status(status: SyncStatus) -> str:
    """Format a status snapshot as a few lines of text."""
    lines = [
        f"Config '{status.config_id}': {status.state.value}"
        + (f" ({status.progress:.0%})" if status.is_active else ""),
    ]
    if status.message:
        lines.append(f"  {status.message}")
    if status.last_attempt_at:
        lines.append(f"  Last attempt: {status.last_attempt_at.isoformat()}")
    if status.last_success_at:
        lines.append(f"  Last success: {status.last_success_at.isoformat()}")
    if status.total_items:
        lines.append(
            f"  Items: {status.completed_items}/{status.total_items} done, "
            f"{status.failed_items} failed"
        )
    if status.error_message:
        lines.append(f"  Error: {status.error_message}")
    return "\n".join(lines)


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: SyncReport) -> dict:
    """Convert a sync report to a structured dict for JSON serialisation.

    Suitable for MCP ``structuredContent`` output.

    Args:
        report: The sync report.

    Returns:
        Dict with config info, counts, and per-result details.
    """
    results_list = []
    for r in report.results:
        entry: dict = {
            "entity_key": r.entity_key,
            "action": r.action.value,
            "success": r.success,
        }
        if r.winner:
            entry["winner"] = r.winner
        if r.detail:
            entry["detail"] = r.detail
        if r.error:
            entry["error"] = r.error
        results_list.append(entry)

    return {
        "config_id": report.config_id,
        "state": report.state.value,
        "started_at": report.started_at.isoformat(),
        "completed_at": (
            report.completed_at.isoformat() if report.completed_at else None
        ),
        "counts": {
            "total": len(report.results),
            "uploaded": len(report.uploaded),
            "downloaded": len(report.downloaded),
            "conflicts": len(report.conflicts),
            "errors": len(report.errors),
            "skipped": len(report.skipped),
        },
        "results": results_list,
    }


def status_to_json(status: SyncStatus) -> dict:
    data = status.model_dump(mode="json")
    data["is_active"] = status.is_active
    return data
