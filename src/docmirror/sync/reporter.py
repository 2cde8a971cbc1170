"""Sync report formatting functions.

Provides human-readable and machine-readable output for sync operations:

- ``format_sync_report`` -- full post-sync summary.
- ``format_dry_run_preview`` -- dry-run preview grouped by action.
- ``format_status`` -- state file summary for ``docmirror status``.
- ``report_to_json`` -- structured dict for ``--json`` output.
"""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING, Any

from .models import SyncAction

if TYPE_CHECKING:
    from .models import HierarchyNode, SyncReport

# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_sync_report(report: SyncReport) -> str:
    """Format a complete sync report as human-readable text.

    Sections are only included when they contain at least one result.
    Skipped files are summarised by count only to avoid excessive output.

    Args:
        report: The completed sync report.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    header = f"Sync report for '{report.scope}'"
    if report.dry_run:
        header += " (DRY RUN)"
    lines.append(header)
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    if report.duration is not None:
        lines.append(f"Duration: {report.duration:.1f}s")
    lines.append("")

    lines.append(
        f"Processed {len(report.results)} files: "
        f"{len(report.created)} created, {len(report.replaced)} replaced, "
        f"{len(report.skipped)} skipped, {len(report.failed)} failed"
    )
    lines.append("")

    if report.created:
        lines.append("Created:")
        for r in report.created:
            lines.append(f"  {r.file_path} -> {r.title} ({r.block_count} blocks)")
        lines.append("")

    if report.replaced:
        lines.append("Replaced:")
        for r in report.replaced:
            lines.append(f"  {r.file_path} -> {r.title} ({r.block_count} blocks)")
        lines.append("")

    if report.failed:
        lines.append("Failed:")
        for r in report.failed:
            lines.append(f"  {r.file_path}: {r.error}")
        lines.append("")

    if report.pruned:
        lines.append("Pruned (source file removed):")
        for path in report.pruned:
            lines.append(f"  {path}")
        lines.append("")

    if report.skipped:
        lines.append(f"Skipped: {len(report.skipped)} files (unchanged)")
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# Dry-run preview
# ------------------------------------------------------------------


def format_dry_run_preview(report: SyncReport) -> str:
    """Format a dry-run preview grouped by action type.

    Each candidate is shown as ``  path -> title``.
    """
    lines: list[str] = []
    lines.append("DRY RUN -- No changes will be made")
    lines.append(f"Scope: {report.scope}")
    lines.append("")

    groups: dict[SyncAction, list[Any]] = defaultdict(list)
    for r in report.results:
        groups[r.action].append(r)

    for action in (SyncAction.CREATE, SyncAction.REPLACE, SyncAction.FAIL):
        if action not in groups:
            continue
        lines.append(f"[{action.value.upper()}]")
        for r in groups[action]:
            if action == SyncAction.FAIL:
                lines.append(f"  {r.file_path}: {r.error}")
            else:
                lines.append(f"  {r.file_path} -> {r.title}")
        lines.append("")

    if report.pruned:
        lines.append("[PRUNE]")
        for path in report.pruned:
            lines.append(f"  {path}")
        lines.append("")

    skip_count = len(groups.get(SyncAction.SKIP, []))
    if skip_count > 0:
        lines.append(f"Skipped: {skip_count} files (unchanged)")
        lines.append("")

    if not any(a != SyncAction.SKIP for a in groups) and not report.pruned:
        lines.append("No changes needed.")
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# Status
# ------------------------------------------------------------------


def _format_tree(nodes: list[HierarchyNode], depth: int, lines: list[str]) -> None:
    for node in nodes:
        lines.append(f"{'  ' * depth}- {node.title} ({node.page_id})")
        _format_tree(node.children, depth + 1, lines)


def format_status(
    statistics: dict[str, Any],
    tree: list[HierarchyNode],
    upload_stats: dict[str, Any] | None = None,
    root_page_id: str | None = None,
    record_count: int = 0,
    last_sync_at: str | None = None,
) -> str:
    """Format the persisted sync state for ``docmirror status``."""
    lines = ["docmirror status", ""]
    lines.append(f"Root page: {root_page_id or '(not set)'}")
    lines.append(f"Tracked files: {record_count}")
    lines.append(f"Last sync: {last_sync_at or 'never'}")
    lines.append(f"Total syncs: {statistics.get('total_syncs', 0)}")
    if statistics.get("last_sync_duration") is not None:
        lines.append(f"Last sync duration: {statistics['last_sync_duration']:.1f}s")
    lines.append(f"Total blocks: {statistics.get('total_blocks', 0)}")

    if upload_stats:
        lines.append(
            f"Upload cache: {upload_stats.get('total_entries', 0)} entries, "
            f"{upload_stats.get('expired_entries', 0)} expired"
        )

    lines.append("")
    if tree:
        lines.append("Hierarchy:")
        _format_tree(tree, 1, lines)
    else:
        lines.append("Hierarchy: (empty)")
    return "\n".join(lines)


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: SyncReport) -> dict:
    """Convert a sync report to a structured dict for JSON serialisation.

    Args:
        report: The sync report.

    Returns:
        Dict with scope info, counts, and per-result details.
    """
    results_list = []
    for r in report.results:
        entry: dict = {
            "file_path": r.file_path,
            "title": r.title,
            "action": r.action.value,
            "success": r.success,
            "page_id": r.page_id,
            "block_count": r.block_count,
        }
        if r.previous_page_id:
            entry["previous_page_id"] = r.previous_page_id
        if r.error:
            entry["error"] = r.error
        results_list.append(entry)

    return {
        "scope": report.scope,
        "dry_run": report.dry_run,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "duration": report.duration,
        "counts": {
            "total": len(report.results),
            "created": len(report.created),
            "replaced": len(report.replaced),
            "skipped": len(report.skipped),
            "failed": len(report.failed),
            "pruned": len(report.pruned),
        },
        "results": results_list,
        "pruned": list(report.pruned),
    }
