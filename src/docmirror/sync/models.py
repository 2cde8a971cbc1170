"""Pydantic models for the Notion sync engine.

Defines the data contracts used across the sync modules:

- ``SyncAction``: Terminal outcome of one file's sync.
- ``SyncRecord``: Persisted mapping of a source file to its remote page.
- ``UploadCacheEntry``: Persisted record of an uploaded asset.
- ``HierarchyNode``: One container page in the mirrored directory tree.
- ``FileResult``: Outcome of syncing one file.
- ``SyncReport``: Aggregate results for a sync run.

All models are frozen (immutable) for safety.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum

from pydantic import BaseModel


class SyncAction(str, Enum):
    """Terminal states of the per-file state machine."""

    CREATE = "create"
    REPLACE = "replace"
    SKIP = "skip"
    FAIL = "fail"


class SyncRecord(BaseModel):
    """Remote page currently mirroring one source file.

    Attributes:
        page_id: Live remote page id.
        content_hash: Normalised SHA-256 of the file at last sync.
        title: Page title used at last sync.
        block_count: Number of blocks uploaded.
        last_synced_at: ISO 8601 timestamp of the last successful sync.
        parent_id: Container page the page was created under.
    """

    page_id: str
    content_hash: str
    title: str
    block_count: int = 0
    last_synced_at: str
    parent_id: str | None = None

    model_config = {"frozen": True}


class UploadCacheEntry(BaseModel):
    """A file already uploaded to the destination, keyed by content hash.

    Attributes:
        remote_reference: Locator usable in a media block
            (``file_upload:<id>`` or a URL).
        uploaded_at: ISO 8601 upload timestamp.
        kind: ``image`` or ``file``.
        size_bytes: Uploaded payload size.
        file_name: Original file name.
    """

    remote_reference: str
    uploaded_at: str
    kind: str = "image"
    size_bytes: int = 0
    file_name: str | None = None

    model_config = {"frozen": True}

    def is_expired(self, ttl: timedelta, now: datetime | None = None) -> bool:
        uploaded = datetime.fromisoformat(self.uploaded_at)
        if uploaded.tzinfo is None:
            uploaded = uploaded.replace(tzinfo=timezone.utc)
        return (now or datetime.now(timezone.utc)) - uploaded >= ttl


class HierarchyNode(BaseModel):
    """A mirrored directory and its container page.

    Attributes:
        path_key: Slash-joined directory segments (e.g. ``guide/advanced``).
        page_id: Container page id.
        title: Last path segment, used for display.
        parent_path_key: ``path_key`` of the parent, ``None`` at top level.
        children: Nested nodes, populated by ``hierarchy_tree()``.
    """

    path_key: str
    page_id: str
    title: str
    parent_path_key: str | None = None
    children: list[HierarchyNode] = []

    model_config = {"frozen": True}


class FileResult(BaseModel):
    """Result of syncing one source file.

    Attributes:
        file_path: Path relative to the project root.
        title: Resolved page title.
        action: Terminal state reached.
        success: Whether the file reached a non-failed state.
        page_id: Remote page now mirroring the file.
        previous_page_id: Page archived by a replace.
        block_count: Number of blocks uploaded.
        error: Failure reason if the file failed.
    """

    file_path: str
    title: str | None = None
    action: SyncAction
    success: bool = True
    page_id: str | None = None
    previous_page_id: str | None = None
    block_count: int = 0
    error: str | None = None

    model_config = {"frozen": True}


class SyncReport(BaseModel):
    """Aggregate report for a sync run.

    Attributes:
        scope: What was synced (``docs``, a directory, or a file path).
        dry_run: Whether this was a dry run (no remote mutation).
        results: Per-file results, in processing order.
        pruned: Files whose records were removed as orphans.
        started_at: ISO 8601 timestamp when the run started.
        completed_at: ISO 8601 timestamp when the run finished.
        duration: Run time in seconds.
    """

    scope: str
    dry_run: bool = False
    results: list[FileResult] = []
    pruned: list[str] = []
    started_at: str
    completed_at: str | None = None
    duration: float | None = None

    model_config = {"frozen": True}

    @property
    def created(self) -> list[FileResult]:
        """Results where action is CREATE."""
        return [r for r in self.results if r.action == SyncAction.CREATE]

    @property
    def replaced(self) -> list[FileResult]:
        """Results where action is REPLACE."""
        return [r for r in self.results if r.action == SyncAction.REPLACE]

    @property
    def skipped(self) -> list[FileResult]:
        """Results where action is SKIP."""
        return [r for r in self.results if r.action == SyncAction.SKIP]

    @property
    def failed(self) -> list[FileResult]:
        """Results where success is False."""
        return [r for r in self.results if not r.success]

    @property
    def has_failures(self) -> bool:
        return any(not r.success for r in self.results)

    def summary(self) -> str:
        """Format a human-readable summary of the sync run.

        Returns:
            Multi-line summary string with counts by action.
        """
        lines = [
            f"Sync report for '{self.scope}'" + (" (dry run)" if self.dry_run else ""),
            f"  Created:  {len(self.created)}",
            f"  Replaced: {len(self.replaced)}",
            f"  Skipped:  {len(self.skipped)}",
            f"  Failed:   {len(self.failed)}",
            f"  Total:    {len(self.results)}",
        ]
        if self.pruned:
            lines.append(f"  Pruned:   {len(self.pruned)}")
        return "\n".join(lines)
