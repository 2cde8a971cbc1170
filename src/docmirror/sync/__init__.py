"""One-way documentation sync engine.

Public API for mirroring a local Markdown documentation tree into a
Notion page hierarchy.

Architecture
------------
Each source file is compared against the content hash recorded at its last
successful sync.  Out-of-date files are never patched in place: the old page
is archived and a fresh page is built from the converted blocks.  Directory
structure is mirrored as container pages whose ids are cached in the state
file and re-validated against Notion before use.

Modules:

- ``engine``    -- ``SyncOrchestrator``: runs the per-file state machine.
- ``state``     -- ``SyncState``: write-through JSON state file.
- ``hierarchy`` -- ``HierarchyResolver``: container pages and self-healing.
- ``corpus``    -- scanning, document loading, directory descriptors.
- ``assets``    -- ``ImageProcessor`` and ``AttachmentProcessor``: local
  image and file upload with caching.
- ``models``    -- ``SyncAction``, ``SyncRecord``, ``UploadCacheEntry``,
  ``HierarchyNode``, ``FileResult``, ``SyncReport``.
- ``reporter``  -- Human-readable and JSON report formatting.

Usage example
-------------
::

    from docmirror.config import load_config
    from docmirror.core.client import AsyncNotionClient, NotionClient
    from docmirror.sync import SyncOrchestrator, format_sync_report

    config = load_config(project_root=".")
    client = AsyncNotionClient(NotionClient(config))
    orchestrator = SyncOrchestrator(config, client)

    report = await orchestrator.sync_docs()
    print(format_sync_report(report))
"""

from .engine import SyncOrchestrator
from .hierarchy import HierarchyResolver
from .models import (
    FileResult,
    HierarchyNode,
    SyncAction,
    SyncRecord,
    SyncReport,
    UploadCacheEntry,
)
from .reporter import (
    format_dry_run_preview,
    format_status,
    format_sync_report,
    report_to_json,
)
from .state import SyncState

__all__ = [
    "FileResult",
    "HierarchyNode",
    "HierarchyResolver",
    "SyncAction",
    "SyncOrchestrator",
    "SyncRecord",
    "SyncReport",
    "SyncState",
    "UploadCacheEntry",
    "format_dry_run_preview",
    "format_status",
    "format_sync_report",
    "report_to_json",
]
