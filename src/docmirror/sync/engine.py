"""Sync orchestrator: mirror the documentation corpus into Notion.

The ``SyncOrchestrator`` drives one run.  It:

1. Resolves (or auto-creates) the root page.
2. Scans the corpus, hashes every file and asks ``SyncState`` which
   files are out of date.
3. Skips files whose hash matches their ``SyncRecord``.
4. For each out-of-date file, strictly one after another: converts it to
   blocks, resolves its container page, archives the page it replaces,
   creates a new page and uploads the blocks in chunks.  A page whose
   upload fails part way is archived again.
5. Records the new page in ``SyncState`` right after the upload.
6. After a full corpus pass, prunes records of files that no longer exist.

Updates never patch an existing page: the old page is archived and a new
one is built from scratch.

Error handling is per-file: a single file failure does not abort the run.
Only ``ConfigurationInvalid`` (and failures resolving the root page) end a
run early.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path

from ..config import Config
from ..converters.blocks import BlockConverter
from ..converters.common import chunk_blocks
from ..converters.models import Block
from ..core.client import DryRunClient, RemoteClient
from ..errors import DestinationLost, DocMirrorError, RemoteNotFound
from ..file_handler import is_markdown_file, validate_file_path
from .assets import AttachmentProcessor, ImageProcessor
from .corpus import Document, DescriptorLoader, DocumentRef, load_document_async, scan_documents
from .hierarchy import HierarchyResolver
from .models import FileResult, SyncAction, SyncReport
from .state import SyncState

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    """Run the per-file sync state machine over a set of documents.

    Args:
        config: Run configuration.
        client: Remote client.  Wrapped in a ``DryRunClient`` when
            *dry_run* is set.
        state: Sync state; built from *config* when omitted.
        dry_run: Execute the pipeline without remote mutations and
            without persisting state.
    """

    def __init__(
        self,
        config: Config,
        client: RemoteClient,
        state: SyncState | None = None,
        dry_run: bool = False,
    ) -> None:
        self.config = config
        self.dry_run = dry_run
        self.client: RemoteClient = DryRunClient(client) if dry_run else client
        self.state = state or SyncState(
            config.state_file,
            root_page_id=config.root_page_id,
            upload_ttl=timedelta(minutes=config.upload_cache_ttl_minutes),
            read_only=dry_run,
        )
        if dry_run:
            self.state.read_only = True

        self.resolver = HierarchyResolver(
            self.client,
            self.state,
            DescriptorLoader(config.project_root, config.descriptor_name),
            skip_segment=config.skip_segment,
            root_title=config.root_title,
        )
        self.images = ImageProcessor(self.client, self.state, config.project_root)
        self.attachments = AttachmentProcessor(self.client, self.state, config.project_root)
        self.converter = BlockConverter(self.images, self.attachments)
        self._root_id: str | None = None

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def sync_docs(self, force: bool = False) -> SyncReport:
        """Sync the whole docs directory and prune orphaned records."""
        refs = scan_documents(
            self.config.docs_path, self.config.project_root, self.config.exclude
        )
        scope = self._relative_scope(self.config.docs_path)
        return await self._run(scope, refs, force, prune=True)

    async def sync_directory(self, directory: str | Path, force: bool = False) -> SyncReport:
        """Sync every document under *directory* (no orphan pruning)."""
        path = Path(directory)
        if not path.is_absolute():
            path = self.config.project_root / path
        if not path.is_dir():
            raise ValueError(f"Directory not found: {directory}")
        refs = scan_documents(path, self.config.project_root, self.config.exclude)
        return await self._run(self._relative_scope(path), refs, force, prune=False)

    async def sync_file(self, file_path: str | Path, force: bool = False) -> SyncReport:
        """Sync a single document."""
        resolved = validate_file_path(file_path, base_dir=self.config.project_root)
        if not is_markdown_file(resolved):
            raise ValueError(f"Not a Markdown file: {file_path}")
        relative = resolved.relative_to(self.config.project_root.resolve()).as_posix()
        ref = DocumentRef(absolute_path=resolved, relative_path=relative)
        return await self._run(relative, [ref], force, prune=False)

    def _relative_scope(self, path: Path) -> str:
        """*path* as a project-relative POSIX key, the form records use."""
        relative = path.resolve().relative_to(self.config.project_root.resolve()).as_posix()
        return "" if relative == "." else relative

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------

    async def _run(
        self,
        scope: str,
        refs: list[DocumentRef],
        force: bool,
        prune: bool,
    ) -> SyncReport:
        started = time.monotonic()
        started_at = datetime.now(timezone.utc).isoformat()
        results: list[FileResult] = []

        self.state.cleanup_expired_uploads()
        root_id = await self.resolver.resolve_root(self.config.root_page_id)
        self._root_id = root_id

        logger.info(
            "Found %d document(s) in %s%s",
            len(refs),
            scope or ".",
            " (dry run)" if self.dry_run else "",
        )

        documents: dict[str, Document] = {}
        load_errors: dict[str, Exception] = {}
        for ref in refs:
            try:
                documents[ref.relative_path] = await load_document_async(ref)
            except Exception as exc:
                load_errors[ref.relative_path] = exc

        hashes = {
            path: SyncState.content_hash(document.raw_content)
            for path, document in documents.items()
        }
        out_of_date = set(hashes) if force else set(self.state.files_needing_sync(hashes))
        logger.info("%d of %d document(s) out of date", len(out_of_date), len(refs))

        total = len(refs)
        for index, ref in enumerate(refs, start=1):
            path = ref.relative_path
            try:
                if path in load_errors:
                    raise load_errors[path]
                result = await self._process(
                    documents[path], hashes[path], path in out_of_date, index, total
                )
            except (DocMirrorError, OSError, ValueError) as exc:
                result = self._failure(path, exc, str(exc))
            except Exception as exc:
                result = self._failure(path, exc, f"{type(exc).__name__}: {exc}")
            results.append(result)

        pruned: list[str] = []
        if prune:
            pruned = self.state.prune_orphans(
                (ref.relative_path for ref in refs),
                scope=scope,
            )

        duration = time.monotonic() - started
        if not self.dry_run:
            self.state.update_statistics(duration)

        report = SyncReport(
            scope=scope or ".",
            dry_run=self.dry_run,
            results=results,
            pruned=pruned,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc).isoformat(),
            duration=round(duration, 3),
        )
        logger.info(
            "Sync finished in %.1fs: %d created, %d replaced, %d skipped, %d failed",
            duration,
            len(report.created),
            len(report.replaced),
            len(report.skipped),
            len(report.failed),
        )
        return report

    @staticmethod
    def _failure(path: str, exc: Exception, message: str) -> FileResult:
        logger.error("Failed to sync %s: %s", path, message)
        logger.debug("Failure details for %s", path, exc_info=exc)
        return FileResult(
            file_path=path,
            action=SyncAction.FAIL,
            success=False,
            error=message,
        )

    # ------------------------------------------------------------------
    # Per-file state machine
    # ------------------------------------------------------------------

    async def _process(
        self,
        document: Document,
        digest: str,
        out_of_date: bool,
        index: int,
        total: int,
    ) -> FileResult:
        path = document.ref.relative_path
        record = self.state.get_record(path)

        if not out_of_date and record is not None:
            logger.debug("(%d/%d) Up to date: %s", index, total, path)
            return FileResult(
                file_path=path,
                title=record.title,
                action=SyncAction.SKIP,
                page_id=record.page_id,
                block_count=record.block_count,
            )

        logger.info("(%d/%d) Processing %s", index, total, document.title)
        return await self._sync_document(document, digest, self._root_id)

    async def _sync_document(
        self, document: Document, digest: str, root_id: str
    ) -> FileResult:
        path = document.ref.relative_path
        blocks = await self.converter.convert(document.body, document.ref.absolute_path)
        parent_id = await self.resolver.resolve(path, root_id, self.config.flat_mode)

        previous = self.state.get_record(path)
        if previous is not None:
            await self._archive(previous.page_id)
            self.state.remove_record(path)

        page_id, parent_id = await self._create_page(path, document.title, parent_id, root_id)
        page_id = await self._upload_blocks(page_id, parent_id, document.title, blocks)

        self.state.record_sync(
            path,
            page_id=page_id,
            content_hash=digest,
            title=document.title,
            block_count=len(blocks),
            parent_id=parent_id,
        )

        action = SyncAction.REPLACE if previous is not None else SyncAction.CREATE
        logger.info(
            "%s %s (%d blocks)",
            "Replaced" if action == SyncAction.REPLACE else "Created",
            document.title,
            len(blocks),
        )
        return FileResult(
            file_path=path,
            title=document.title,
            action=action,
            page_id=page_id,
            previous_page_id=previous.page_id if previous else None,
            block_count=len(blocks),
        )

    async def _create_page(
        self, path: str, title: str, parent_id: str, root_id: str
    ) -> tuple[str, str]:
        """Create the content page, healing a container lost mid-run once.

        Returns:
            ``(page_id, parent_id)``; *parent_id* differs from the argument
            when the container had to be resolved again.
        """
        try:
            return await self.client.create_content_page(parent_id, title), parent_id
        except RemoteNotFound:
            if parent_id == root_id or not self.resolver.invalidate_page(parent_id):
                raise
        logger.warning(
            "Container page %s for %s disappeared during the run, resolving it again",
            parent_id,
            path,
        )
        parent_id = await self.resolver.resolve(path, root_id, self.config.flat_mode)
        return await self.client.create_content_page(parent_id, title), parent_id

    async def _archive(self, page_id: str) -> None:
        try:
            await self.client.archive_page(page_id)
        except RemoteNotFound:
            logger.debug("Page %s already gone, nothing to archive", page_id)
        self.resolver.forget(page_id)

    async def _discard(self, page_id: str, title: str) -> None:
        """Archive a page whose upload failed part way."""
        logger.warning("Archiving partially uploaded page %s for '%s'", page_id, title)
        try:
            await self.client.archive_page(page_id)
        except DocMirrorError as exc:
            logger.warning("Could not archive partial page %s: %s", page_id, exc)

    async def _upload_blocks(
        self,
        page_id: str,
        parent_id: str,
        title: str,
        blocks: list[Block],
    ) -> str:
        """Append *blocks* to *page_id* in API-sized chunks.

        If the page disappears mid-upload, one replacement page is created
        under the same parent and every chunk up to and including the
        failed one is sent again.  Any other remote failure archives the
        page before the error propagates, so no half-filled page is left
        live.

        Returns:
            The id of the page that now holds the blocks.

        Raises:
            DestinationLost: The replacement page vanished as well.
        """
        chunks = list(chunk_blocks(blocks, self.config.max_blocks_per_request))
        replaced = False
        index = 0
        while index < len(chunks):
            try:
                await self.client.append_blocks(page_id, chunks[index])
            except RemoteNotFound as exc:
                if replaced:
                    raise DestinationLost(
                        f"Replacement page {page_id} for '{title}' vanished during upload: {exc}"
                    ) from exc
                logger.warning(
                    "Page %s for '%s' was archived or deleted during upload, creating a new page",
                    page_id,
                    title,
                )
                page_id = await self.client.create_content_page(parent_id, title)
                replaced = True
                index = 0
                continue
            except DocMirrorError:
                await self._discard(page_id, title)
                raise
            index += 1
        return page_id

    # ------------------------------------------------------------------
    # Status helpers
    # ------------------------------------------------------------------

    async def validate_hierarchy(self) -> list[str]:
        return await self.resolver.validate_hierarchy()
