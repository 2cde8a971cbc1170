"""Mirror a file's directory path as a chain of container pages.

For ``docs/guide/advanced/tips.md`` (with the leading ``docs`` segment
skipped) the resolver makes sure container pages exist for the path keys
``guide`` and ``guide/advanced`` and returns the id of the innermost one.

Container ids are cached in memory and in ``SyncState``'s hierarchy map,
but a cached id is only trusted after a liveness check against the
destination.  A dead entry is evicted together with everything cached
below it, then found again by title or recreated.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from pathlib import PurePosixPath

from ..converters.models import BOLD, CODE, ITALIC, Block, Heading, Paragraph, Span
from ..core.client import RemoteClient, is_archived
from ..errors import ConfigurationInvalid, HierarchyStale, RemoteNotFound
from .corpus import Descriptor, DescriptorLoader
from .models import HierarchyNode
from .state import AUTO_ROOT_CREATED_AT, AUTO_ROOT_PAGE_ID, AUTO_ROOT_TITLE, SyncState

logger = logging.getLogger(__name__)


def format_segment_title(segment: str) -> str:
    """``getting-started`` -> ``Getting Started``."""
    spaced = re.sub(r"[-_]", " ", segment)
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), spaced).strip()


def container_body(title: str, path_key: str, descriptor: Descriptor) -> list[Block]:
    """Blocks placed on a container page: description, path, position."""
    if descriptor.description:
        intro = Paragraph([Span(content=descriptor.description)])
    else:
        intro = Paragraph(
            [
                Span(content="This page contains documentation for "),
                Span(content=title, annotations=frozenset({BOLD})),
                Span(content="."),
            ]
        )
    blocks: list[Block] = [
        intro,
        Paragraph(
            [
                Span(content="Category path: ", annotations=frozenset({ITALIC})),
                Span(content=path_key, annotations=frozenset({CODE})),
            ]
        ),
    ]
    if descriptor.position is not None:
        blocks.append(
            Paragraph(
                [
                    Span(content="Sidebar position: ", annotations=frozenset({ITALIC})),
                    Span(content=str(descriptor.position), annotations=frozenset({CODE})),
                ]
            )
        )
    return blocks


class HierarchyResolver:
    """Resolve (creating as needed) the container page for a file.

    Args:
        client: Remote client.
        state: Sync state owning the durable hierarchy map.
        descriptors: Loader for per-directory descriptor files.
        skip_segment: Leading path segment that is not mirrored.
        root_title: Title for an auto-created root page.
    """

    def __init__(
        self,
        client: RemoteClient,
        state: SyncState,
        descriptors: DescriptorLoader,
        skip_segment: str | None = "docs",
        root_title: str = "Documentation",
    ):
        self.client = client
        self.state = state
        self.descriptors = descriptors
        self.skip_segment = skip_segment
        self.root_title = root_title
        self._cache: dict[str, str] = {}
        # Pages already confirmed live during this run.
        self._live: set[str] = set()
        self.created = 0
        self.healed = 0

    # ------------------------------------------------------------------
    # Liveness
    # ------------------------------------------------------------------

    async def is_live(self, page_id: str) -> bool:
        """Return whether *page_id* exists and is not archived.

        Only a not-found/archived answer counts as dead; any other remote
        error propagates.
        """
        if page_id in self._live:
            return True
        try:
            page = await self.client.retrieve_page(page_id)
        except RemoteNotFound:
            return False
        if is_archived(page):
            return False
        self._live.add(page_id)
        return True

    def forget(self, page_id: str) -> None:
        """Drop *page_id* from the per-run liveness cache."""
        self._live.discard(page_id)

    def invalidate_page(self, page_id: str) -> list[str]:
        """Evict every path key mapped to *page_id*, with its descendants.

        Called when a write under an already-confirmed container fails
        because the container went away later in the run.

        Returns:
            The evicted path keys (empty when *page_id* is not a container).
        """
        self.forget(page_id)
        mapped = {**self.state.hierarchy_map(), **self._cache}
        keys = sorted(key for key, value in mapped.items() if value == page_id)
        for key in keys:
            logger.warning("Container page %s for '%s' is gone, healing", page_id, key)
            self._evict(key)
        if keys:
            self.healed += 1
        return keys

    async def _ensure_live(self, path_key: str, page_id: str) -> None:
        if not await self.is_live(page_id):
            raise HierarchyStale(path_key, page_id)

    def _evict(self, path_key: str) -> None:
        prefix = path_key + "/"
        stale = [path_key] + [
            key
            for key in {*self._cache, *self.state.hierarchy_map()}
            if key.startswith(prefix)
        ]
        for key in stale:
            self._cache.pop(key, None)
            self.state.invalidate_hierarchy_entry(key)

    # ------------------------------------------------------------------
    # Root
    # ------------------------------------------------------------------

    async def resolve_root(self, configured_root: str | None) -> str:
        """Return the root page id, auto-creating one when none is configured.

        Raises:
            ConfigurationInvalid: The configured root page is missing or
                archived.
        """
        if configured_root:
            if not await self.is_live(configured_root):
                raise ConfigurationInvalid(
                    f"Root page {configured_root} does not exist or is archived"
                )
            return configured_root

        auto_root = self.state.get_metadata(AUTO_ROOT_PAGE_ID)
        if auto_root:
            if await self.is_live(auto_root):
                logger.debug("Using auto-created root page %s", auto_root)
                return auto_root
            logger.warning("Auto-created root page %s is gone, creating a new one", auto_root)
            self.state.remove_metadata(AUTO_ROOT_PAGE_ID)
            # Everything below the old root is unreachable now.
            for key in self.state.hierarchy_map():
                self.state.invalidate_hierarchy_entry(key)
            self._cache.clear()

        created_at = datetime.now(timezone.utc).isoformat()
        logger.info("Auto-creating root page '%s'", self.root_title)
        root_id = await self.client.create_container_page(
            None,
            self.root_title,
            [
                Heading(level=1, text=[Span(content=self.root_title)]),
                Paragraph(
                    [
                        Span(
                            content="This page was created automatically to hold "
                            "the mirrored documentation."
                        )
                    ]
                ),
                Paragraph(
                    [
                        Span(content="Created: ", annotations=frozenset({ITALIC})),
                        Span(content=created_at, annotations=frozenset({CODE})),
                    ]
                ),
            ],
        )
        self.state.set_metadata(AUTO_ROOT_PAGE_ID, root_id)
        self.state.set_metadata(AUTO_ROOT_TITLE, self.root_title)
        self.state.set_metadata(AUTO_ROOT_CREATED_AT, created_at)
        self._live.add(root_id)
        return root_id

    # ------------------------------------------------------------------
    # Per-file resolution
    # ------------------------------------------------------------------

    def path_segments(self, file_path: str) -> tuple[list[str], str]:
        """Split *file_path* into mirrored directory segments.

        Returns:
            ``(segments, prefix)`` where *prefix* is the skipped leading
            directory ("" if none was skipped).
        """
        parts = list(PurePosixPath(file_path).parent.parts)
        if parts and parts[0] in ("/", "."):
            parts = parts[1:]
        prefix = ""
        if parts and self.skip_segment and parts[0] == self.skip_segment:
            prefix = parts.pop(0)
        return parts, prefix

    async def resolve(self, file_path: str, root_id: str, flat_mode: bool = False) -> str:
        """Return the container page id under which *file_path* belongs.

        Args:
            file_path: Path relative to the project root.
            root_id: Root page of the mirror.
            flat_mode: Skip intermediate containers entirely.
        """
        if flat_mode:
            return root_id

        segments, prefix = self.path_segments(file_path)
        parent_id = root_id
        path_key = ""
        for segment in segments:
            path_key = f"{path_key}/{segment}" if path_key else segment
            parent_id = await self._resolve_level(path_key, prefix, segment, parent_id)
        return parent_id

    async def _resolve_level(
        self, path_key: str, prefix: str, segment: str, parent_id: str
    ) -> str:
        page_id = self._cache.get(path_key) or self.state.hierarchy_page_id(path_key)
        if page_id:
            try:
                await self._ensure_live(path_key, page_id)
            except HierarchyStale as exc:
                logger.warning("%s, healing", exc)
                self._evict(path_key)
                self.healed += 1
                page_id = None

        if page_id is None:
            directory = f"{prefix}/{path_key}" if prefix else path_key
            descriptor = self.descriptors.load(directory)
            title = descriptor.label or format_segment_title(segment)

            page_id = await self.client.search_child_page(parent_id, title)
            if page_id:
                logger.debug("Found existing container page '%s' for %s", title, path_key)
            else:
                logger.info("Creating container page '%s' (%s)", title, path_key)
                page_id = await self.client.create_container_page(
                    parent_id, title, container_body(title, path_key, descriptor)
                )
                self.created += 1
            self._live.add(page_id)
            self.state.set_hierarchy_page_id(path_key, page_id)

        self._cache[path_key] = page_id
        return page_id

    # ------------------------------------------------------------------
    # Whole-map operations
    # ------------------------------------------------------------------

    async def validate_hierarchy(self) -> list[str]:
        """Check every mapped container page and evict the dead ones.

        Returns:
            Path keys that were evicted.
        """
        evicted: list[str] = []
        for path_key, page_id in sorted(self.state.hierarchy_map().items()):
            if self.state.hierarchy_page_id(path_key) is None:
                # Already evicted with a dead ancestor.
                continue
            try:
                await self._ensure_live(path_key, page_id)
            except HierarchyStale as exc:
                logger.warning("%s, removing from hierarchy map", exc)
                self._evict(path_key)
                evicted.append(path_key)
        return evicted

    def hierarchy_tree(self) -> list[HierarchyNode]:
        """Return the hierarchy map as nested nodes, sorted by path key."""
        mapping = self.state.hierarchy_map()
        children: dict[str | None, list[str]] = {}
        for key in sorted(mapping):
            parent = key.rsplit("/", 1)[0] if "/" in key else None
            if parent is not None and parent not in mapping:
                parent = None
            children.setdefault(parent, []).append(key)

        def build(key: str) -> HierarchyNode:
            parent = key.rsplit("/", 1)[0] if "/" in key else None
            return HierarchyNode(
                path_key=key,
                page_id=mapping[key],
                title=key.rsplit("/", 1)[-1],
                parent_path_key=parent,
                children=[build(child) for child in children.get(key, [])],
            )

        return [build(key) for key in children.get(None, [])]
