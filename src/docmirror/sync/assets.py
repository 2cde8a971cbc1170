"""Image and attachment asset processing for the block converter.

``ImageProcessor`` turns an image reference found in a document into a
``MediaRef``:

* ``http(s)`` images are referenced by URL;
* site-absolute paths (``/img/logo.png``) are looked up under the
  project's ``static/`` directory;
* other paths are resolved relative to the document.

``AttachmentProcessor`` does the same for a paragraph that is nothing but
a link to a local non-Markdown file (``[Spec](/files/spec.pdf)``),
producing a ``file`` media block.

Local files are uploaded through the remote client once per content hash;
the resulting upload id is reused from ``SyncState``'s upload cache until
the cache entry expires.
"""

from __future__ import annotations

import logging
import mimetypes
from pathlib import Path, PurePosixPath
from urllib.parse import unquote, urlparse

from ..converters.models import MediaRef
from ..converters.render import FILE_UPLOAD_PREFIX
from ..core.async_utils import run_sync
from ..core.client import RemoteClient
from ..errors import RemoteError
from ..file_handler import MARKDOWN_EXTENSIONS
from .state import SyncState

logger = logging.getLogger(__name__)

# Single-part upload limit of the Notion File Upload API.
MAX_UPLOAD_BYTES = 20 * 1024 * 1024

STATIC_DIR = "static"

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class _LocalUploads:
    """Shared path resolution and cached upload of local files."""

    kind = "file"

    def __init__(self, client: RemoteClient, state: SyncState, project_root: Path):
        self.client = client
        self.state = state
        self.project_root = project_root
        self.uploaded = 0
        self.cached = 0

    def resolve_local_path(self, src: str, source_path: Path | None) -> Path | None:
        """Map a ``src`` to a file on disk, or ``None`` if not local."""
        try:
            parsed = urlparse(src)
        except ValueError:
            return None
        if parsed.scheme and parsed.scheme != "file":
            return None
        path_part = unquote(parsed.path)
        if not path_part:
            return None
        if path_part.startswith("/"):
            return self.project_root / STATIC_DIR / path_part.lstrip("/")
        if source_path is None:
            return self.project_root / path_part
        return (source_path.parent / path_part).resolve()

    async def _upload(self, local: Path, content_type: str) -> str | None:
        """Upload *local* (or reuse a cached upload); return its locator."""
        try:
            data = await run_sync(local.read_bytes)
        except OSError as exc:
            logger.warning("Could not read %s %s: %s", self.kind, local, exc)
            return None
        if len(data) > MAX_UPLOAD_BYTES:
            logger.warning(
                "%s %s is %d bytes, over the %d byte upload limit",
                self.kind.capitalize(),
                local,
                len(data),
                MAX_UPLOAD_BYTES,
            )
            return None

        digest = SyncState.content_hash(data)
        cached = self.state.lookup_upload(digest)
        if cached is not None:
            self.cached += 1
            logger.debug("Reusing uploaded %s %s for %s", self.kind, cached.remote_reference, local.name)
            return cached.remote_reference

        try:
            upload_id = await self.client.upload_file(data, local.name, content_type)
        except RemoteError as exc:
            logger.warning("Failed to upload %s %s: %s", self.kind, local.name, exc)
            return None

        locator = f"{FILE_UPLOAD_PREFIX}{upload_id}"
        self.state.record_upload(
            digest,
            locator,
            kind=self.kind,
            size_bytes=len(data),
            file_name=local.name,
        )
        self.uploaded += 1
        logger.info("Uploaded %s %s", self.kind, local.name)
        return locator


class ImageProcessor(_LocalUploads):
    """Resolve and upload images referenced from documents.

    Args:
        client: Remote client used for uploads.
        state: Sync state owning the upload cache.
        project_root: Base directory for site-absolute image paths.
    """

    kind = "image"

    async def resolve_image(
        self,
        src: str,
        alt: str,
        title: str | None,
        source_path: Path | None,
    ) -> MediaRef | None:
        caption = title or alt or None
        if src.startswith(("http://", "https://")):
            return MediaRef(media_type="image", locator=src, caption=caption)

        local = self.resolve_local_path(src, source_path)
        if local is None:
            logger.warning("Unsupported image reference: %s", src)
            return None
        if not local.is_file():
            logger.warning("Image not found: %s (resolved to %s)", src, local)
            return None

        content_type, _ = mimetypes.guess_type(local.name)
        if not content_type or not content_type.startswith("image/"):
            logger.warning("Not an image file: %s", local)
            return None

        locator = await self._upload(local, content_type)
        if locator is None:
            return None
        return MediaRef(media_type="image", locator=locator, caption=caption)


def is_attachment_link(href: str) -> bool:
    """Return whether *href* points at a local file worth attaching.

    Remote URLs, anchors and links to other Markdown documents are not
    attachments; the target must carry a file extension.
    """
    href = href.strip()
    if not href or href.startswith("#"):
        return False
    try:
        parsed = urlparse(href)
    except ValueError:
        return False
    if parsed.scheme or parsed.netloc:
        return False
    suffix = PurePosixPath(unquote(parsed.path)).suffix.lower()
    return len(suffix) > 1 and suffix not in MARKDOWN_EXTENSIONS


class AttachmentProcessor(_LocalUploads):
    """Upload local files linked from documents as ``file`` blocks.

    Args:
        client: Remote client used for uploads.
        state: Sync state owning the upload cache.
        project_root: Base directory for site-absolute links
            (``/files/x.pdf`` resolves to ``static/files/x.pdf``).
    """

    async def resolve_attachment(
        self,
        href: str,
        text: str,
        source_path: Path | None,
    ) -> MediaRef | None:
        if not is_attachment_link(href):
            return None
        local = self.resolve_local_path(href, source_path)
        if local is None or not local.is_file():
            logger.warning("Attachment not found: %s (resolved to %s)", href, local)
            return None

        content_type, _ = mimetypes.guess_type(local.name)
        locator = await self._upload(local, content_type or DEFAULT_CONTENT_TYPE)
        if locator is None:
            return None
        return MediaRef(media_type="file", locator=locator, caption=text or local.name)
