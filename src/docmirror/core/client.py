import itertools
import logging
import threading
from collections.abc import Sequence
from typing import Any, Protocol

import requests

from ..config import Config
from ..converters.models import Block
from ..converters.render import NotionRenderer
from ..errors import (
    RemoteError,
    RemoteNotFound,
    RemoteRateLimited,
    RemoteRejected,
    RemoteUnauthorized,
)
from .async_utils import RequestQueue

logger = logging.getLogger(__name__)

NOTION_API_URL = "https://api.notion.com/v1"
NOTION_VERSION = "2022-06-28"

CONTAINER_ICON = "\U0001f4c1"
CONTENT_ICON = "\U0001f4c4"
ROOT_ICON = "\U0001f4da"


def normalize_page_id(page_id: str | None) -> str:
    """Strip dashes and lowercase, so ids from URLs and API responses compare."""
    return (page_id or "").replace("-", "").lower()


def page_title(page: dict[str, Any]) -> str:
    """Return the plain title of a page object, or ``""``."""
    for prop in page.get("properties", {}).values():
        if prop.get("type") == "title" or "title" in prop:
            return "".join(
                part.get("plain_text") or part.get("text", {}).get("content", "")
                for part in prop.get("title", [])
            )
    return ""


def is_archived(page: dict[str, Any]) -> bool:
    return bool(page.get("archived") or page.get("in_trash"))


class NotionClient:
    """Blocking Notion REST client.

    Methods take and return neutral blocks and page ids; JSON shapes stay
    inside this class and :class:`NotionRenderer`.  Every error response is
    raised as a :class:`RemoteError` subclass.
    """

    def __init__(self, config: Config, renderer: NotionRenderer | None = None):
        self.config = config
        self.renderer = renderer or NotionRenderer()
        self._thread_local = threading.local()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(
            {
                "Authorization": f"Bearer {self.config.api_token}",
                "Notion-Version": NOTION_VERSION,
            }
        )
        return session

    def _request(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """
        Make a request against the Notion API and return the decoded body.
        """
        url = path if path.startswith("http") else f"{NOTION_API_URL}/{path}"
        try:
            response = self._get_session().request(
                method,
                url,
                json=payload,
                timeout=self.config.timeout,
                **kwargs,
            )
        except requests.RequestException as exc:
            raise RemoteError(f"{method} {path} failed: {exc}") from exc

        if response.status_code >= 400:
            raise self._map_error(response)
        if not response.content:
            return {}
        return response.json()

    @staticmethod
    def _map_error(response: requests.Response) -> RemoteError:
        """Translate an error response into the remote error taxonomy."""
        try:
            body = response.json()
        except ValueError:
            body = {}
        code = body.get("code")
        message = body.get("message") or response.reason or "Unknown error"
        status = response.status_code

        if status == 404 or code == "object_not_found":
            return RemoteNotFound(message, code=code, status=status)
        if status == 429 or code == "rate_limited":
            retry_after = response.headers.get("Retry-After")
            return RemoteRateLimited(
                message,
                code=code,
                status=status,
                retry_after=float(retry_after) if retry_after else None,
            )
        if status in (401, 403) or code in ("unauthorized", "restricted_resource"):
            return RemoteUnauthorized(
                f"{message}. Check your API token and page permissions.",
                code=code,
                status=status,
            )
        if status == 400:
            # Writing under an archived block is reported as a validation error.
            if "archived" in message.lower():
                return RemoteNotFound(message, code=code, status=status)
            return RemoteRejected(message, code=code, status=status)
        return RemoteError(message, code=code, status=status)

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------

    def _create_page(
        self,
        parent_id: str | None,
        title: str,
        icon: str,
        blocks: Sequence[Block] = (),
    ) -> str:
        parent: dict[str, Any]
        if parent_id is None:
            parent = {"type": "workspace", "workspace": True}
        else:
            parent = {"type": "page_id", "page_id": parent_id}
        payload: dict[str, Any] = {
            "parent": parent,
            "icon": {"type": "emoji", "emoji": icon},
            "properties": {
                "title": {"title": [{"type": "text", "text": {"content": title}}]}
            },
        }
        if blocks:
            payload["children"] = self.renderer.render(blocks)
        page = self._request("POST", "pages", payload)
        logger.debug("Created page %s (%s)", page.get("id"), title)
        return page["id"]

    def create_container_page(
        self,
        parent_id: str | None,
        title: str,
        blocks: Sequence[Block] = (),
    ) -> str:
        """Create a page mirroring a directory.

        A ``parent_id`` of ``None`` creates a workspace-level page (used for
        the auto-created root).
        """
        icon = ROOT_ICON if parent_id is None else CONTAINER_ICON
        return self._create_page(parent_id, title, icon, blocks)

    def create_content_page(self, parent_id: str, title: str) -> str:
        """Create an empty page for one document; blocks are appended later."""
        return self._create_page(parent_id, title, CONTENT_ICON)

    def retrieve_page(self, page_id: str) -> dict[str, Any]:
        return self._request("GET", f"pages/{page_id}")

    def archive_page(self, page_id: str) -> None:
        self._request("PATCH", f"pages/{page_id}", {"archived": True})
        logger.debug("Archived page %s", page_id)

    def append_blocks(self, page_id: str, blocks: Sequence[Block]) -> None:
        """Append *blocks* to a page (the API accepts at most 100 per call)."""
        self._request(
            "PATCH",
            f"blocks/{page_id}/children",
            {"children": self.renderer.render(blocks)},
        )

    def search_child_page(self, parent_id: str, title: str) -> str | None:
        """
        Find a live page titled *title* directly under *parent_id*.
        """
        result = self._request(
            "POST",
            "search",
            {
                "query": title,
                "filter": {"property": "object", "value": "page"},
                "page_size": 100,
            },
        )
        wanted_parent = normalize_page_id(parent_id)
        for page in result.get("results", []):
            parent = normalize_page_id(page.get("parent", {}).get("page_id"))
            if (
                parent == wanted_parent
                and page_title(page) == title
                and not is_archived(page)
            ):
                return page["id"]
        return None

    # ------------------------------------------------------------------
    # File uploads
    # ------------------------------------------------------------------

    def upload_file(self, data: bytes, filename: str, content_type: str) -> str:
        """Upload *data* with the single-part File Upload API.

        Returns:
            The file upload id, usable in blocks until it expires.
        """
        upload = self._request(
            "POST",
            "file_uploads",
            {"filename": filename, "content_type": content_type},
        )
        upload_id = upload["id"]
        # multipart body; let requests set the boundary header
        self._request(
            "POST",
            f"file_uploads/{upload_id}/send",
            files={"file": (filename, data, content_type)},
        )
        logger.debug("Uploaded %s (%d bytes) as %s", filename, len(data), upload_id)
        return upload_id


class RemoteClient(Protocol):
    """Async remote page API used by the sync engine."""

    async def create_container_page(
        self, parent_id: str | None, title: str, blocks: Sequence[Block] = ()
    ) -> str: ...

    async def create_content_page(self, parent_id: str, title: str) -> str: ...

    async def retrieve_page(self, page_id: str) -> dict[str, Any]: ...

    async def archive_page(self, page_id: str) -> None: ...

    async def append_blocks(self, page_id: str, blocks: Sequence[Block]) -> None: ...

    async def search_child_page(self, parent_id: str, title: str) -> str | None: ...

    async def upload_file(
        self, data: bytes, filename: str, content_type: str
    ) -> str: ...


class AsyncNotionClient:
    """Async facade over :class:`NotionClient`.

    Every call, whatever its origin, goes through one shared
    :class:`RequestQueue`.  A rate-limited response is retried after the
    server's ``Retry-After`` delay, up to ``max_retries`` times.
    """

    def __init__(
        self,
        client: NotionClient,
        queue: RequestQueue | None = None,
        max_retries: int = 2,
    ):
        self._client = client
        self.queue = queue or RequestQueue(client.config.request_interval)
        self.max_retries = max_retries

    async def _call(self, func, *args: Any, **kwargs: Any) -> Any:
        for attempt in itertools.count():
            try:
                return await self.queue.submit(func, *args, **kwargs)
            except RemoteRateLimited as exc:
                if attempt >= self.max_retries:
                    raise
                delay = exc.retry_after or 1.0
                logger.warning("Rate limited by Notion, retrying in %.1fs", delay)
                await self.queue.pause(delay)

    async def create_container_page(
        self, parent_id: str | None, title: str, blocks: Sequence[Block] = ()
    ) -> str:
        return await self._call(
            self._client.create_container_page, parent_id, title, blocks
        )

    async def create_content_page(self, parent_id: str, title: str) -> str:
        return await self._call(self._client.create_content_page, parent_id, title)

    async def retrieve_page(self, page_id: str) -> dict[str, Any]:
        return await self._call(self._client.retrieve_page, page_id)

    async def archive_page(self, page_id: str) -> None:
        await self._call(self._client.archive_page, page_id)

    async def append_blocks(self, page_id: str, blocks: Sequence[Block]) -> None:
        await self._call(self._client.append_blocks, page_id, blocks)

    async def search_child_page(self, parent_id: str, title: str) -> str | None:
        return await self._call(self._client.search_child_page, parent_id, title)

    async def upload_file(self, data: bytes, filename: str, content_type: str) -> str:
        return await self._call(
            self._client.upload_file, data, filename, content_type
        )


class DryRunClient:
    """Remote client that never mutates the destination.

    Read-only calls are forwarded so liveness checks stay accurate;
    mutating calls return placeholder ids (``dry-run-<n>``) instead.
    Pages created here are reported live by :meth:`retrieve_page`.
    """

    PLACEHOLDER_PREFIX = "dry-run-"

    def __init__(self, inner: RemoteClient):
        self._inner = inner
        self._counter = itertools.count(1)
        self.mutations: list[tuple[str, str]] = []

    def _placeholder(self, action: str, subject: str) -> str:
        page_id = f"{self.PLACEHOLDER_PREFIX}{next(self._counter)}"
        self.mutations.append((action, subject))
        logger.info("[dry-run] Would %s: %s", action, subject)
        return page_id

    @classmethod
    def is_placeholder(cls, page_id: str | None) -> bool:
        return bool(page_id) and page_id.startswith(cls.PLACEHOLDER_PREFIX)

    async def create_container_page(
        self, parent_id: str | None, title: str, blocks: Sequence[Block] = ()
    ) -> str:
        return self._placeholder("create container page", title)

    async def create_content_page(self, parent_id: str, title: str) -> str:
        return self._placeholder("create page", title)

    async def retrieve_page(self, page_id: str) -> dict[str, Any]:
        if self.is_placeholder(page_id):
            return {"id": page_id, "archived": False}
        return await self._inner.retrieve_page(page_id)

    async def archive_page(self, page_id: str) -> None:
        self.mutations.append(("archive page", page_id))
        logger.info("[dry-run] Would archive page %s", page_id)

    async def append_blocks(self, page_id: str, blocks: Sequence[Block]) -> None:
        self.mutations.append(("append blocks", f"{len(blocks)} to {page_id}"))

    async def search_child_page(self, parent_id: str, title: str) -> str | None:
        if self.is_placeholder(parent_id):
            return None
        return await self._inner.search_child_page(parent_id, title)

    async def upload_file(self, data: bytes, filename: str, content_type: str) -> str:
        return self._placeholder("upload file", filename)
