"""Shared pytest fixtures for docmirror tests."""

from __future__ import annotations

import itertools
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import pytest

from docmirror.config import Config
from docmirror.converters.models import Block
from docmirror.errors import RemoteNotFound


class FakeNotionClient:
    """In-memory stand-in for the async remote page API.

    Pages live in ``self.pages`` keyed by id.  Every call is appended to
    ``self.calls`` as ``(method, *args)``.

    Failure injection:
        lose_on_append: title -> number of appends that find the page
            archived (the page is archived, then ``RemoteNotFound`` raised).
        fail_on_create: title -> exception raised by ``create_content_page``.
    """

    def __init__(self) -> None:
        self.pages: dict[str, dict[str, Any]] = {}
        self.uploads: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple] = []
        self.lose_on_append: dict[str, int] = {}
        self.fail_on_create: dict[str, Exception] = {}
        self._ids = itertools.count(1)

    # -- helpers --------------------------------------------------------

    def add_page(
        self,
        title: str,
        parent_id: str | None = None,
        archived: bool = False,
        kind: str = "content",
    ) -> str:
        page_id = f"page-{next(self._ids)}"
        self.pages[page_id] = {
            "id": page_id,
            "parent_id": parent_id,
            "title": title,
            "archived": archived,
            "kind": kind,
            "blocks": [],
        }
        return page_id

    def archive(self, page_id: str) -> None:
        self.pages[page_id]["archived"] = True

    def live_pages(self, kind: str | None = None) -> list[dict[str, Any]]:
        return [
            p
            for p in self.pages.values()
            if not p["archived"] and (kind is None or p["kind"] == kind)
        ]

    def children(self, parent_id: str) -> list[dict[str, Any]]:
        return [p for p in self.pages.values() if p["parent_id"] == parent_id]

    def calls_to(self, method: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == method]

    @property
    def mutation_count(self) -> int:
        mutating = {
            "create_container_page",
            "create_content_page",
            "archive_page",
            "append_blocks",
            "upload_file",
        }
        return sum(1 for c in self.calls if c[0] in mutating)

    def _live(self, page_id: str) -> dict[str, Any]:
        page = self.pages.get(page_id)
        if page is None or page["archived"]:
            raise RemoteNotFound(f"Could not find page with ID: {page_id}", status=404)
        return page

    # -- remote API -----------------------------------------------------

    async def create_container_page(
        self, parent_id: str | None, title: str, blocks: Sequence[Block] = ()
    ) -> str:
        self.calls.append(("create_container_page", parent_id, title))
        if parent_id is not None:
            self._live(parent_id)
        page_id = self.add_page(title, parent_id, kind="container")
        self.pages[page_id]["blocks"].extend(blocks)
        return page_id

    async def create_content_page(self, parent_id: str, title: str) -> str:
        self.calls.append(("create_content_page", parent_id, title))
        if title in self.fail_on_create:
            raise self.fail_on_create[title]
        self._live(parent_id)
        return self.add_page(title, parent_id)

    async def retrieve_page(self, page_id: str) -> dict[str, Any]:
        self.calls.append(("retrieve_page", page_id))
        page = self.pages.get(page_id)
        if page is None:
            raise RemoteNotFound(f"Could not find page with ID: {page_id}", status=404)
        return {"id": page_id, "archived": page["archived"]}

    async def archive_page(self, page_id: str) -> None:
        self.calls.append(("archive_page", page_id))
        self._live(page_id)["archived"] = True

    async def append_blocks(self, page_id: str, blocks: Sequence[Block]) -> None:
        self.calls.append(("append_blocks", page_id, len(blocks)))
        page = self.pages.get(page_id)
        if page is not None and self.lose_on_append.get(page["title"], 0) > 0:
            self.lose_on_append[page["title"]] -= 1
            page["archived"] = True
        self._live(page_id)["blocks"].extend(blocks)

    async def search_child_page(self, parent_id: str, title: str) -> str | None:
        self.calls.append(("search_child_page", parent_id, title))
        for page in self.pages.values():
            if (
                page["parent_id"] == parent_id
                and page["title"] == title
                and not page["archived"]
            ):
                return page["id"]
        return None

    async def upload_file(self, data: bytes, filename: str, content_type: str) -> str:
        self.calls.append(("upload_file", filename, content_type))
        upload_id = f"upload-{len(self.uploads) + 1}"
        self.uploads[upload_id] = {
            "filename": filename,
            "content_type": content_type,
            "size": len(data),
        }
        return upload_id


@pytest.fixture
def fake_client() -> FakeNotionClient:
    return FakeNotionClient()


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """An empty project root with a ``docs/`` directory."""
    (tmp_path / "docs").mkdir()
    return tmp_path


@pytest.fixture
def make_config(project: Path):
    """Factory for a ``Config`` rooted at the ``project`` fixture."""

    def _make(**overrides: Any) -> Config:
        values: dict[str, Any] = {
            "api_token": "secret_test",
            "project_root": project,
            "request_interval": 0.0,
        }
        values.update(overrides)
        return Config(**values)

    return _make


@pytest.fixture
def write_doc(project: Path):
    """Write a document below the project root and return its path."""

    def _write(relative: str, content: str) -> Path:
        path = project / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return _write
