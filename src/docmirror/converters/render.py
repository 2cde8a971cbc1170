"""Destination-specific serialisation of blocks.

Everything that knows about a destination's wire shape lives behind
``Renderer``; the converter and the sync engine only handle the neutral
block model from :mod:`docmirror.converters.models`.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any

from .models import (
    ANNOTATIONS,
    Block,
    CodeBlock,
    Divider,
    Heading,
    ListItem,
    MediaRef,
    Paragraph,
    Quote,
    RichText,
    Span,
    Table,
)

# Per rich-text object content limit of the Notion API.
MAX_TEXT_LENGTH = 2000

FILE_UPLOAD_PREFIX = "file_upload:"


class Renderer(ABC):
    """Serialise neutral blocks for one destination."""

    @abstractmethod
    def render_block(self, block: Block) -> dict[str, Any]:
        """Serialise a single block."""

    def render(self, blocks: Iterable[Block]) -> list[dict[str, Any]]:
        return [self.render_block(block) for block in blocks]


def _split_text(content: str, limit: int = MAX_TEXT_LENGTH) -> list[str]:
    if len(content) <= limit:
        return [content]
    return [content[i : i + limit] for i in range(0, len(content), limit)]


class NotionRenderer(Renderer):
    """Renderer producing Notion API block objects."""

    _LIST_TYPES = {
        "bullet": "bulleted_list_item",
        "numbered": "numbered_list_item",
        "task": "to_do",
    }

    def rich_text(self, spans: RichText) -> list[dict[str, Any]]:
        """Serialise spans, splitting any content longer than 2000 chars."""
        result: list[dict[str, Any]] = []
        for span in spans:
            for piece in _split_text(span.content):
                result.append(self._text_object(span, piece))
        return result

    def plain(self, content: str) -> list[dict[str, Any]]:
        return self.rich_text([Span(content=content)]) if content else []

    def _text_object(self, span: Span, content: str) -> dict[str, Any]:
        text: dict[str, Any] = {"content": content}
        if span.link:
            text["link"] = {"url": span.link}
        obj: dict[str, Any] = {"type": "text", "text": text}
        if span.annotations:
            obj["annotations"] = {
                name: name in span.annotations for name in sorted(ANNOTATIONS)
            }
        return obj

    def render_block(self, block: Block) -> dict[str, Any]:
        if isinstance(block, Heading):
            return self._wrap(f"heading_{block.level}", {"rich_text": self.rich_text(block.text)})
        if isinstance(block, Paragraph):
            return self._wrap("paragraph", {"rich_text": self.rich_text(block.text)})
        if isinstance(block, ListItem):
            block_type = self._LIST_TYPES[block.style]
            body: dict[str, Any] = {"rich_text": self.rich_text(block.text)}
            if block.style == "task":
                body["checked"] = bool(block.checked)
            return self._wrap(block_type, body)
        if isinstance(block, Quote):
            return self._wrap("quote", {"rich_text": self.rich_text(block.text)})
        if isinstance(block, Divider):
            return self._wrap("divider", {})
        if isinstance(block, CodeBlock):
            body = {
                "language": block.language,
                "rich_text": self.plain(block.code),
            }
            if block.caption:
                body["caption"] = self.plain(block.caption)
            return self._wrap("code", body)
        if isinstance(block, Table):
            return self._render_table(block)
        if isinstance(block, MediaRef):
            return self._render_media(block)
        raise TypeError(f"Cannot render block of type {type(block).__name__}")

    def _render_table(self, table: Table) -> dict[str, Any]:
        rows = [
            self._wrap(
                "table_row",
                {"cells": [self.rich_text(cell) for cell in row]},
            )
            for row in table.rows
        ]
        return self._wrap(
            "table",
            {
                "table_width": table.width,
                "has_column_header": True,
                "has_row_header": False,
                "children": rows,
            },
        )

    def _render_media(self, media: MediaRef) -> dict[str, Any]:
        if media.locator.startswith(FILE_UPLOAD_PREFIX):
            upload_id = media.locator[len(FILE_UPLOAD_PREFIX) :]
            body: dict[str, Any] = {
                "type": "file_upload",
                "file_upload": {"id": upload_id},
            }
        else:
            body = {"type": "external", "external": {"url": media.locator}}
        body["caption"] = self.plain(media.caption or "")
        return self._wrap(media.media_type, body)

    @staticmethod
    def _wrap(block_type: str, body: dict[str, Any]) -> dict[str, Any]:
        return {"object": "block", "type": block_type, block_type: body}
