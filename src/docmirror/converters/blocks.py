"""Markdown to destination-neutral block conversion.

``BlockConverter`` walks the sections produced by :func:`segment` and turns
each one into a list of blocks.  Inline text goes through
:func:`parse_rich_text`.  A section handler that cannot make sense of its
input raises ``ParseDegradation``; the converter then emits the raw section
text as one plain paragraph and carries on with the next section.
"""

import asyncio
import logging
import re
from pathlib import Path
from typing import Protocol

from ..errors import DocMirrorError, ParseDegradation
from .common import map_language
from .models import (
    ITALIC,
    Block,
    CodeBlock,
    Divider,
    Heading,
    ListItem,
    MediaRef,
    Paragraph,
    Quote,
    RichText,
    Section,
    Span,
    Table,
)
from .rich_text import parse_rich_text
from .segmenter import (
    BLOCKQUOTE,
    FENCE,
    HEADING,
    LIST,
    PARAGRAPH,
    RULE,
    TABLE,
    fence_length,
    segment,
)

logger = logging.getLogger(__name__)

_HEADING_RE = re.compile(r"^(#{1,6})\s+(.*?)(?:\s+#+)?\s*$")
_TABLE_SEPARATOR_RE = re.compile(r"^\|[\s\-:|]+\|$")
_TASK_RE = re.compile(r"^[*+-]\s+\[([ xX])\]\s+(.+)$")
_BULLET_RE = re.compile(r"^[*+-]\s+(.+)$")
_NUMBERED_RE = re.compile(r"^\d+[.)]\s+(.+)$")
_QUOTE_MARKER_RE = re.compile(r"^\s*>\s?")
_PARAGRAPH_SPLIT_RE = re.compile(r"\n[ \t]*\n")
_IMAGE_ONLY_RE = re.compile(r'^!\[([^\]]*)\]\(([^\s)]+)(?:\s+"([^"]*)")?\)$')
_LINK_ONLY_RE = re.compile(r"^\[([^\]]+)\]\(([^\s)]+)\)$")
_META_KEY_RE = {
    key: re.compile(rf"""{key}=["']([^"']+)["']""") for key in ("title", "filename")
}


class AssetProcessor(Protocol):
    """Resolves an image reference found in a document to a ``MediaRef``."""

    async def resolve_image(
        self,
        src: str,
        alt: str,
        title: str | None,
        source_path: Path | None,
    ) -> MediaRef | None:
        """Return a media reference, or ``None`` when the image is unusable."""
        ...


class AttachmentResolver(Protocol):
    """Resolves a link to a local file to a ``file`` ``MediaRef``."""

    async def resolve_attachment(
        self,
        href: str,
        text: str,
        source_path: Path | None,
    ) -> MediaRef | None:
        """Return a media reference, or ``None`` when the link is not an attachment."""
        ...


def _empty_stats() -> dict[str, int]:
    return {
        "headings": 0,
        "paragraphs": 0,
        "list_items": 0,
        "tables": 0,
        "code_blocks": 0,
        "quotes": 0,
        "dividers": 0,
        "images": 0,
        "files": 0,
        "degraded_sections": 0,
    }


def image_fallback(alt: str) -> Paragraph:
    """Italic placeholder paragraph used when an image cannot be resolved."""
    content = f"[Image: {alt}]" if alt else "[Image]"
    return Paragraph([Span(content=content, annotations=frozenset({ITALIC}))])


class BlockConverter:
    """Convert Markdown documents into a flat list of blocks.

    Args:
        asset_processor: Optional resolver for image references.  Without
            one, external ``http(s)`` images are referenced directly and
            every other image degrades to placeholder text.
        attachment_resolver: Optional resolver for paragraphs that consist
            of a single link to a local file.  Without one, such links are
            ordinary inline text.

    Attributes:
        stats: Per-kind block counts for the most recent ``convert`` call,
            including ``degraded_sections``.
    """

    def __init__(
        self,
        asset_processor: AssetProcessor | None = None,
        attachment_resolver: AttachmentResolver | None = None,
    ):
        self.asset_processor = asset_processor
        self.attachment_resolver = attachment_resolver
        self.stats: dict[str, int] = _empty_stats()

    async def convert(
        self, markdown: str, source_path: Path | None = None
    ) -> list[Block]:
        """Convert *markdown* to blocks.

        Args:
            markdown: Document body (front matter already removed).
            source_path: Path of the source document, used to resolve
                relative image references.
        """
        self.stats = _empty_stats()
        blocks: list[Block] = []

        for section in segment(markdown):
            try:
                converted = await self._convert_section(section, source_path)
            except ParseDegradation as exc:
                self.stats["degraded_sections"] += 1
                logger.warning(
                    "Section at line %d degraded to plain text: %s",
                    section.start_line + 1,
                    exc,
                )
                converted = [Paragraph([Span(content=section.text.strip())])]
            blocks.extend(converted)

        logger.debug("Converted document to %d blocks: %s", len(blocks), self.stats)
        return blocks

    async def _convert_section(
        self, section: Section, source_path: Path | None
    ) -> list[Block]:
        if section.kind == HEADING:
            return [self._convert_heading(section)]
        if section.kind == FENCE:
            return [self._convert_code(section)]
        if section.kind == RULE:
            self.stats["dividers"] += 1
            return [Divider()]
        if section.kind == TABLE:
            return [self._convert_table(section)]
        if section.kind == LIST:
            return self._convert_list(section)
        if section.kind == BLOCKQUOTE:
            return [self._convert_quote(section)]
        if section.kind == PARAGRAPH:
            return await self._convert_paragraphs(section, source_path)
        raise ParseDegradation(f"Unknown section kind '{section.kind}'")

    # ------------------------------------------------------------------
    # Section handlers
    # ------------------------------------------------------------------

    def _convert_heading(self, section: Section) -> Heading:
        match = _HEADING_RE.match(section.text.strip())
        if match is None:
            raise ParseDegradation("Malformed heading")
        # The destination only has three heading levels.
        level = min(len(match.group(1)), 3)
        self.stats["headings"] += 1
        return Heading(level=level, text=parse_rich_text(match.group(2)))

    def _convert_code(self, section: Section) -> CodeBlock:
        """Convert a fenced code block.

        The opener is ```` ```lang meta ```` (or four backticks, used to wrap
        code containing triple backticks).  ``title="..."`` or
        ``filename="..."`` in the metadata becomes the caption, otherwise
        the raw metadata does.
        """
        lines = list(section.lines)
        while lines and not lines[0].strip():
            lines.pop(0)
        opener = lines[0].strip()
        ticks = fence_length(opener)
        if not ticks:
            raise ParseDegradation("Code section without a fence opener")

        info = opener[ticks:].strip()
        lang, _, metadata = info.partition(" ")
        body = lines[1:]
        if body and body[-1].strip() == "`" * ticks:
            body = body[:-1]
        else:
            logger.debug("Unclosed code fence at line %d", section.start_line + 1)

        if not lang:
            lang = "markdown" if ticks >= 4 else ""

        self.stats["code_blocks"] += 1
        return CodeBlock(
            language=map_language(lang),
            code="\n".join(body).strip("\n"),
            caption=_code_caption(metadata.strip()),
        )

    def _convert_table(self, section: Section) -> Table:
        lines = [line.strip() for line in section.lines if line.strip()]
        if len(lines) < 2 or not _TABLE_SEPARATOR_RE.match(lines[1]):
            raise ParseDegradation("Table without a header separator row")

        header = _split_row(lines[0])
        width = len(header)
        if width == 0:
            raise ParseDegradation("Table header has no cells")

        rows: list[list[RichText]] = [[parse_rich_text(c) for c in header]]
        for line in lines[2:]:
            cells = _split_row(line)
            # Pad short rows and truncate long ones to the header width.
            cells = (cells + [""] * width)[:width]
            rows.append([parse_rich_text(c) for c in cells])

        self.stats["tables"] += 1
        return Table(width=width, rows=rows)

    def _convert_list(self, section: Section) -> list[Block]:
        entries: list[tuple[str, bool | None, str]] = []
        for line in section.lines:
            stripped = line.strip()
            if not stripped:
                continue
            task = _TASK_RE.match(stripped)
            if task:
                entries.append(("task", task.group(1).lower() == "x", task.group(2)))
                continue
            bullet = _BULLET_RE.match(stripped)
            if bullet:
                entries.append(("bullet", None, bullet.group(1)))
                continue
            numbered = _NUMBERED_RE.match(stripped)
            if numbered:
                entries.append(("numbered", None, numbered.group(1)))
                continue
            if not entries:
                raise ParseDegradation("List run does not start with a list item")
            # Lazy continuation line.
            style, checked, text = entries[-1]
            entries[-1] = (style, checked, f"{text} {stripped}")

        self.stats["list_items"] += len(entries)
        return [
            ListItem(style=style, text=parse_rich_text(text), checked=checked)
            for style, checked, text in entries
        ]

    def _convert_quote(self, section: Section) -> Quote:
        content = "\n".join(
            _QUOTE_MARKER_RE.sub("", line, count=1) for line in section.lines
        ).strip()
        self.stats["quotes"] += 1
        return Quote(text=parse_rich_text(content))

    async def _convert_paragraphs(
        self, section: Section, source_path: Path | None
    ) -> list[Block]:
        blocks: list[Block] = []
        for chunk in _PARAGRAPH_SPLIT_RE.split(section.text):
            chunk = chunk.strip()
            if not chunk:
                continue
            image = _IMAGE_ONLY_RE.match(chunk)
            if image:
                alt, src, title = image.groups()
                blocks.append(await self._convert_image(alt, src, title, source_path))
                continue
            link = _LINK_ONLY_RE.match(chunk)
            if link and self.attachment_resolver is not None:
                text, href = link.groups()
                media = await self._convert_attachment(href, text, source_path)
                if media is not None:
                    blocks.append(media)
                    continue
            self.stats["paragraphs"] += 1
            blocks.append(Paragraph(parse_rich_text(chunk)))
        return blocks

    async def _convert_image(
        self,
        alt: str,
        src: str,
        title: str | None,
        source_path: Path | None,
    ) -> Block:
        media: MediaRef | None = None
        if self.asset_processor is not None:
            try:
                media = await self.asset_processor.resolve_image(
                    src, alt, title, source_path
                )
            except (DocMirrorError, OSError) as exc:
                logger.warning("Failed to process image %s: %s", src, exc)
        elif src.startswith(("http://", "https://")):
            media = MediaRef(media_type="image", locator=src, caption=title or alt or None)

        if media is None:
            self.stats["paragraphs"] += 1
            return image_fallback(alt)
        self.stats["images"] += 1
        return media

    async def _convert_attachment(
        self, href: str, text: str, source_path: Path | None
    ) -> MediaRef | None:
        try:
            media = await self.attachment_resolver.resolve_attachment(
                href, text, source_path
            )
        except (DocMirrorError, OSError) as exc:
            logger.warning("Failed to process attachment %s: %s", href, exc)
            return None
        if media is not None:
            self.stats["files"] += 1
        return media


def _split_row(line: str) -> list[str]:
    row = line.strip()
    if row.startswith("|"):
        row = row[1:]
    if row.endswith("|"):
        row = row[:-1]
    return [cell.strip() for cell in row.split("|")]


def _code_caption(metadata: str) -> str | None:
    if not metadata:
        return None
    for pattern in _META_KEY_RE.values():
        match = pattern.search(metadata)
        if match:
            return match.group(1)
    return metadata


def convert_markdown(markdown: str) -> list[Block]:
    """Convert *markdown* without an asset processor.

    Convenience wrapper for synchronous callers; must not be called from
    inside a running event loop.
    """
    return asyncio.run(BlockConverter().convert(markdown))
