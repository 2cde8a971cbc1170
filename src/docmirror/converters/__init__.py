"""Markdown to block conversion and destination rendering."""

from .blocks import BlockConverter, convert_markdown
from .common import chunk_blocks, map_language
from .models import (
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
from .render import NotionRenderer, Renderer
from .rich_text import parse_rich_text, validate_url
from .segmenter import classify_line, segment

__all__ = [
    "Block",
    "BlockConverter",
    "CodeBlock",
    "Divider",
    "Heading",
    "ListItem",
    "MediaRef",
    "NotionRenderer",
    "Paragraph",
    "Quote",
    "Renderer",
    "RichText",
    "Section",
    "Span",
    "Table",
    "chunk_blocks",
    "classify_line",
    "convert_markdown",
    "map_language",
    "parse_rich_text",
    "segment",
    "validate_url",
]
