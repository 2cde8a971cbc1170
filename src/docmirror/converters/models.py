"""Destination-neutral content model produced by the Markdown converter.

Blocks are a closed tagged union: every block class carries a ``kind``
class attribute that renderers dispatch on.  Inline text is a list of
``Span`` objects (``RichText``).

Spans keep two strings:

* ``content`` -- the display text (formatting markers stripped).
* ``source`` -- the exact slice of the input the span was produced from,
  so ``"".join(s.source for s in spans)`` reproduces the parsed text.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

BOLD = "bold"
ITALIC = "italic"
CODE = "code"
STRIKETHROUGH = "strikethrough"

ANNOTATIONS: frozenset[str] = frozenset({BOLD, ITALIC, CODE, STRIKETHROUGH})


@dataclass(frozen=True)
class Span:
    """One run of uniformly formatted inline text."""

    content: str
    annotations: frozenset[str] = frozenset()
    link: str | None = None
    source: str | None = None

    def __post_init__(self) -> None:
        if self.source is None:
            object.__setattr__(self, "source", self.content)
        unknown = self.annotations - ANNOTATIONS
        if unknown:
            raise ValueError(f"Unknown annotations: {sorted(unknown)}")

    @property
    def is_plain(self) -> bool:
        return not self.annotations and self.link is None


RichText = list[Span]


def plain_text(rich_text: RichText) -> str:
    """Return the display text of *rich_text* without formatting."""
    return "".join(span.content for span in rich_text)


def source_text(rich_text: RichText) -> str:
    """Return the original source text *rich_text* was parsed from."""
    return "".join(span.source or "" for span in rich_text)


# ---------------------------------------------------------------------------
# Blocks
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Heading:
    level: int
    text: RichText
    kind = "heading"

    def __post_init__(self) -> None:
        if not 1 <= self.level <= 3:
            raise ValueError(f"Heading level must be 1..3, got {self.level}")


@dataclass(frozen=True)
class Paragraph:
    text: RichText
    kind = "paragraph"


@dataclass(frozen=True)
class ListItem:
    """A flat list entry; ``style`` is ``bullet``, ``numbered`` or ``task``."""

    style: str
    text: RichText
    checked: bool | None = None
    kind = "list_item"


@dataclass(frozen=True)
class Table:
    """Rectangular table; ``rows[0]`` is the header row."""

    width: int
    rows: list[list[RichText]]
    kind = "table"

    def __post_init__(self) -> None:
        for index, row in enumerate(self.rows):
            if len(row) != self.width:
                raise ValueError(
                    f"Row {index} has {len(row)} cells, expected {self.width}"
                )


@dataclass(frozen=True)
class CodeBlock:
    language: str
    code: str
    caption: str | None = None
    kind = "code"


@dataclass(frozen=True)
class Quote:
    text: RichText
    kind = "quote"


@dataclass(frozen=True)
class Divider:
    kind = "divider"


@dataclass(frozen=True)
class MediaRef:
    """Reference to an image or file.

    ``locator`` is whatever the destination needs to find the asset: an
    external URL, or ``file_upload:<id>`` once an asset processor has
    uploaded a local file.  ``media_type`` is ``image`` or ``file``.
    """

    media_type: str
    locator: str
    caption: str | None = None
    kind = "media"


Block = Union[
    Heading, Paragraph, ListItem, Table, CodeBlock, Quote, Divider, MediaRef
]


# ---------------------------------------------------------------------------
# Segmenter output
# ---------------------------------------------------------------------------


@dataclass
class Section:
    """A contiguous run of source lines that converts to one block group.

    Attributes:
        kind: Line class of the first non-blank line (``heading``,
            ``fence``, ``rule``, ``table``, ``list``, ``blockquote``,
            ``paragraph``) or ``blank``.
        lines: Raw source lines, without trailing newlines.
        start_line: Zero-based index of the first line in the document.
    """

    kind: str
    lines: list[str] = field(default_factory=list)
    start_line: int = 0

    @property
    def text(self) -> str:
        return "\n".join(self.lines)
