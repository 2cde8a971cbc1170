"""Split a Markdown document into logical sections.

Lines are classified one at a time.  Fenced code is opaque: once a fence
of *n* backticks opens, every line is appended to the open section until
a line consisting of exactly *n* backticks closes it, so a nested fence of
a different length is literal content.

Outside fences a new section starts when:

* the line is a heading, a fence opener or a thematic break;
* the running section is a heading or thematic break (both are
  single-line sections);
* the line's class differs from the previous line's and neither is a
  paragraph line;
* the line starts a table, list or blockquote run;
* the running section is a table and the line is not a table row.

Blank-only sections are dropped from the result.
"""

from __future__ import annotations

import re

from .models import Section

HEADING = "heading"
FENCE = "fence"
RULE = "rule"
TABLE = "table"
LIST = "list"
BLOCKQUOTE = "blockquote"
PARAGRAPH = "paragraph"
BLANK = "blank"

_HEADING_RE = re.compile(r"^#{1,6}\s+")
_FENCE_RE = re.compile(r"^(`{3,})(.*)$")
_RULE_RE = re.compile(r"^(?:-{3,}|\*{3,}|_{3,})$")
_LIST_RE = re.compile(r"^(?:[*+-]|\d+[.)])\s+")

_STRUCTURED = frozenset({TABLE, LIST, BLOCKQUOTE})
_SINGLE_LINE = frozenset({HEADING, RULE})


def fence_length(line: str) -> int:
    """Return the backtick count if *line* opens a fence, else 0."""
    match = _FENCE_RE.match(line.strip())
    if match is None:
        return 0
    # An opener's info string may not itself contain backticks.
    if "`" in match.group(2):
        return 0
    return len(match.group(1))


def classify_line(line: str) -> str:
    """Classify one line found outside a fenced code block."""
    stripped = line.strip()
    if not stripped:
        return BLANK
    if _HEADING_RE.match(stripped):
        return HEADING
    if fence_length(stripped):
        return FENCE
    if _RULE_RE.match(stripped):
        return RULE
    if stripped.startswith("|"):
        return TABLE
    if _LIST_RE.match(stripped):
        return LIST
    if stripped.startswith(">"):
        return BLOCKQUOTE
    return PARAGRAPH


def _is_boundary(line_class: str, previous: str, section_kind: str) -> bool:
    if line_class in (HEADING, FENCE, RULE):
        return True
    if section_kind in _SINGLE_LINE:
        return True
    if (
        line_class != previous
        and line_class != PARAGRAPH
        and previous != PARAGRAPH
    ):
        return True
    if line_class in _STRUCTURED and line_class != previous:
        return True
    if section_kind == TABLE and line_class != TABLE:
        return True
    return False


def segment(document: str) -> list[Section]:
    """Split *document* into an ordered list of ``Section`` objects."""
    text = document.replace("\r\n", "\n").replace("\r", "\n")
    lines = text.split("\n")

    sections: list[Section] = []
    current: Section | None = None
    previous = BLANK
    open_fence = 0

    def flush() -> None:
        nonlocal current
        if current is not None and any(l.strip() for l in current.lines):
            sections.append(current)
        current = None

    for index, line in enumerate(lines):
        if open_fence and current is not None:
            current.lines.append(line)
            if line.strip() == "`" * open_fence:
                open_fence = 0
                flush()
                previous = BLANK
            continue

        line_class = classify_line(line)

        if current is not None and current.lines and _is_boundary(
            line_class, previous, current.kind
        ):
            flush()

        if current is None:
            current = Section(kind=line_class, start_line=index)
        elif current.kind == BLANK and line_class != BLANK:
            current.kind = line_class

        current.lines.append(line)
        previous = line_class

        if line_class == FENCE:
            open_fence = fence_length(line)

    flush()
    return sections
