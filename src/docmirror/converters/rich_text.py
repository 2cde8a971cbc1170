"""Inline Markdown to ``Span`` list conversion.

Each formatting class is scanned independently over the whole input, in
strict precedence order:

1. images  ``![alt](src "title")``
2. links   ``[text](url)``
3. inline code  `` `code` ``
4. bold    ``**text**``
5. italic  ``*text*``
6. strikethrough  ``~~text~~``

A candidate is dropped when its range overlaps a match already accepted
from a higher-precedence class.  The one exception is a bold run whose
whole inner text is a single link (``**[text](url)**``): it replaces the
link it wraps and becomes one bold span carrying the link target.

Text between accepted matches is emitted as plain spans, so joining every
span's ``source`` reproduces the input exactly.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import urlparse

from .models import BOLD, CODE, ITALIC, STRIKETHROUGH, RichText, Span

IMAGE_PATTERN = re.compile(r'!\[([^\]]*)\]\(([^\s)]+)(?:\s+"([^"]*)")?\)')
LINK_PATTERN = re.compile(r"\[([^\]]+)\]\(([^)]+)\)")
CODE_PATTERN = re.compile(r"`([^`]+)`")
BOLD_PATTERN = re.compile(r"\*\*([^*]+)\*\*")
ITALIC_PATTERN = re.compile(r"\*([^*]+)\*")
STRIKE_PATTERN = re.compile(r"~~([^~]+)~~")


@dataclass(frozen=True)
class _Match:
    type: str
    start: int
    end: int
    text: str
    url: str | None = None

    def overlaps(self, other: _Match) -> bool:
        return self.start < other.end and other.start < self.end

    def contains(self, other: _Match) -> bool:
        return self.start <= other.start and other.end <= self.end


def validate_url(url: str | None) -> str | None:
    """Return a destination-safe form of *url*, or ``None`` to reject it.

    Anchor-only, relative, root-relative and ``file://`` targets cannot be
    resolved outside the source site and are rejected.  Bare
    ``domain.tld/...`` strings are promoted to ``https://``.
    """
    if not url or not isinstance(url, str):
        return None
    url = url.strip()
    if not url:
        return None

    if url.startswith("#"):
        return None
    if url.startswith(("./", "../")):
        return None
    if url.startswith("file://"):
        return None
    if url.startswith("//"):
        url = f"https:{url}"
    elif url.startswith("/"):
        return None

    if url.startswith(("http://", "https://")):
        try:
            parsed = urlparse(url)
        except ValueError:
            # Malformed bracketed host, e.g. ``http://[oops``.
            return None
        if parsed.netloc and " " not in url:
            return url
        return None

    if url.startswith("mailto:"):
        return url if len(url) > len("mailto:") else None

    if "." in url and " " not in url:
        candidate = f"https://{url}"
        try:
            host = urlparse(candidate).hostname or ""
        except ValueError:
            return None
        if "." in host and not host.startswith(".") and not host.endswith("."):
            return candidate
    return None


def _collect(
    pattern: re.Pattern[str],
    match_type: str,
    text: str,
    accepted: list[_Match],
) -> list[_Match]:
    """Return non-overlapping candidates of one class."""
    found: list[_Match] = []
    for m in pattern.finditer(text):
        candidate = _Match(match_type, m.start(), m.end(), m.group(1))
        if any(candidate.overlaps(other) for other in accepted):
            continue
        found.append(candidate)
    return found


def _collect_bold(text: str, accepted: list[_Match]) -> list[_Match]:
    """Collect bold matches, folding ``**[text](url)**`` into bold-links.

    A bold-link absorbs the link match it wraps; *accepted* is updated in
    place to drop that link.
    """
    found: list[_Match] = []
    for m in BOLD_PATTERN.finditer(text):
        inner = m.group(1)
        link = LINK_PATTERN.fullmatch(inner)
        if link is not None:
            candidate = _Match(
                "bold_link",
                m.start(),
                m.end(),
                link.group(1),
                url=link.group(2),
            )
            absorbed = [
                other
                for other in accepted
                if other.type == "link" and candidate.contains(other)
            ]
            blockers = [
                other
                for other in accepted
                if other not in absorbed and candidate.overlaps(other)
            ]
            if blockers:
                continue
            for other in absorbed:
                accepted.remove(other)
            found.append(candidate)
            continue

        candidate = _Match("bold", m.start(), m.end(), inner)
        if any(candidate.overlaps(other) for other in accepted):
            continue
        found.append(candidate)
    return found


def _to_span(match: _Match, source: str) -> Span:
    if match.type == "image":
        return Span(content=source, annotations=frozenset({ITALIC}), source=source)
    if match.type == "link":
        url = validate_url(match.url)
        if url is None:
            return Span(content=source, source=source)
        return Span(content=match.text, link=url, source=source)
    if match.type == "bold_link":
        url = validate_url(match.url)
        if url is None:
            return Span(
                content=f"[{match.text}]({match.url})",
                annotations=frozenset({BOLD}),
                source=source,
            )
        return Span(
            content=match.text,
            annotations=frozenset({BOLD}),
            link=url,
            source=source,
        )
    annotation = {
        "code": CODE,
        "bold": BOLD,
        "italic": ITALIC,
        "strikethrough": STRIKETHROUGH,
    }[match.type]
    return Span(
        content=match.text,
        annotations=frozenset({annotation}),
        source=source,
    )


def parse_rich_text(text: str | None) -> RichText:
    """Parse one paragraph of inline Markdown into spans.

    Never raises: anything that does not match a recognised construct is
    emitted as plain text.  Empty input yields an empty list.
    """
    if not text:
        return []

    accepted: list[_Match] = []

    for m in IMAGE_PATTERN.finditer(text):
        accepted.append(_Match("image", m.start(), m.end(), m.group(1), m.group(2)))

    for m in LINK_PATTERN.finditer(text):
        candidate = _Match("link", m.start(), m.end(), m.group(1), m.group(2))
        if not any(candidate.overlaps(other) for other in accepted):
            accepted.append(candidate)

    accepted.extend(_collect(CODE_PATTERN, "code", text, accepted))
    accepted.extend(_collect_bold(text, accepted))
    accepted.extend(_collect(ITALIC_PATTERN, "italic", text, accepted))
    accepted.extend(_collect(STRIKE_PATTERN, "strikethrough", text, accepted))

    accepted.sort(key=lambda match: match.start)

    spans: RichText = []
    position = 0
    for match in accepted:
        if match.start > position:
            spans.append(Span(content=text[position : match.start]))
        spans.append(_to_span(match, text[match.start : match.end]))
        position = match.end
    if position < len(text):
        spans.append(Span(content=text[position:]))
    return spans
