"""Source corpus access: scanning, document loading, directory descriptors.

These are the sync engine's read-only inputs.  Paths handed to the engine
are relative to the project root and always use forward slashes, so they
are stable keys for ``SyncState``.
"""

from __future__ import annotations

import fnmatch
import json
import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import mistune
import yaml

from ..core.async_utils import run_sync
from ..file_handler import is_markdown_file, read_file_with_encoding

logger = logging.getLogger(__name__)

_FRONT_MATTER_RE = re.compile(r"\A---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)", re.DOTALL)

_ast_parser = mistune.create_markdown(renderer="ast")


@dataclass(frozen=True)
class DocumentRef:
    """A content file found by the scanner."""

    absolute_path: Path
    relative_path: str


@dataclass
class Document:
    """A loaded content file.

    Attributes:
        ref: Where the document came from.
        title: Resolved page title.
        body: Markdown with front matter removed.
        raw_content: Full file text, used for change detection.
        front_matter: Parsed front matter mapping (empty if none).
    """

    ref: DocumentRef
    title: str
    body: str
    raw_content: str
    front_matter: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Descriptor:
    """Optional per-directory metadata (``_category_.json``)."""

    label: str | None = None
    description: str | None = None
    position: int | float | None = None


# ---------------------------------------------------------------------------
# Scanning
# ---------------------------------------------------------------------------


def _is_excluded(relative: str, patterns: Sequence[str]) -> bool:
    return any(fnmatch.fnmatch(relative, pattern) for pattern in patterns)


def scan_documents(
    root: Path,
    project_root: Path,
    exclude: Sequence[str] = (),
) -> list[DocumentRef]:
    """Return every Markdown file under *root*, sorted by relative path.

    Hidden files and directories are skipped, as is anything whose path
    relative to *root* matches one of the *exclude* glob patterns.
    """
    if not root.is_dir():
        logger.warning("Docs directory not found: %s", root)
        return []

    refs: list[DocumentRef] = []
    for path in root.rglob("*"):
        rel_to_root = path.relative_to(root)
        if any(part.startswith(".") for part in rel_to_root.parts):
            continue
        if not path.is_file() or not is_markdown_file(path):
            continue
        if _is_excluded(rel_to_root.as_posix(), exclude):
            logger.debug("Excluded %s", rel_to_root)
            continue
        refs.append(
            DocumentRef(
                absolute_path=path.resolve(),
                relative_path=path.resolve().relative_to(project_root.resolve()).as_posix(),
            )
        )
    refs.sort(key=lambda ref: ref.relative_path)
    return refs


# ---------------------------------------------------------------------------
# Document loading
# ---------------------------------------------------------------------------


def split_front_matter(content: str) -> tuple[dict[str, Any], str]:
    """Split YAML front matter from the Markdown body.

    Malformed front matter is logged and dropped; the body is still
    returned without it.
    """
    match = _FRONT_MATTER_RE.match(content.lstrip("\ufeff"))
    if match is None:
        return {}, content
    body = content.lstrip("\ufeff")[match.end() :]
    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError as exc:
        logger.warning("Ignoring malformed front matter: %s", exc)
        return {}, body
    if not isinstance(data, dict):
        return {}, body
    return data, body


def _token_text(token: dict[str, Any]) -> str:
    if "raw" in token:
        return token["raw"]
    return "".join(_token_text(child) for child in token.get("children", []))


def first_heading(markdown: str) -> str | None:
    """Return the text of the first level-1 heading, if any."""
    for token in _ast_parser(markdown):
        if token.get("type") == "heading" and token.get("attrs", {}).get("level") == 1:
            text = _token_text(token).strip()
            if text:
                return text
    return None


def title_from_filename(path: Path) -> str:
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), re.sub(r"[-_]", " ", path.stem)).strip()


def load_document(ref: DocumentRef) -> Document:
    """Read and split a content file.

    Title precedence: front matter ``title`` > first ``#`` heading >
    file name.
    """
    content, _encoding = read_file_with_encoding(ref.absolute_path)
    front_matter, body = split_front_matter(content)

    title = front_matter.get("title")
    if not isinstance(title, str) or not title.strip():
        title = first_heading(body) or title_from_filename(ref.absolute_path)

    return Document(
        ref=ref,
        title=title.strip(),
        body=body,
        raw_content=content,
        front_matter=front_matter,
    )


async def load_document_async(ref: DocumentRef) -> Document:
    return await run_sync(load_document, ref)


# ---------------------------------------------------------------------------
# Directory descriptors
# ---------------------------------------------------------------------------


class DescriptorLoader:
    """Read and cache per-directory descriptor files.

    Args:
        project_root: Base for the relative directory paths passed in.
        file_name: Descriptor file name inside each directory.
    """

    def __init__(self, project_root: Path, file_name: str = "_category_.json"):
        self.project_root = project_root
        self.file_name = file_name
        self._cache: dict[str, Descriptor] = {}

    def load(self, directory: str) -> Descriptor:
        """Return the descriptor for *directory* (relative to project root)."""
        if directory in self._cache:
            return self._cache[directory]

        path = self.project_root / directory / self.file_name
        descriptor = Descriptor()
        if path.is_file():
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                logger.warning("Ignoring unreadable descriptor %s: %s", path, exc)
                data = None
            if isinstance(data, dict):
                link = data.get("link") if isinstance(data.get("link"), dict) else {}
                position = data.get("position")
                descriptor = Descriptor(
                    label=data.get("label") or None,
                    description=link.get("description") or data.get("description") or None,
                    position=position if isinstance(position, (int, float)) else None,
                )
                logger.debug("Loaded descriptor for %s: %s", directory, descriptor.label)

        self._cache[directory] = descriptor
        return descriptor
