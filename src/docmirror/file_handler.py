"""File handler module: path validation and encoding-aware reads.

All functions are pure apart from file I/O.
"""

from pathlib import Path

from charset_normalizer import from_bytes

MARKDOWN_EXTENSIONS: frozenset[str] = frozenset({".md", ".mdx", ".markdown"})

# =============================================================================
# Path Validation
# =============================================================================


def validate_file_path(path_str: str | Path, base_dir: Path | None = None) -> Path:
    """Validate and resolve an input file path.

    Relative paths are resolved against *base_dir* (default: CWD).

    Args:
        path_str: Path to an existing file.
        base_dir: Directory relative paths are resolved against.

    Returns:
        Resolved Path object pointing to the real file.

    Raises:
        ValueError: If the path doesn't exist or is not a file.
    """
    path = Path(path_str)
    if not path.is_absolute() and base_dir is not None:
        path = base_dir / path
    resolved = path.resolve()
    if not resolved.exists():
        raise ValueError(f"File not found: {path_str}")
    if not resolved.is_file():
        raise ValueError(f"Path is not a file: {path_str}")
    return resolved


def is_markdown_file(path: Path) -> bool:
    return path.suffix.lower() in MARKDOWN_EXTENSIONS


# =============================================================================
# File Read
# =============================================================================


def read_file_with_encoding(path: Path) -> tuple[str, str]:
    """Read a file with automatic encoding detection.

    Reads raw bytes first, then uses charset-normalizer to detect encoding.
    Defaults to UTF-8 for empty files or when detection fails.

    Args:
        path: Path to the file to read.

    Returns:
        Tuple of (content_string, detected_encoding).
    """
    raw = path.read_bytes()
    if not raw:
        return ("", "utf-8")

    result = from_bytes(raw).best()
    if result is None:
        encoding = "utf-8"
        content = raw.decode(encoding, errors="replace")
    else:
        encoding = result.encoding
        # ascii is a strict subset of utf-8
        if encoding == "ascii":
            encoding = "utf-8"
        content = str(result)
    return (content, encoding)

