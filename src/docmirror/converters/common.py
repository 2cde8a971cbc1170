"""Common utilities shared by the converter and renderers."""

from collections.abc import Iterator, Sequence
from typing import TypeVar

T = TypeVar("T")

PLAIN_TEXT = "plain text"

# Destination API limit for blocks appended in one call.
MAX_BLOCKS_PER_REQUEST = 100

# =============================================================================
# Code Block Language Mapping
# =============================================================================
#
# Markdown code fences carry free-form language tags (```js, ```sh, ...).
# The destination only accepts a fixed set of language names, so tags are
# normalised in two steps:
#
# - Aliases are rewritten to their canonical destination name
# - Anything outside the supported set becomes "plain text"
#
# Diagram languages are rendered as plain text; they have no highlighter.
# =============================================================================

_LANGUAGE_ALIASES: dict[str, str] = {
    # JavaScript / TypeScript variants
    "js": "javascript",
    "jsx": "javascript",
    "ts": "typescript",
    "tsx": "typescript",
    # Scripting
    "py": "python",
    "rb": "ruby",
    "sh": "shell",
    "bash": "shell",
    "zsh": "shell",
    # Data / markup
    "md": "markdown",
    "yml": "yaml",
    "text": PLAIN_TEXT,
    "txt": PLAIN_TEXT,
    "plaintext": PLAIN_TEXT,
    "dockerfile": "docker",
    # Diagram languages
    "d2": PLAIN_TEXT,
    "mermaid": PLAIN_TEXT,
    "plantuml": PLAIN_TEXT,
    "dot": PLAIN_TEXT,
    "graphviz": PLAIN_TEXT,
}

SUPPORTED_LANGUAGES: frozenset[str] = frozenset(
    {
        "abap", "abc", "agda", "arduino", "ascii art", "assembly", "bash",
        "basic", "bnf", "c", "c#", "c++", "clojure", "coffeescript", "coq",
        "css", "dart", "dhall", "diff", "docker", "ebnf", "elixir", "elm",
        "erlang", "f#", "flow", "fortran", "gherkin", "glsl", "go",
        "graphql", "groovy", "haskell", "hcl", "html", "idris", "java",
        "java/c/c++/c#", "javascript", "json", "julia", "kotlin", "latex",
        "less", "lisp", "livescript", "llvm ir", "lua", "makefile",
        "markdown", "markup", "mathematica", "matlab", "mermaid", "nix",
        "notion formula", "objective-c", "ocaml", "pascal", "perl", "php",
        PLAIN_TEXT, "powershell", "prolog", "protobuf", "purescript",
        "python", "r", "racket", "reason", "ruby", "rust", "sass", "scala",
        "scheme", "scss", "shell", "smalltalk", "solidity", "sql", "swift",
        "toml", "typescript", "vb.net", "verilog", "vhdl", "visual basic",
        "webassembly", "xml", "yaml",
    }
)


def map_language(lang: str | None) -> str:
    """
    Normalise a code fence language tag to a supported destination language.

    Args:
        lang: Language tag from the fence opener (e.g. 'js', 'Python', '')

    Returns:
        Supported language name; 'plain text' for empty or unknown tags.

    Examples:
        >>> map_language("js")
        'javascript'
        >>> map_language("mermaid")
        'plain text'
        >>> map_language("cobol")
        'plain text'
    """
    if not lang:
        return PLAIN_TEXT
    lang_lower = lang.strip().lower()

    if lang_lower in _LANGUAGE_ALIASES:
        return _LANGUAGE_ALIASES[lang_lower]

    return lang_lower if lang_lower in SUPPORTED_LANGUAGES else PLAIN_TEXT


def chunk_blocks(
    blocks: Sequence[T], size: int = MAX_BLOCKS_PER_REQUEST
) -> Iterator[list[T]]:
    """Yield consecutive slices of *blocks* of at most *size* items."""
    if size < 1:
        raise ValueError(f"Chunk size must be positive, got {size}")
    for start in range(0, len(blocks), size):
        yield list(blocks[start : start + size])
