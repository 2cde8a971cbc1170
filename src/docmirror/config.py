"""Run configuration for docmirror.

Reads Notion and sync settings from CLI args, environment variables,
.env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    NOTION_API_TOKEN: Notion integration token (required)
    NOTION_ROOT_PAGE_ID: Parent page for the mirror (optional; auto-created)
    DOCMIRROR_DOCS_DIR: Documentation directory (optional, default: docs)
    DOCMIRROR_REQUEST_INTERVAL: Seconds between API requests (optional, default: 0.334)
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path

from .errors import ConfigurationInvalid

logger = logging.getLogger(__name__)

_PAGE_ID_RE = re.compile(r"^[0-9a-fA-F]{32}$")


@dataclass
class Config:
    api_token: str
    project_root: Path
    root_page_id: str | None = None
    root_title: str = "Documentation"
    docs_dir: str = "docs"
    skip_segment: str | None = "docs"
    flat_mode: bool = False
    state_dir: str = ".docmirror"
    descriptor_name: str = "_category_.json"
    exclude: list[str] = field(default_factory=list)
    request_interval: float = 0.334
    max_blocks_per_request: int = 100
    timeout: float = 30.0
    upload_cache_ttl_minutes: float = 10
    debug: bool = False

    @property
    def docs_path(self) -> Path:
        return self.project_root / self.docs_dir

    @property
    def state_file(self) -> Path:
        return self.project_root / self.state_dir / "notion-state.json"


def validate_config(config: Config) -> None:
    """Validate configuration values.

    Raises:
        ConfigurationInvalid: If the token is empty, the root page id is
            malformed, or numeric limits are out of range.
    """
    config.api_token = config.api_token.strip()
    if not config.api_token:
        raise ConfigurationInvalid(
            "Notion API token cannot be empty. Set NOTION_API_TOKEN environment variable."
        )

    if config.root_page_id is not None:
        config.root_page_id = config.root_page_id.strip() or None
    if config.root_page_id is not None:
        if not _PAGE_ID_RE.match(config.root_page_id.replace("-", "")):
            raise ConfigurationInvalid(
                f"Invalid root page id '{config.root_page_id}': "
                "expected 32 hexadecimal characters (dashes optional)"
            )

    if not 1 <= config.max_blocks_per_request <= 100:
        raise ConfigurationInvalid(
            f"Invalid max_blocks_per_request {config.max_blocks_per_request}: "
            "must be between 1 and 100"
        )

    if config.request_interval < 0:
        raise ConfigurationInvalid(
            f"Invalid request interval {config.request_interval}: must not be negative"
        )

    if not config.docs_path.is_dir():
        logger.warning("Docs directory does not exist: %s", config.docs_path)


def load_config(
    project_root: Path | str | None = None,
    api_token: str | None = None,
    root_page_id: str | None = None,
    docs_dir: str | None = None,
    flat_mode: bool = False,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        project_root: Directory holding the docs tree and state directory.
        api_token: Override API token.
        root_page_id: Override root page id.
        docs_dir: Override docs directory (relative to project_root).
        flat_mode: Put every page under the root (CLI flag).
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Flattened ``notion`` and ``sync`` YAML sections
            (see ``config_schema.to_config_fallbacks``).

    Returns:
        Validated Config instance.

    Raises:
        ConfigurationInvalid: If the token is missing after checking all
            sources, or any value is malformed.
    """
    fb = yaml_fallbacks or {}
    root = Path(project_root or Path.cwd()).resolve()

    # --- String fields: CLI > env > YAML > default ---

    token = api_token or os.getenv("NOTION_API_TOKEN") or fb.get("api_token")
    if not token:
        raise ConfigurationInvalid(
            "Notion API token not found. Set NOTION_API_TOKEN environment variable, "
            "or add 'notion.api_token' to .docmirror/config.yml."
        )

    page_id = (
        root_page_id or os.getenv("NOTION_ROOT_PAGE_ID") or fb.get("root_page_id")
    )

    final_docs_dir = (
        docs_dir or os.getenv("DOCMIRROR_DOCS_DIR") or fb.get("docs_dir") or "docs"
    )

    # --- Numeric fields: env > YAML > default ---

    interval_raw = os.getenv("DOCMIRROR_REQUEST_INTERVAL")
    if interval_raw is not None:
        try:
            interval = float(interval_raw)
        except ValueError:
            raise ConfigurationInvalid(
                f"Invalid DOCMIRROR_REQUEST_INTERVAL '{interval_raw}': must be a number of seconds"
            ) from None
    else:
        interval = float(fb.get("request_interval", 0.334))

    config = Config(
        api_token=token,
        project_root=root,
        root_page_id=page_id,
        root_title=fb.get("root_title") or "Documentation",
        docs_dir=final_docs_dir,
        skip_segment=fb.get("skip_segment", "docs"),
        flat_mode=flat_mode or bool(fb.get("flat_mode", False)),
        state_dir=fb.get("state_dir") or ".docmirror",
        descriptor_name=fb.get("descriptor_name") or "_category_.json",
        exclude=list(fb.get("exclude") or []),
        request_interval=interval,
        max_blocks_per_request=int(fb.get("max_blocks_per_request", 100)),
        timeout=float(fb.get("timeout", 30.0)),
        upload_cache_ttl_minutes=float(fb.get("upload_cache_ttl_minutes", 10)),
        debug=debug,
    )

    validate_config(config)

    return config
