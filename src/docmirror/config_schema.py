"""Unified configuration schema for docmirror.

Pydantic models for the YAML config file, with one section for the Notion
destination, one for the sync run and one for logging.

Usage:
    from docmirror.config_schema import build_config, to_config_fallbacks

    raw = load_hierarchical_config(project_root)
    unified = build_config(raw)
    fallbacks = to_config_fallbacks(unified)
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from .errors import ConfigurationInvalid

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class NotionConfig(BaseModel):
    """Notion destination settings.

    Token and root page are optional here: env vars and CLI args can
    supply them at runtime instead.
    """

    api_token: str | None = Field(
        default=None, description="Notion integration token"
    )
    root_page_id: str | None = Field(
        default=None,
        description="Parent page for the mirror; auto-created when unset",
    )
    root_title: str = Field(
        default="Documentation",
        description="Title used when auto-creating the root page",
    )
    request_interval: float = Field(
        default=0.334,
        ge=0,
        le=60,
        description="Minimum seconds between API requests",
    )
    max_blocks_per_request: int = Field(
        default=100,
        ge=1,
        le=100,
        description="Blocks appended per API call (API maximum is 100)",
    )
    timeout: float = Field(
        default=30.0, gt=0, description="HTTP timeout in seconds"
    )

    model_config = {"frozen": True}


class SyncSection(BaseModel):
    """Corpus and state settings."""

    docs_dir: str = Field(
        default="docs", description="Documentation root, relative to project"
    )
    skip_segment: str | None = Field(
        default="docs",
        description="Leading path segment not mirrored as a container page",
    )
    flat_mode: bool = Field(
        default=False,
        description="Put every page directly under the root page",
    )
    state_dir: str = Field(
        default=".docmirror", description="Directory holding the state file"
    )
    descriptor_name: str = Field(
        default="_category_.json",
        description="Per-directory descriptor file name",
    )
    exclude: list[str] = Field(
        default_factory=list,
        description="Glob patterns (relative to docs_dir) to skip",
    )
    upload_cache_ttl_minutes: float = Field(
        default=10, gt=0, description="Lifetime of cached file uploads"
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has defaults, so ``UnifiedConfig()`` is always valid.
    """

    notion: NotionConfig = Field(default_factory=NotionConfig)
    sync: SyncSection = Field(default_factory=SyncSection)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from ``load_hierarchical_config()`` output.

    Raises:
        ConfigurationInvalid: A section has a malformed value.
    """
    if not raw_data:
        return UnifiedConfig()

    try:
        return UnifiedConfig(**raw_data)
    except ValidationError as exc:
        raise ConfigurationInvalid(f"Invalid configuration file: {exc}") from exc


def to_config_fallbacks(unified: UnifiedConfig) -> dict[str, Any]:
    """Flatten the notion and sync sections into ``load_config`` fallbacks."""
    fallbacks: dict[str, Any] = {}
    fallbacks.update(unified.notion.model_dump())
    fallbacks.update(unified.sync.model_dump())
    return fallbacks
