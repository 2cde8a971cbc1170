"""
Hierarchical configuration loader for docmirror.

Discovers YAML config files by convention, supports ``!include`` and
``${VAR}`` / ``${VAR:-default}`` interpolation, and merges files with
"project wins" semantics.

Usage:
    from docmirror.config_loader import load_hierarchical_config

    raw = load_hierarchical_config(project_root)
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigurationInvalid

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "DOCMIRROR_CONFIG"
PROJECT_CONFIG_DIR = ".docmirror"

# ---------------------------------------------------------------------------
# 1. Env var interpolation
# ---------------------------------------------------------------------------

# Matches ${VAR} and ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Replace ``${VAR}`` and ``${VAR:-default}`` patterns with env values.

    * ``${VAR}`` is replaced with ``os.environ.get(VAR, "")``.
    * ``${VAR:-default}`` uses *default* when VAR is unset or empty.
    """

    def _replace(match: re.Match) -> str:
        env_val = os.environ.get(match.group(1))
        if env_val:
            return env_val
        default = match.group(2)
        return default if default is not None else ""

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _interpolate_recursive(obj: Any) -> Any:
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _interpolate_recursive(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_interpolate_recursive(item) for item in obj]
    return obj


# ---------------------------------------------------------------------------
# 2. YAML !include support
# ---------------------------------------------------------------------------


class ConfigLoader(yaml.SafeLoader):
    """YAML SafeLoader subclass with ``!include`` support.

    A dedicated subclass keeps the global ``yaml.SafeLoader`` untouched.
    Each load carries an include stack to detect cycles.
    """


def _include_constructor(
    loader: ConfigLoader, node: yaml.ScalarNode
) -> Any:
    """Handle ``!include path/to/file.yml`` directives."""
    include_path_str: str = loader.construct_scalar(node)

    if os.path.isabs(include_path_str):
        include_path = Path(include_path_str)
    else:
        include_path = Path(loader.name).resolve().parent / include_path_str
    include_path = include_path.resolve()

    include_stack: list[Path] = getattr(loader, "_include_stack", [])
    if include_path in include_stack:
        chain = " -> ".join(str(p) for p in [*include_stack, include_path])
        raise ConfigurationInvalid(f"Circular include detected: {chain}")

    if not include_path.exists():
        raise ConfigurationInvalid(
            f"Include file not found: {include_path} "
            f"(referenced from {Path(loader.name).resolve()})"
        )

    return _load_yaml_with_includes(
        include_path, _include_stack=[*include_stack, include_path]
    )


ConfigLoader.add_constructor("!include", _include_constructor)


def _load_yaml_with_includes(
    path: Path,
    *,
    _include_stack: list[Path] | None = None,
) -> Any:
    path = path.resolve()
    if _include_stack is None:
        _include_stack = [path]

    with open(path, "r", encoding="utf-8") as fh:
        loader = ConfigLoader(fh)
        loader._include_stack = _include_stack  # type: ignore[attr-defined]
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# 3. Convention-based file discovery
# ---------------------------------------------------------------------------


def discover_config_files(project_root: Path | None = None) -> list[Path]:
    """Return existing config file paths in precedence order (highest first).

    Search order:
        1. ``DOCMIRROR_CONFIG`` env var (explicit single path)
        2. ``.docmirror/config.yml`` in the project root
        3. ``.docmirror/config.yaml`` in the project root
        4. ``~/.config/docmirror/config.yml`` (XDG global)
    """
    root = project_root or Path.cwd()
    candidates: list[Path] = []

    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        candidates.append(Path(env_path).expanduser().resolve())

    candidates.append(root / PROJECT_CONFIG_DIR / "config.yml")
    candidates.append(root / PROJECT_CONFIG_DIR / "config.yaml")
    candidates.append(Path.home() / ".config" / "docmirror" / "config.yml")

    return [p for p in candidates if p.exists()]


# ---------------------------------------------------------------------------
# 4. Hierarchical merge
# ---------------------------------------------------------------------------


def load_hierarchical_config(project_root: Path | None = None) -> dict[str, Any]:
    """Load and merge all discovered config files.

    Files are loaded from lowest precedence to highest; each file's
    top-level keys replace (not deep-merge) those from earlier files.
    Env var interpolation is applied after the merge.

    Returns an empty dict when no config files exist (zero-config).

    Raises:
        ConfigurationInvalid: A config file is not valid YAML or an
            ``!include`` cannot be resolved.
    """
    paths = discover_config_files(project_root)

    if not paths:
        logger.debug("No config files found, using defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        try:
            data = _load_yaml_with_includes(path)
        except yaml.YAMLError as exc:
            raise ConfigurationInvalid(
                f"Invalid YAML in config file {path}: {exc}"
            ) from exc

        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Config file %s has non-dict root (%s), skipping",
                path,
                type(data).__name__,
            )

    return _interpolate_recursive(merged)
