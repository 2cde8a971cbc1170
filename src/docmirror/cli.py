"""Command-line entry point for docmirror.

Commands:
    sync    Mirror the docs tree (or one directory / file) into Notion.
    status  Show what the state file knows about the last sync.

Exit codes: 0 on success, 1 when any file failed, 2 on a configuration
error.
"""

import argparse
import asyncio
import json
import logging
import os
import sys
import threading
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from . import __version__
from .config import Config, load_config
from .config_loader import discover_config_files, load_hierarchical_config
from .config_schema import UnifiedConfig, build_config, to_config_fallbacks
from .core.client import AsyncNotionClient, NotionClient
from .errors import ConfigurationInvalid, DocMirrorError
from .logger import setup_logging
from .sync import (
    SyncOrchestrator,
    SyncState,
    format_dry_run_preview,
    format_status,
    format_sync_report,
    report_to_json,
)
from .sync.corpus import DescriptorLoader
from .sync.hierarchy import HierarchyResolver
from .sync.state import AUTO_ROOT_PAGE_ID

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_CONFIG = 2

WATCHDOG_SECONDS = 10.0


def _stderr_print(msg: str) -> None:
    print(msg, file=sys.stderr, flush=True)


def _install_watchdog(exit_code: int, seconds: float = WATCHDOG_SECONDS) -> threading.Timer:
    """Force the process to exit if interpreter shutdown hangs."""
    timer = threading.Timer(seconds, os._exit, args=(exit_code,))
    timer.daemon = True
    timer.start()
    return timer


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def _load_unified(project_root: Path) -> UnifiedConfig:
    if not discover_config_files(project_root):
        return UnifiedConfig()
    return build_config(load_hierarchical_config(project_root))


def _build_config(args: argparse.Namespace, unified: UnifiedConfig) -> Config:
    return load_config(
        project_root=args.project_root,
        docs_dir=getattr(args, "docs_dir", None),
        flat_mode=getattr(args, "flat", False),
        debug=args.debug,
        yaml_fallbacks=to_config_fallbacks(unified),
    )


def _make_client(config: Config) -> AsyncNotionClient:
    return AsyncNotionClient(NotionClient(config))


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def _run_sync(args: argparse.Namespace, config: Config) -> int:
    orchestrator = SyncOrchestrator(config, _make_client(config), dry_run=args.dry_run)

    if args.file:
        report = await orchestrator.sync_file(args.file, force=args.force)
    elif args.dir:
        report = await orchestrator.sync_directory(args.dir, force=args.force)
    else:
        report = await orchestrator.sync_docs(force=args.force)

    if args.json:
        print(json.dumps(report_to_json(report), indent=2))
    elif report.dry_run:
        print(format_dry_run_preview(report))
    else:
        print(format_sync_report(report))

    return EXIT_FAILURES if report.has_failures else EXIT_OK


async def _run_status(args: argparse.Namespace, config: Config) -> int:
    state = SyncState(config.state_file, root_page_id=config.root_page_id, read_only=True)
    resolver = HierarchyResolver(
        _make_client(config),
        state,
        DescriptorLoader(config.project_root, config.descriptor_name),
        skip_segment=config.skip_segment,
        root_title=config.root_title,
    )

    evicted: list[str] = []
    if args.validate:
        evicted = await resolver.validate_hierarchy()

    root_id = config.root_page_id or state.get_metadata(AUTO_ROOT_PAGE_ID)
    if args.json:
        payload: dict[str, Any] = {
            "root_page_id": root_id,
            "last_sync_at": state.last_sync_at,
            "tracked_files": len(state.records()),
            "statistics": state.statistics(),
            "uploads": state.upload_cache_statistics(),
            "hierarchy": [node.model_dump() for node in resolver.hierarchy_tree()],
        }
        if args.validate:
            payload["stale_containers"] = evicted
        print(json.dumps(payload, indent=2))
    else:
        print(
            format_status(
                state.statistics(),
                resolver.hierarchy_tree(),
                upload_stats=state.upload_cache_statistics(),
                root_page_id=root_id,
                record_count=len(state.records()),
                last_sync_at=state.last_sync_at,
            )
        )
        if evicted:
            print("")
            print("Stale containers (will be recreated on next sync):")
            for key in evicted:
                print(f"  {key}")
    return EXIT_OK


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docmirror",
        description="Mirror a Markdown documentation tree into Notion",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Sync everything under docs/ (token from NOTION_API_TOKEN or .env)
  docmirror sync

  # Preview what would change
  docmirror sync --dry-run

  # Re-upload one file even if unchanged
  docmirror sync --file docs/guide/intro.md --force

  # Show the state of the last sync
  docmirror status
        """,
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"docmirror version {__version__}",
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--project-root",
        default=None,
        help="Project directory holding docs/ and .docmirror/ (default: current directory)",
    )
    common.add_argument("--debug", action="store_true", help="Enable debug logging")
    common.add_argument("--log-file", help="Also append log records to this file")
    common.add_argument(
        "--log-format",
        choices=["text", "json"],
        default="text",
        help="Log record format (default: text)",
    )
    common.add_argument("--json", action="store_true", help="Print machine-readable JSON")

    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser("sync", parents=[common], help="Sync docs to Notion")
    target = sync_parser.add_mutually_exclusive_group()
    target.add_argument("--file", help="Sync a single Markdown file")
    target.add_argument("--dir", help="Sync one directory (no orphan pruning)")
    sync_parser.add_argument("--docs-dir", help="Docs directory relative to the project root")
    sync_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would change without touching Notion or the state file",
    )
    sync_parser.add_argument(
        "--force", action="store_true", help="Re-sync files even if unchanged"
    )
    sync_parser.add_argument(
        "--flat", action="store_true", help="Create every page directly under the root"
    )

    status_parser = subparsers.add_parser(
        "status", parents=[common], help="Show sync state"
    )
    status_parser.add_argument(
        "--validate",
        action="store_true",
        help="Check every cached container page against Notion",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Parse *argv*, run the command and return its exit code."""
    args = build_parser().parse_args(argv)

    load_dotenv()
    project_root = Path(args.project_root or Path.cwd()).resolve()

    try:
        unified = _load_unified(project_root)
    except ConfigurationInvalid as exc:
        setup_logging(debug=args.debug, log_file=args.log_file, debug_format=args.log_format)
        _stderr_print(f"ERROR: Configuration error: {exc}")
        return EXIT_CONFIG

    if not os.getenv("LOG_LEVEL") and unified.logging.level:
        os.environ["LOG_LEVEL"] = unified.logging.level
    setup_logging(
        debug=args.debug,
        log_file=args.log_file or unified.logging.file,
        debug_format=args.log_format,
    )

    try:
        config = _build_config(args, unified)
        command = _run_sync if args.command == "sync" else _run_status
        return asyncio.run(command(args, config))
    except ConfigurationInvalid as exc:
        logger.debug("Configuration error", exc_info=True)
        _stderr_print(f"ERROR: Configuration error: {exc}")
        return EXIT_CONFIG
    except (DocMirrorError, OSError, ValueError) as exc:
        logger.debug("Run aborted", exc_info=True)
        _stderr_print(f"ERROR: {exc}")
        return EXIT_FAILURES


def run() -> None:
    """Console script entry point."""
    try:
        code = main()
    except KeyboardInterrupt:
        _stderr_print("\nInterrupted.")
        code = EXIT_FAILURES
    _install_watchdog(code)
    sys.exit(code)


if __name__ == "__main__":
    run()
