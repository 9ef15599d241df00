"""Command-line entry point for explicit sync runs.

Usage::

    python -m linkshelf.cli.sync push
    python -m linkshelf.cli.sync pull --resolution push_first
    python -m linkshelf.cli.sync full --resolve-conflicts
    python -m linkshelf.cli.sync status
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import Any

from linkshelf.config import AppConfig, load_config
from linkshelf.core.logging_utils import setup_json_logging
from linkshelf.di.container import build_sync_container
from linkshelf.domain.exceptions.domain_exceptions import SyncInProgressError
from linkshelf.sync.conflicts import ConflictResolution

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(
        description="Synchronize the local bookmark store with Kioju",
        allow_abbrev=False,
    )
    parser.add_argument(
        "--db-path",
        type=Path,
        help="Override the configured SQLite path for this run.",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override the configured log level for this session.",
    )

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("push", help="Upload all pending local changes.")
    pull = sub.add_parser("pull", help="Merge remote state into the local store.")
    pull.add_argument(
        "--resolution",
        choices=[r.value for r in ConflictResolution],
        default=ConflictResolution.ABORT.value,
        help="What to do when local changes are still pending.",
    )
    full = sub.add_parser("full", help="Push pending changes, then pull.")
    full.add_argument(
        "--resolve-conflicts",
        action="store_true",
        help="Push pending changes and force-overwrite collections on pull.",
    )
    sub.add_parser("status", help="Show pending counts and rate-limit state.")
    return parser.parse_args(argv)


def _prepare_config(args: argparse.Namespace) -> AppConfig:
    """Load configuration, optionally applying CLI overrides."""
    try:
        cfg = load_config()
    except RuntimeError as exc:
        raise SystemExit(f"Configuration error: {exc}") from exc

    updates: dict[str, Any] = {}
    if args.db_path:
        updates["db_path"] = str(args.db_path)
    if args.log_level:
        updates["log_level"] = args.log_level
    if updates:
        cfg = replace(cfg, runtime=cfg.runtime.model_copy(update=updates))
    return cfg


async def run_sync_cli(args: argparse.Namespace) -> dict[str, Any]:
    cfg = _prepare_config(args)
    setup_json_logging(cfg.runtime.log_level, json_output=cfg.runtime.log_json)
    container = build_sync_container(cfg)
    service = container.sync_service
    try:
        if args.command == "push":
            return (await service.sync_up()).model_dump(mode="json")
        if args.command == "pull":
            result = await service.pull(ConflictResolution(args.resolution))
            return result.model_dump(mode="json")
        if args.command == "full":
            result = await service.full_sync(resolve_conflicts=args.resolve_conflicts)
            return result.model_dump(mode="json")
        status = await service.get_sync_status()
        payload = status.model_dump(mode="json")
        payload["pending"] = await service.get_pending_changes_count()
        return payload
    finally:
        container.close()


def main(argv: list[str] | None = None) -> int:
    """Entry point for ``python -m linkshelf.cli.sync``."""
    args = parse_args(argv)
    try:
        payload = asyncio.run(run_sync_cli(args))
    except KeyboardInterrupt:  # pragma: no cover - user cancelled
        return 1
    except SyncInProgressError as exc:
        print(exc.message)
        return 2
    except Exception as exc:
        logger.exception("cli_sync_failed", exc_info=exc)
        return 1

    print(json.dumps(payload, indent=2, default=str))
    return 0 if payload.get("success", True) else 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
