"""Command-line entry point for Vinnova syncs.

Example crontab entry (hourly):
    0 * * * * cd /srv/grant-sync && .venv/bin/python -m grant_sync.cli.sync --scheduled

Usage:
    python -m grant_sync.cli.sync [--entity NAME] [--retry-failures] [--db-path PATH]
                                  [--scheduled | --daemon]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import TYPE_CHECKING, Any

from grant_sync.adapters.vinnova.client import VinnovaClient
from grant_sync.config import load_config
from grant_sync.core.logging_utils import setup_json_logging
from grant_sync.db.session import DatabaseSessionManager
from grant_sync.infrastructure.persistence.sqlite.record_store import SqliteRecordStore
from grant_sync.services.scheduler import SchedulerService
from grant_sync.sync.entities import ENTITY_SPECS
from grant_sync.sync.service import VinnovaSyncService

if TYPE_CHECKING:
    from collections.abc import Sequence

    from grant_sync.sync.models import SyncReport

logger = logging.getLogger("grant_sync.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Sync grant data from the Vinnova open-data API")
    parser.add_argument(
        "--entity",
        choices=[*ENTITY_SPECS, "all"],
        default="all",
        help="Entity to sync (default: all, run concurrently)",
    )
    parser.add_argument(
        "--retry-failures",
        action="store_true",
        help="Replay unresolved entries from the failure ledger instead of syncing",
    )
    parser.add_argument(
        "--db-path",
        default=None,
        help="SQLite database path (overrides DB_PATH)",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--scheduled",
        action="store_true",
        help="Run all entities under the job lease, skipping if another run holds it",
    )
    mode.add_argument(
        "--daemon",
        action="store_true",
        help="Keep running and sync every SYNC_INTERVAL_MINUTES",
    )
    return parser


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def _exit_code(reports: Sequence[SyncReport]) -> int:
    return 1 if any(report.has_global_error for report in reports) else 0


async def _run_daemon(scheduler: SchedulerService) -> int:
    await scheduler.start()
    logger.info(
        "sync_daemon_started",
        extra={"next_run_time": str(scheduler.get_next_run_time())},
    )
    try:
        await asyncio.Event().wait()
    finally:
        await scheduler.stop()
    return 0


async def run(args: argparse.Namespace) -> int:
    """Run the requested sync and return the process exit code."""
    overrides = {"DB_PATH": args.db_path} if args.db_path else {}
    cfg = load_config(**overrides)
    setup_json_logging(
        cfg.runtime.log_level,
        use_loguru=cfg.runtime.log_use_loguru,
        log_file=cfg.runtime.log_file,
    )

    db = DatabaseSessionManager(cfg.runtime.db_path)
    db.migrate()
    store = SqliteRecordStore(db)

    try:
        async with VinnovaClient.from_config(cfg.vinnova) as client:
            service = VinnovaSyncService.from_config(cfg, client, store)

            if args.daemon:
                sync_cfg = cfg.sync.model_copy(update={"auto_enabled": True})
                return await _run_daemon(SchedulerService(sync_cfg, service))

            if args.retry_failures:
                entity = None if args.entity == "all" else args.entity
                summaries = await service.retry_failed_syncs(entity)
                _print_json([summary.to_json_dict() for summary in summaries])
                return 0 if all(summary.still_failing == 0 for summary in summaries) else 1

            if args.scheduled:
                reports = await service.run_scheduled_sync()
            elif args.entity == "all":
                reports = await service.sync_all_vinnova_entities()
            else:
                reports = [await service.sync_entity(args.entity)]

            _print_json([report.to_json_dict() for report in reports])
            return _exit_code(reports)
    finally:
        db.close()


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        return 130
    except RuntimeError as exc:
        logger.exception("sync_cli_failed")
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
