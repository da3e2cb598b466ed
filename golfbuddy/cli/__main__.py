"""
GolfBuddy CLI - inspect and drive cloud sync for the local golf database.

Usage:
    golfbuddy sync status [--json]
    golfbuddy sync now [--full] [--json]
    golfbuddy sync enable
    golfbuddy sync disable
    golfbuddy sync cursors [--reset] [--json]
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from golfbuddy import GolfBuddy
from golfbuddy.cli.commands import cmd_sync
from golfbuddy.config import get_settings
from golfbuddy.logging_config import setup_golfbuddy_logging
from golfbuddy.types import ConfigurationError

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="golfbuddy",
        description="Offline-first golf scoring with cloud sync",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Log level (default: GOLFBUDDY_LOG_LEVEL or INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # sync
    p_sync = subparsers.add_parser("sync", help="Cloud sync operations")
    sync_sub = p_sync.add_subparsers(dest="sync_action", required=True)

    sync_status = sync_sub.add_parser("status", help="Show sync status")
    sync_status.add_argument("--json", "-j", action="store_true", help="Output as JSON")

    sync_now = sync_sub.add_parser("now", help="Run a sync round trip now")
    sync_now.add_argument("--full", "-f", action="store_true",
                          help="Push every local record, not just unsynced changes")
    sync_now.add_argument("--json", "-j", action="store_true", help="Output as JSON")

    sync_sub.add_parser("enable", help="Enable sync and run the initial sync")
    sync_sub.add_parser("disable", help="Disable sync")

    sync_cursors = sync_sub.add_parser("cursors", help="Show or reset sync cursors")
    sync_cursors.add_argument("--reset", action="store_true",
                              help="Forget cursors so the next sync pulls everything")
    sync_cursors.add_argument("--json", "-j", action="store_true", help="Output as JSON")

    return parser


async def _dispatch(args, app: GolfBuddy) -> int:
    try:
        if args.command == "sync":
            return await cmd_sync(args, app)
        return 1
    finally:
        await app.close()


def main(argv: Optional[List[str]] = None):
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    setup_golfbuddy_logging(args.log_level or settings.log_level, settings.resolved_data_dir)

    try:
        app = GolfBuddy(settings=settings)
    except (ConfigurationError, OSError) as e:
        logger.error(f"Failed to initialize GolfBuddy: {e}")
        sys.exit(1)

    try:
        code = asyncio.run(_dispatch(args, app))
    except (ValueError, TypeError) as e:
        logger.error(f"Input validation error: {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Command failed: {e}")
        sys.exit(1)

    if code:
        sys.exit(code)


if __name__ == "__main__":
    main()
