"""Sync commands for the golfbuddy CLI."""

import json
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from golfbuddy import GolfBuddy

logger = logging.getLogger(__name__)


async def cmd_sync(args, app: "GolfBuddy") -> int:
    """Handle ``golfbuddy sync`` subcommands. Returns the process exit code."""
    if args.sync_action == "status":
        view = app.status.snapshot()
        pending = app.store.pending_change_count()
        if args.json:
            data = view.to_dict()
            data["pending_changes"] = pending
            data["endpoint"] = app.client.base_url
            print(json.dumps(data, indent=2, default=str))
        else:
            print("Sync Status")
            print("=" * 50)
            print(f"{view.icon} {view.label}")
            print(f"   Endpoint: {app.client.base_url}")
            print(f"🕐 Last sync: {view.last_sync_human}")
            if view.next_sync_time:
                print(f"   Next sync due: {view.next_sync_time.isoformat()[:19]}")
            pending_icon = "🟢" if pending == 0 else "🟡"
            print(f"{pending_icon} Pending changes: {pending}")
            if view.last_error:
                print(f"❌ Last error: {view.last_error}")
            if not view.enabled:
                print()
                print("💡 Run `golfbuddy sync enable` to turn on cloud sync")
        return 0

    elif args.sync_action == "now":
        if not app.cursor_store.is_enabled():
            print("✗ Sync is disabled")
            print("  Run `golfbuddy sync enable` first")
            return 1
        result = await app.engine.sync(full_snapshot=True if args.full else None)
        if args.json:
            print(
                json.dumps(
                    {
                        "success": result.success,
                        "skipped": result.skipped,
                        "in_sync": result.in_sync,
                        "pushed": result.pushed,
                        "pulled": result.pulled,
                        "conflicts": result.conflicts,
                        "has_more": result.has_more,
                        "errors": result.errors,
                    },
                    indent=2,
                )
            )
        elif result.skipped:
            print(f"⚠️  Sync skipped: {result.skipped.replace('_', ' ')}")
        elif result.success:
            if result.in_sync:
                print("✓ Already up to date")
            else:
                print(f"✓ Pushed {result.pushed}, pulled {result.pulled}")
            if result.conflicts:
                print(f"   {result.conflicts} pulled records kept the newer local version")
            if result.has_more:
                print("   ℹ️  More changes are waiting; run `golfbuddy sync now` again")
        else:
            print(f"✗ Sync failed: {'; '.join(result.errors)}")
        return 0 if result.success or result.skipped == "in_progress" else 1

    elif args.sync_action == "enable":
        result = await app.engine.enable()
        if result.success:
            print("✓ Sync enabled")
            print(f"  Initial sync: pushed {result.pushed}, pulled {result.pulled}")
            return 0
        print("✓ Sync enabled")
        print(f"⚠️  Initial sync failed: {'; '.join(result.errors) or result.skipped}")
        return 1

    elif args.sync_action == "disable":
        app.engine.disable()
        print("✓ Sync disabled")
        return 0

    elif args.sync_action == "cursors":
        if args.reset:
            if app.cursor_store.reset_cursors():
                print("✓ Cursors reset; the next sync pulls everything again")
                return 0
            print("✗ Could not reset cursors")
            return 1
        cursors = app.cursor_store.get_cursors()
        if args.json:
            print(json.dumps(cursors, indent=2))
        else:
            for name, cursor in cursors.items():
                print(f"{name:10} {cursor or '(never synced)'}")
        return 0

    logger.error(f"Unknown sync action: {args.sync_action}")
    return 1
