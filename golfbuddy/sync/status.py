"""Read-only sync status for display.

Derives one of disabled / syncing / error / offline / synced from the cursor
store and the scheduler, in that order of precedence. Never writes.
"""

import asyncio
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from golfbuddy.types import SyncState

if TYPE_CHECKING:
    from golfbuddy.storage import CursorStore

    from .scheduler import SyncScheduler


ICONS = {
    SyncState.DISABLED: "⚪",
    SyncState.SYNCING: "🔄",
    SyncState.ERROR: "❌",
    SyncState.OFFLINE: "📡",
    SyncState.SYNCED: "✅",
}

LABELS = {
    SyncState.DISABLED: "Sync disabled",
    SyncState.SYNCING: "Syncing...",
    SyncState.ERROR: "Sync error",
    SyncState.OFFLINE: "Offline",
    SyncState.SYNCED: "Synced",
}


def format_last_sync(last_sync: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Humanize a last-sync time: "Never", "Just now", "5m ago", "3h ago", "2d ago"."""
    if last_sync is None:
        return "Never"
    now = now or datetime.now(timezone.utc)
    if last_sync.tzinfo is None:
        last_sync = last_sync.replace(tzinfo=timezone.utc)
    minutes = int((now - last_sync).total_seconds() // 60)
    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes}m ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h ago"
    return f"{hours // 24}d ago"


@dataclass
class StatusView:
    state: SyncState
    icon: str
    label: str
    enabled: bool
    online: bool
    last_sync: Optional[datetime] = None
    last_sync_human: str = "Never"
    last_error: Optional[str] = None
    next_sync_time: Optional[datetime] = None
    last_trigger: Optional[str] = None  # e.g. "game completion"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        for key in ("last_sync", "next_sync_time"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data


class SyncStatusSurface:
    """Polls sync state for a UI.

    Args:
        cursor_store: Persisted status source.
        scheduler: Online flag, in-flight flag and last trigger source.
        poll_interval: Seconds between ``watch`` refreshes.
    """

    def __init__(
        self,
        cursor_store: "CursorStore",
        scheduler: "SyncScheduler",
        poll_interval: float = 2.0,
    ):
        self.cursor_store = cursor_store
        self.scheduler = scheduler
        self.poll_interval = poll_interval

    def snapshot(self) -> StatusView:
        status = self.cursor_store.get_status()
        online = self.scheduler.online
        syncing = status.syncing or self.scheduler.engine.is_syncing

        if not status.enabled:
            state = SyncState.DISABLED
        elif syncing:
            state = SyncState.SYNCING
        elif status.last_error:
            state = SyncState.ERROR
        elif not online:
            state = SyncState.OFFLINE
        else:
            state = SyncState.SYNCED

        trigger = self.scheduler.get_last_sync_trigger()
        return StatusView(
            state=state,
            icon=ICONS[state],
            label=LABELS[state],
            enabled=status.enabled,
            online=online,
            last_sync=status.last_sync,
            last_sync_human=format_last_sync(status.last_sync),
            last_error=status.last_error,
            next_sync_time=status.next_sync_time,
            last_trigger=trigger.type.value.replace("_", " ") if trigger else None,
        )

    async def watch(self, callback: Callable[[StatusView], None]) -> None:
        """Call ``callback`` with a fresh snapshot every poll interval until cancelled."""
        while True:
            callback(self.snapshot())
            await asyncio.sleep(self.poll_interval)
