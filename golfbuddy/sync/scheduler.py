"""Sync scheduler: decides when the engine runs.

Four event triggers, no periodic timer and no backoff:
- app startup (once per process, after a settle delay)
- offline -> online transition (debounced; going offline cancels it)
- game completion (short delay, never blocks the caller)
- manual (immediate)

A trigger that finds sync disabled or a round trip in flight is recorded as
skipped and dropped. Failed syncs wait for the next natural trigger.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, fields, replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Deque, Dict, List, Optional, Set

from golfbuddy.types import SyncResult, SyncTrigger, TriggerType

if TYPE_CHECKING:
    from golfbuddy.config import Settings

    from .client import RemoteSyncClient
    from .engine import SyncEngine

logger = logging.getLogger(__name__)

STARTUP_TIMER = "startup"
ONLINE_TIMER = "online"
GAME_COMPLETION_TIMER = "game_completion"


@dataclass
class SchedulerConfig:
    enable_startup_sync: bool = True
    enable_online_sync: bool = True
    enable_game_completion_sync: bool = True
    startup_sync_delay: float = 2.0  # seconds
    online_sync_delay: float = 3.0
    game_completion_sync_delay: float = 1.0
    history_size: int = 10

    @classmethod
    def from_settings(cls, settings: "Settings") -> "SchedulerConfig":
        return cls(
            startup_sync_delay=settings.startup_sync_delay,
            online_sync_delay=settings.online_sync_delay,
            game_completion_sync_delay=settings.game_completion_sync_delay,
        )


def _outcome(result: SyncResult) -> str:
    if result.skipped:
        return f"skipped_{result.skipped}"
    return "succeeded" if result.success else "failed"


class SyncScheduler:
    """Turns application events into engine round trips.

    Must be used from a running event loop; timers are asyncio tasks.
    """

    def __init__(
        self,
        engine: "SyncEngine",
        config: Optional[SchedulerConfig] = None,
        online: bool = True,
    ):
        self.engine = engine
        self.config = config or SchedulerConfig()
        self._online = online
        self._started = False
        self._history: Deque[SyncTrigger] = deque(maxlen=self.config.history_size)
        self._timers: Dict[str, asyncio.Task] = {}
        self._tasks: Set[asyncio.Task] = set()

    @property
    def online(self) -> bool:
        return self._online

    @property
    def pending_timers(self) -> List[str]:
        """Names of timers still waiting to fire."""
        return sorted(self._timers)

    # === Triggers ===

    def start(self) -> Optional[asyncio.Task]:
        """Schedule the startup sync. Only the first call in a process does anything."""
        if self._started:
            return None
        self._started = True
        if not self.config.enable_startup_sync:
            return None
        logger.debug(f"Startup sync in {self.config.startup_sync_delay}s")
        return self._schedule(
            STARTUP_TIMER,
            self.config.startup_sync_delay,
            TriggerType.APP_STARTUP,
            "App startup",
        )

    def set_online(self, online: bool) -> Optional[asyncio.Task]:
        """Record connectivity. Coming back online schedules a debounced sync."""
        was_online, self._online = self._online, online
        if not online:
            if self._cancel_timer(ONLINE_TIMER):
                logger.debug("Went offline; reconnect sync cancelled")
            return None
        if was_online or not self.config.enable_online_sync:
            return None
        logger.debug(f"Back online; sync in {self.config.online_sync_delay}s")
        return self._schedule(
            ONLINE_TIMER,
            self.config.online_sync_delay,
            TriggerType.ONLINE_STATUS,
            "Network reconnected",
        )

    def schedule_game_completion_sync(self, reason: str = "Game completed") -> Optional[asyncio.Task]:
        """Sync shortly after a game completes without waiting for it."""
        if not self.config.enable_game_completion_sync:
            return None
        return self._schedule(
            GAME_COMPLETION_TIMER,
            self.config.game_completion_sync_delay,
            TriggerType.GAME_COMPLETION,
            reason,
        )

    async def trigger_game_completion_sync(self, reason: str = "Game completed") -> Optional[SyncTrigger]:
        task = self.schedule_game_completion_sync(reason)
        if task is None:
            return None
        return await task

    async def trigger_manual_sync(self, reason: str = "Manual sync") -> SyncTrigger:
        """Sync now, bypassing every delay."""
        return await self._run_trigger(TriggerType.MANUAL, reason)

    # === History ===

    def get_sync_history(self) -> List[SyncTrigger]:
        """Recorded triggers, oldest first."""
        return list(self._history)

    def get_last_sync_trigger(self) -> Optional[SyncTrigger]:
        return self._history[-1] if self._history else None

    def update_config(self, **changes) -> SchedulerConfig:
        known = {f.name for f in fields(SchedulerConfig)}
        unknown = set(changes) - known
        if unknown:
            raise ValueError(f"Unknown scheduler settings: {sorted(unknown)}")
        self.config = replace(self.config, **changes)
        if self._history.maxlen != self.config.history_size:
            self._history = deque(self._history, maxlen=self.config.history_size)
        return self.config

    # === Lifecycle ===

    async def stop(self) -> None:
        """Cancel pending timers and wait for any running sync to finish."""
        for name in list(self._timers):
            self._cancel_timer(name)
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    # === Internals ===

    def _schedule(self, name: str, delay: float, trigger_type: TriggerType, reason: str) -> asyncio.Task:
        self._cancel_timer(name)
        task = asyncio.create_task(self._fire_after(name, delay, trigger_type, reason))
        self._timers[name] = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _cancel_timer(self, name: str) -> bool:
        task = self._timers.pop(name, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    async def _fire_after(
        self, name: str, delay: float, trigger_type: TriggerType, reason: str
    ) -> SyncTrigger:
        await asyncio.sleep(delay)
        # Past the delay the sync itself is no longer cancellable through the timer.
        if self._timers.get(name) is asyncio.current_task():
            del self._timers[name]
        return await self._run_trigger(trigger_type, reason)

    async def _run_trigger(self, trigger_type: TriggerType, reason: str) -> SyncTrigger:
        trigger = SyncTrigger(
            type=trigger_type,
            timestamp=datetime.now(timezone.utc),
            reason=reason,
        )
        self._history.append(trigger)
        logger.info(f"Sync triggered: {trigger_type.value} ({reason})")

        try:
            result = await self.engine.sync()
        except Exception:
            trigger.outcome = "failed"
            raise
        trigger.outcome = _outcome(result)
        if result.skipped:
            logger.debug(f"Sync trigger {trigger_type.value} skipped: {result.skipped}")
        return trigger


class ConnectivityMonitor:
    """Polls the endpoint's health check and feeds the scheduler's online flag.

    Args:
        client: Remote sync client.
        scheduler: Scheduler to notify.
        interval: Seconds between health checks.
    """

    def __init__(self, client: "RemoteSyncClient", scheduler: SyncScheduler, interval: float = 30.0):
        self.client = client
        self.scheduler = scheduler
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    async def check(self) -> bool:
        online = await self.client.health_check()
        if online != self.scheduler.online:
            logger.info(f"Connectivity changed: {'online' if online else 'offline'}")
        self.scheduler.set_online(online)
        return online

    async def _run(self) -> None:
        while True:
            await self.check()
            await asyncio.sleep(self.interval)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
