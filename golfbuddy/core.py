"""GolfBuddy application container.

Builds the local store, cursor store, remote client, sync engine, scheduler
and status surface once and hands them to each other by reference.
"""

import asyncio
import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from golfbuddy.config import Settings, get_settings, validate_sync_endpoint
from golfbuddy.storage import CursorStore, SQLiteEntityStore
from golfbuddy.sync import (
    ConnectivityMonitor,
    RemoteSyncClient,
    SchedulerConfig,
    SyncEngine,
    SyncScheduler,
    SyncStatusSurface,
)
from golfbuddy.types import (
    ConfigurationError,
    Course,
    DuplicateRecordError,
    Game,
    Profile,
    Score,
    SyncResult,
    SyncTrigger,
)

logger = logging.getLogger(__name__)

DOB_SALT = "GOLF_BUDDY_SALT"


def hash_dob(dob: str) -> str:
    """SHA-256 of the date of birth plus the app salt, hex encoded."""
    return hashlib.sha256((dob + DOB_SALT).encode("utf-8")).hexdigest()


class GolfBuddy:
    """Wires the sync subsystem around one device's local store.

    Args:
        settings: Settings; defaults to the cached environment settings.
        store: Local entity store; defaults to ``<data_dir>/golfbuddy.db``.
        client: Remote client; defaults to one built from ``settings``.

    Raises:
        ConfigurationError: if the sync endpoint is unsafe or malformed.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[SQLiteEntityStore] = None,
        client: Optional[RemoteSyncClient] = None,
    ):
        self.settings = settings or get_settings()
        if client is None:
            endpoint = validate_sync_endpoint(self.settings.sync_endpoint)
            if endpoint is None:
                raise ConfigurationError(f"Invalid sync endpoint: {self.settings.sync_endpoint!r}")
            client = RemoteSyncClient(
                endpoint,
                auth_token=self.settings.auth_token,
                timeout=self.settings.request_timeout,
            )

        self.store = store or SQLiteEntityStore(self.settings.db_path)
        self.cursor_store = CursorStore(self.store.connect)
        self.client = client
        self.engine = SyncEngine(
            self.store,
            self.cursor_store,
            self.client,
            pull_limit=self.settings.pull_limit,
            sync_interval=timedelta(hours=self.settings.sync_interval_hours),
            full_snapshot=self.settings.full_snapshot_push,
            lease_ttl=self.settings.lease_ttl_seconds,
        )
        self.scheduler = SyncScheduler(self.engine, SchedulerConfig.from_settings(self.settings))
        self.status = SyncStatusSurface(
            self.cursor_store, self.scheduler, poll_interval=self.settings.status_poll_interval
        )
        self.monitor = ConnectivityMonitor(
            self.client, self.scheduler, interval=self.settings.connectivity_check_interval
        )

    # === Lifecycle ===

    def start(self, monitor_connectivity: bool = False) -> None:
        """Schedule the startup sync; optionally start probing connectivity."""
        self.cursor_store.ensure_device_id()
        self.scheduler.start()
        if monitor_connectivity:
            self.monitor.start()

    async def close(self) -> None:
        await self.monitor.stop()
        await self.scheduler.stop()
        await self.client.aclose()
        self.store.close()

    async def __aenter__(self) -> "GolfBuddy":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # === Profiles, courses and games ===

    def create_profile(self, username: str, dob: str) -> Profile:
        """Create a profile. Usernames are unique; the DOB is stored hashed."""
        username = username.strip()
        if not username:
            raise ValueError("username is required")
        if self.store.profiles.where("username").equals(username).first():
            raise DuplicateRecordError(f"Username already taken: {username}")

        now = datetime.now(timezone.utc)
        profile = Profile(
            username=username,
            dob_hash=hash_dob(dob),
            created_at=now,
            last_active_at=now,
        )
        self.store.profiles.add(profile)
        logger.info(f"Created profile {profile.id}")
        return profile

    def add_course(self, name: str, rounds: int = 18, profile_id: Optional[str] = None) -> Course:
        course = Course(name=name, rounds=rounds, profile_id=profile_id)
        self.store.courses.add(course)
        return course

    def start_game(self, course_id: str, date: Optional[datetime] = None) -> Game:
        if self.store.courses.get(course_id) is None:
            raise ValueError(f"Unknown course: {course_id}")
        game = Game(course_id=course_id, date=date or datetime.now(timezone.utc))
        self.store.games.add(game)
        return game

    def record_score(self, game_id: str, hole: int, par: str, score: str, putts: int = 0) -> Score:
        """Record a hole score, replacing any live score for the same hole."""
        with self.store.transaction() as conn:
            existing = [
                s for s in self.store.scores.where("game_id").equals(game_id).to_list(conn=conn)
                if s.hole == hole
            ]
            if existing:
                return self.store.scores.update(
                    existing[0].id, {"par": par, "score": score, "putts": putts}, conn=conn
                )
            record = Score(game_id=game_id, hole=hole, par=par, score=score, putts=putts)
            self.store.scores.add(record, conn=conn)
            return record

    def complete_game(self, game_id: str, final_score: int, final_note: str = "") -> Game:
        """Finish a game and schedule the completion sync.

        Returns without waiting for the sync. Outside a running event loop the
        game is still saved and stays pending for the next trigger.
        """
        scores: List[dict] = [
            {"hole": s.hole, "par": s.par, "score": s.score, "putts": s.putts}
            for s in sorted(self.store.scores.where("game_id").equals(game_id).to_list(), key=lambda s: s.hole)
        ]
        game = self.store.games.update(
            game_id,
            {
                "final_score": final_score,
                "final_note": final_note,
                "scores": scores,
                "completed_at": datetime.now(timezone.utc),
            },
        )
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"No running event loop; completion sync for game {game_id} not scheduled")
            return game
        self.scheduler.schedule_game_completion_sync(f"Game {game_id} completed")
        return game

    # === Sync ===

    async def sync_now(self, reason: str = "Manual sync") -> SyncTrigger:
        return await self.scheduler.trigger_manual_sync(reason)

    async def enable_sync(self) -> SyncResult:
        return await self.engine.enable()

    def disable_sync(self) -> None:
        self.engine.disable()
