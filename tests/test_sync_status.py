"""Tests for the read-only sync status surface."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from golfbuddy.sync import SchedulerConfig, SyncScheduler, SyncStatusSurface, format_last_sync
from golfbuddy.types import SyncState

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def scheduler(engine):
    return SyncScheduler(engine, SchedulerConfig(game_completion_sync_delay=0.01))


@pytest.fixture
def surface(cursor_store, scheduler):
    return SyncStatusSurface(cursor_store, scheduler, poll_interval=0.01)


class TestFormatLastSync:
    @pytest.mark.parametrize(
        "delta, expected",
        [
            (timedelta(seconds=20), "Just now"),
            (timedelta(minutes=1), "1m ago"),
            (timedelta(minutes=59, seconds=59), "59m ago"),
            (timedelta(hours=1), "1h ago"),
            (timedelta(hours=23, minutes=59), "23h ago"),
            (timedelta(days=1), "1d ago"),
            (timedelta(days=9, hours=5), "9d ago"),
        ],
    )
    def test_buckets(self, delta, expected):
        assert format_last_sync(NOW - delta, now=NOW) == expected

    def test_never(self):
        assert format_last_sync(None) == "Never"

    def test_naive_datetime_treated_as_utc(self):
        naive = (NOW - timedelta(hours=2)).replace(tzinfo=None)
        assert format_last_sync(naive, now=NOW) == "2h ago"


class TestStatePrecedence:
    def test_disabled(self, surface, cursor_store):
        cursor_store.set_enabled(False)
        cursor_store.set_status(last_error="boom")

        view = surface.snapshot()

        assert view.state == SyncState.DISABLED
        assert view.icon == "⚪"
        assert view.label == "Sync disabled"

    def test_syncing_beats_error(self, surface, cursor_store):
        cursor_store.set_status(last_error="boom")
        cursor_store.acquire_lease("dev-x", ttl=60)

        view = surface.snapshot()

        assert view.state == SyncState.SYNCING
        assert view.icon == "🔄"
        assert view.label == "Syncing..."

    def test_error_beats_offline(self, surface, cursor_store, scheduler):
        cursor_store.set_status(last_error="HTTP 500: Internal Server Error")
        scheduler.set_online(False)

        view = surface.snapshot()

        assert view.state == SyncState.ERROR
        assert view.icon == "❌"
        assert view.last_error == "HTTP 500: Internal Server Error"

    def test_offline(self, surface, scheduler):
        scheduler.set_online(False)

        view = surface.snapshot()

        assert view.state == SyncState.OFFLINE
        assert view.icon == "📡"
        assert view.online is False

    def test_synced(self, surface):
        view = surface.snapshot()

        assert view.state == SyncState.SYNCED
        assert view.icon == "✅"
        assert view.label == "Synced"
        assert view.last_sync_human == "Never"


class TestSnapshot:
    @pytest.mark.asyncio
    async def test_after_sync(self, surface, scheduler):
        await scheduler.trigger_game_completion_sync()

        view = surface.snapshot()

        assert view.state == SyncState.SYNCED
        assert view.last_sync_human == "Just now"
        assert view.next_sync_time is not None
        assert view.last_trigger == "game completion"

    @pytest.mark.asyncio
    async def test_syncing_while_round_trip_in_flight(self, surface, engine, seeded_store):
        seen = []
        task = asyncio.create_task(engine.sync())
        await asyncio.sleep(0)
        seen.append(surface.snapshot().state)
        await task

        assert seen == [SyncState.SYNCING]
        assert surface.snapshot().state == SyncState.SYNCED

    def test_is_read_only(self, surface, cursor_store):
        before = (cursor_store.get_status(), cursor_store.get_cursors())

        surface.snapshot()
        surface.snapshot()

        assert (cursor_store.get_status(), cursor_store.get_cursors()) == before

    def test_to_dict(self, surface, cursor_store):
        cursor_store.set_status(last_sync=NOW)

        data = surface.snapshot().to_dict()

        assert data["state"] == "synced"
        assert data["last_sync"] == NOW.isoformat()
        assert data["enabled"] is True


class TestWatch:
    @pytest.mark.asyncio
    async def test_polls_until_cancelled(self, surface):
        views = []
        task = asyncio.create_task(surface.watch(views.append))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert len(views) >= 2
        assert all(v.state == SyncState.SYNCED for v in views)
