"""Tests for the cursor store (sync watermarks, status flags, lease)."""

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone

import pytest

from golfbuddy.storage import CursorStore
from golfbuddy.storage.cursors import CURSORS_KEY


@pytest.fixture
def broken_store():
    """A cursor store whose database can never be opened."""

    @contextmanager
    def connect():
        raise sqlite3.OperationalError("unable to open database file")
        yield  # pragma: no cover

    return CursorStore(connect)


class TestCursors:
    def test_never_synced_defaults(self, cursor_store):
        assert cursor_store.get_cursors() == {
            "profiles": None,
            "courses": None,
            "games": None,
            "scores": None,
        }

    def test_set_and_get(self, cursor_store):
        assert cursor_store.set_cursors({"courses": "c1", "games": "g1", "scores": "s2"})

        cursors = cursor_store.get_cursors()

        assert cursors == {"profiles": None, "courses": "c1", "games": "g1", "scores": "s2"}

    def test_set_replaces_whole_mapping(self, cursor_store):
        cursor_store.set_cursors({"courses": "c1", "games": "g1"})
        cursor_store.set_cursors({"scores": "s9"})

        assert cursor_store.get_cursors()["courses"] is None
        assert cursor_store.get_cursors()["scores"] == "s9"

    def test_unknown_collections_are_dropped(self, cursor_store):
        cursor_store.set_cursors({"courses": "c1", "users": "u1"})
        assert "users" not in cursor_store.get_cursors()

    def test_reset(self, cursor_store):
        cursor_store.set_cursors({"courses": "c1"})
        cursor_store.reset_cursors()
        assert cursor_store.get_cursors()["courses"] is None

    def test_corrupt_json_falls_back_to_defaults(self, store, cursor_store):
        with store.connect() as conn:
            conn.execute(
                "INSERT INTO sync_meta (key, value, updated_at) VALUES (?, ?, ?)",
                (CURSORS_KEY, "{not json", "now"),
            )

        assert cursor_store.get_cursors()["courses"] is None

    def test_survives_new_instance(self, store, cursor_store):
        cursor_store.set_cursors({"games": "g7"})
        assert CursorStore(store.connect).get_cursors()["games"] == "g7"


class TestStatus:
    def test_defaults(self, cursor_store):
        status = cursor_store.get_status()

        assert status.enabled is False
        assert status.syncing is False
        assert status.last_sync is None
        assert status.last_error is None
        assert status.next_sync_time is None
        assert status.state == "idle"

    def test_merge_fields(self, cursor_store):
        when = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
        cursor_store.set_status(last_sync=when, state="success")
        cursor_store.set_status(last_error="HTTP 500: Internal Server Error")

        status = cursor_store.get_status()

        assert status.last_sync == when
        assert status.state == "success"
        assert status.last_error == "HTTP 500: Internal Server Error"

    def test_none_clears_field(self, cursor_store):
        cursor_store.set_status(last_error="boom")
        cursor_store.set_status(last_error=None)
        assert cursor_store.get_status().last_error is None

    def test_unknown_field(self, cursor_store):
        with pytest.raises(ValueError):
            cursor_store.set_status(colour="red")

    def test_enabled_flag(self, cursor_store):
        cursor_store.set_enabled(True)
        assert cursor_store.is_enabled() is True
        assert cursor_store.get_status().enabled is True

        cursor_store.set_enabled(False)
        assert cursor_store.is_enabled() is False


class TestDeviceId:
    def test_created_once(self, store, cursor_store):
        first = cursor_store.ensure_device_id()
        assert first == cursor_store.ensure_device_id()
        assert first == CursorStore(store.connect).ensure_device_id()


class TestLease:
    def test_acquire_and_release(self, cursor_store):
        assert cursor_store.acquire_lease("dev-a", ttl=60)
        assert cursor_store.lease_holder() == "dev-a"
        assert cursor_store.get_status().syncing is True

        assert cursor_store.release_lease("dev-a")
        assert cursor_store.lease_holder() is None

    def test_second_owner_blocked(self, store, cursor_store):
        other = CursorStore(store.connect)
        assert cursor_store.acquire_lease("dev-a", ttl=60)

        assert other.acquire_lease("dev-b", ttl=60) is False
        assert other.release_lease("dev-b") is False
        assert cursor_store.lease_holder() == "dev-a"

    def test_same_owner_can_renew(self, cursor_store):
        assert cursor_store.acquire_lease("dev-a", ttl=60)
        assert cursor_store.acquire_lease("dev-a", ttl=60)

    def test_expired_lease_taken_over(self, cursor_store):
        assert cursor_store.acquire_lease("dev-a", ttl=-1)
        assert cursor_store.lease_holder() is None

        assert cursor_store.acquire_lease("dev-b", ttl=60)
        assert cursor_store.lease_holder() == "dev-b"


class TestStorageUnavailable:
    def test_reads_return_defaults(self, broken_store):
        assert broken_store.get_cursors()["scores"] is None
        assert broken_store.is_enabled() is False
        assert broken_store.get_status().last_sync is None

    def test_writes_are_noops(self, broken_store):
        assert broken_store.set_cursors({"scores": "s1"}) is False
        assert broken_store.set_status(last_error="x") is False

    def test_lease_is_granted(self, broken_store):
        assert broken_store.acquire_lease("dev-a", ttl=60) is True

    def test_device_id_stable_per_process(self, broken_store):
        assert broken_store.ensure_device_id() == broken_store.ensure_device_id()
