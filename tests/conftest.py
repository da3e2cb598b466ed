"""
Pytest fixtures and test configuration for golfbuddy tests.
"""

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest

from golfbuddy.config import get_settings
from golfbuddy.storage import CursorStore, SQLiteEntityStore
from golfbuddy.sync import RemoteSyncClient, SyncEngine
from golfbuddy.types import SYNC_COLLECTIONS, Course, Game, Score

BASE_URL = "https://sync.test/api"


class FakeSyncServer:
    """In-memory sync server behind ``httpx.MockTransport``.

    Each collection keeps an append-only change log; cursors are the
    collection's first letter plus the sequence number of the newest change
    the client has seen (``"c1"``, ``"s2"``). Records are stored exactly as
    received (camelCase wire dicts).
    """

    def __init__(self):
        self.log: Dict[str, List[Tuple[int, Dict[str, Any]]]] = {name: [] for name in SYNC_COLLECTIONS}
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.fail_on: Dict[str, int] = {}  # path -> status code
        self.force_in_sync: Optional[bool] = None
        self.online = True

    # === Server-side helpers ===

    @staticmethod
    def cursor_for(name: str, seq: int) -> Optional[str]:
        return f"{name[0]}{seq}" if seq else None

    @staticmethod
    def seq_of(cursor: Optional[str]) -> int:
        return int(cursor[1:]) if cursor else 0

    def head(self, name: str) -> int:
        return self.log[name][-1][0] if self.log[name] else 0

    def add_remote(self, name: str, record: Dict[str, Any]) -> str:
        """Store a change as if another device had pushed it."""
        seq = self.head(name) + 1
        self.log[name].append((seq, dict(record)))
        return self.cursor_for(name, seq)

    def add_remote_score(self, record_id: str, game_id: str, hole: int, minutes_ago: int = 0) -> str:
        """Store a camelCase score change from another device."""
        updated = datetime.now(timezone.utc) - timedelta(minutes=minutes_ago)
        return self.add_remote(
            "scores",
            {
                "id": record_id,
                "gameId": game_id,
                "hole": hole,
                "par": "4",
                "score": "5",
                "putts": 2,
                "localUpdatedAt": updated.isoformat(),
                "deleted": False,
            },
        )

    def records(self, name: str) -> Dict[str, Dict[str, Any]]:
        """Latest version of each record id."""
        latest: Dict[str, Dict[str, Any]] = {}
        for _, record in self.log[name]:
            latest[record["id"]] = record
        return latest

    @property
    def paths(self) -> List[str]:
        return [path for path, _ in self.calls]

    def pushed(self, name: str) -> List[Dict[str, Any]]:
        """Every record of ``name`` received through /sync/push."""
        return [r for path, body in self.calls if path == "/sync/push" for r in body.get(name, [])]

    # === Endpoints ===

    def _state(self, body):
        cursors = body.get("cursors") or {}
        in_sync = all(self.seq_of(cursors.get(name)) >= self.head(name) for name in SYNC_COLLECTIONS)
        if self.force_in_sync is not None:
            in_sync = self.force_in_sync
        response: Dict[str, Any] = {"inSync": in_sync}
        if not in_sync:
            response["serverCursors"] = {
                name: self.cursor_for(name, self.head(name)) for name in SYNC_COLLECTIONS
            }
            response["counts"] = {name: len(self.log[name]) for name in SYNC_COLLECTIONS}
        return response

    def _push(self, body):
        saved = {}
        server_cursors = {}
        for name in SYNC_COLLECTIONS:
            records = body.get(name, [])
            saved[name] = len(records)
            # Push carries no cursors: the device counts as caught up only if
            # its last state call sent the head-of-log cursor.
            seen = self._last_state_cursor(name)
            at_head = seen == self.head(name)
            for record in records:
                self.add_remote(name, record)
            cursor = self.cursor_for(name, self.head(name) if at_head else seen)
            if cursor:
                server_cursors[name] = cursor
        return {"status": "ok", "saved": saved, "serverCursors": server_cursors}

    def _last_state_cursor(self, name: str) -> int:
        for path, body in reversed(self.calls):
            if path == "/sync/state":
                return self.seq_of((body.get("cursors") or {}).get(name))
        return 0

    def _pull(self, body):
        cursors = body.get("cursors") or {}
        limit = body.get("limit", 100)
        changes: Dict[str, List[Dict[str, Any]]] = {}
        server_cursors: Dict[str, Optional[str]] = {}
        has_more = False
        for name in SYNC_COLLECTIONS:
            since = self.seq_of(cursors.get(name))
            newer = [(seq, r) for seq, r in self.log[name] if seq > since]
            page = newer[:limit]
            has_more = has_more or len(newer) > limit
            changes[name] = [r for _, r in page]
            last = page[-1][0] if page else since
            server_cursors[name] = self.cursor_for(name, last)
        return {"changes": changes, "serverCursors": server_cursors, "hasMore": has_more}

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/api")
        if not self.online:
            raise httpx.ConnectError("network unreachable", request=request)
        if request.method == "GET" and path == "/health":
            return httpx.Response(200, json={"status": "ok"})

        body = json.loads(request.content or b"{}")
        self.calls.append((path, body))
        if path in self.fail_on:
            return httpx.Response(self.fail_on[path], json={"detail": "boom"})

        routes = {"/sync/state": self._state, "/sync/push": self._push, "/sync/pull": self._pull}
        if path not in routes:
            return httpx.Response(404, json={"detail": "not found"})
        return httpx.Response(200, json=routes[path](body))

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture(autouse=True)
def golfbuddy_home(tmp_path, monkeypatch):
    """Point the data dir (logs, default db) at a temp dir and reset cached settings."""
    home = tmp_path / "golfbuddy-home"
    monkeypatch.setenv("GOLFBUDDY_DATA_DIR", str(home))
    get_settings.cache_clear()
    yield home
    get_settings.cache_clear()


@pytest.fixture
def temp_db(tmp_path):
    """Create a temporary database path."""
    return tmp_path / "test.db"


@pytest.fixture
def store(temp_db):
    store = SQLiteEntityStore(temp_db)
    yield store
    store.close()


@pytest.fixture
def cursor_store(store):
    return CursorStore(store.connect)


@pytest.fixture
def server():
    return FakeSyncServer()


@pytest.fixture
def client(server):
    return RemoteSyncClient(BASE_URL, auth_token="test-token", transport=server.transport())


@pytest.fixture
def engine(store, cursor_store, client):
    cursor_store.set_enabled(True)
    return SyncEngine(store, cursor_store, client)


@pytest.fixture
def seeded_store(store):
    """1 course, 1 game, 2 scores."""
    course = Course(name="Pebble Creek", rounds=9)
    store.courses.add(course)
    game = Game(course_id=course.id, date=datetime.now(timezone.utc))
    store.games.add(game)
    store.scores.add(Score(game_id=game.id, hole=0, par="4", score="5", putts=2))
    store.scores.add(Score(game_id=game.id, hole=1, par="3", score="3", putts=1))
    return store
