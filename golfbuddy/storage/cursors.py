"""Cursor store: persisted sync watermarks and sync metadata.

Everything lives in the ``sync_meta`` key/value table next to the entity
tables. The store is best-effort: if the database cannot be read or written,
reads return never-synced defaults and writes report ``False`` instead of
raising, so a broken settings area never stops a sync attempt.
"""

import json
import logging
import sqlite3
import time
import uuid
from datetime import datetime
from typing import Any, Callable, ContextManager, Dict, Optional

from golfbuddy.types import SYNC_COLLECTIONS, SyncStatus, parse_datetime, utc_now

logger = logging.getLogger(__name__)

CURSORS_KEY = "cursors"
ENABLED_KEY = "sync_enabled"
DEVICE_ID_KEY = "device_id"
LEASE_KEY = "sync_lease"

# set_status() field -> sync_meta key
STATUS_KEYS = {
    "last_sync": "last_sync_time",
    "last_error": "last_error",
    "next_sync_time": "next_sync_time",
    "state": "sync_state",
    "enabled": ENABLED_KEY,
}


class CursorStore:
    """Durable per-device cursors, status flags and sync lease.

    Args:
        connect_fn: Callable returning a connection context manager
            (``SQLiteEntityStore.connect``).
    """

    def __init__(self, connect_fn: Callable[[], ContextManager[sqlite3.Connection]]):
        self._connect = connect_fn
        self._fallback_device_id: Optional[str] = None

    # === Raw metadata ===

    def _get_meta(self, key: str) -> Optional[str]:
        try:
            with self._connect() as conn:
                row = conn.execute("SELECT value FROM sync_meta WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            logger.warning(f"Cursor store unavailable, reading default for {key}: {e}")
            return None
        return row["value"] if row else None

    def _set_meta(self, values: Dict[str, Optional[str]]) -> bool:
        """Write several keys in one transaction; ``None`` deletes the key."""
        now = utc_now()
        try:
            with self._connect() as conn:
                for key, value in values.items():
                    if value is None:
                        conn.execute("DELETE FROM sync_meta WHERE key = ?", (key,))
                    else:
                        conn.execute(
                            "INSERT OR REPLACE INTO sync_meta (key, value, updated_at) VALUES (?, ?, ?)",
                            (key, value, now),
                        )
        except sqlite3.Error as e:
            logger.warning(f"Cursor store unavailable, dropped write of {sorted(values)}: {e}")
            return False
        return True

    # === Cursors ===

    def get_cursors(self) -> Dict[str, Optional[str]]:
        """Cursor per collection; ``None`` means never synced."""
        cursors: Dict[str, Optional[str]] = {name: None for name in SYNC_COLLECTIONS}
        raw = self._get_meta(CURSORS_KEY)
        if not raw:
            return cursors
        try:
            stored = json.loads(raw)
        except (TypeError, json.JSONDecodeError):
            logger.warning("Corrupt cursor metadata; treating every collection as never synced.")
            return cursors
        if not isinstance(stored, dict):
            return cursors
        for name in SYNC_COLLECTIONS:
            value = stored.get(name)
            cursors[name] = str(value) if value is not None else None
        return cursors

    def set_cursors(self, cursors: Dict[str, Optional[str]]) -> bool:
        """Replace the full cursor mapping in a single write."""
        mapping = {name: cursors.get(name) for name in SYNC_COLLECTIONS}
        return self._set_meta({CURSORS_KEY: json.dumps(mapping, sort_keys=True)})

    def reset_cursors(self) -> bool:
        return self._set_meta({CURSORS_KEY: None})

    # === Status ===

    def is_enabled(self) -> bool:
        return self._get_meta(ENABLED_KEY) == "true"

    def set_enabled(self, enabled: bool) -> bool:
        return self.set_status(enabled=enabled)

    def get_status(self) -> SyncStatus:
        return SyncStatus(
            last_sync=parse_datetime(self._get_meta("last_sync_time")),
            enabled=self.is_enabled(),
            syncing=self.lease_holder() is not None,
            last_error=self._get_meta("last_error"),
            next_sync_time=parse_datetime(self._get_meta("next_sync_time")),
            state=self._get_meta("sync_state") or "idle",
        )

    def set_status(self, **fields: Any) -> bool:
        """Merge status fields. Passing ``None`` clears a field."""
        unknown = set(fields) - set(STATUS_KEYS)
        if unknown:
            raise ValueError(f"Unknown status fields: {sorted(unknown)}")

        values: Dict[str, Optional[str]] = {}
        for name, value in fields.items():
            if isinstance(value, bool):
                value = "true" if value else "false"
            elif isinstance(value, datetime):
                value = value.isoformat()
            values[STATUS_KEYS[name]] = value
        return self._set_meta(values)

    # === Device identity ===

    def ensure_device_id(self) -> str:
        """Return the install's device id, creating it on first use."""
        device_id = self._get_meta(DEVICE_ID_KEY)
        if device_id:
            return device_id

        device_id = str(uuid.uuid4())
        if self._set_meta({DEVICE_ID_KEY: device_id}):
            return device_id

        # Storage is down: keep one id for the life of this process.
        if self._fallback_device_id is None:
            self._fallback_device_id = device_id
        return self._fallback_device_id

    # === Lease ===

    def acquire_lease(self, owner: str, ttl: float) -> bool:
        """Take the sync lease unless another live owner holds it.

        An expired lease is taken over. Granted when storage is unavailable,
        since the lease is advisory.
        """
        now = time.time()
        value = json.dumps({"owner": owner, "expires_at": now + ttl})
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    """INSERT INTO sync_meta (key, value, updated_at) VALUES (?, ?, ?)
                       ON CONFLICT(key) DO UPDATE SET
                           value = excluded.value,
                           updated_at = excluded.updated_at
                       WHERE json_extract(sync_meta.value, '$.expires_at') < ?
                          OR json_extract(sync_meta.value, '$.owner') = ?""",
                    (LEASE_KEY, value, utc_now(), now, owner),
                )
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            logger.warning(f"Cursor store unavailable, granting sync lease to {owner}: {e}")
            return True

    def release_lease(self, owner: str) -> bool:
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    "DELETE FROM sync_meta WHERE key = ? AND json_extract(value, '$.owner') = ?",
                    (LEASE_KEY, owner),
                )
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            logger.warning(f"Cursor store unavailable, could not release sync lease: {e}")
            return False

    def lease_holder(self) -> Optional[str]:
        """Owner of the live lease, if any."""
        raw = self._get_meta(LEASE_KEY)
        if not raw:
            return None
        try:
            lease = json.loads(raw)
            if float(lease["expires_at"]) > time.time():
                return str(lease["owner"])
        except (TypeError, ValueError, KeyError, json.JSONDecodeError):
            logger.warning("Corrupt sync lease metadata; ignoring it.")
        return None
