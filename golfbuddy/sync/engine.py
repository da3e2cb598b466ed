"""Sync engine: one state-check / push / pull round trip.

Round trip:
1. State check: send cursors. If the server says ``inSync`` and nothing is
   waiting locally, the round ends as a success with cursors unchanged.
2. Push: send every record edited since its last acknowledgement (or every
   record with ``full_snapshot``), then persist the returned cursors at once.
   A later pull failure never rolls the push back.
3. Pull: fetch changes newer than the post-push cursors, upsert them into
   the local store in one transaction, then persist cursors again.

Any failure aborts the remaining phases, records ``last_error`` and leaves
cursors at the last committed value. There is no retry here; the scheduler's
next trigger is the retry.
"""

import asyncio
import logging
import sqlite3
import uuid
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from golfbuddy.logging_config import log_sync, log_sync_event
from golfbuddy.types import (
    SYNC_COLLECTIONS,
    LocalApplyError,
    RemoteSyncError,
    SyncError,
    SyncResult,
    SyncStatus,
)

from .protocol import (
    PROTOCOL_VERSION,
    Cursors,
    SyncChanges,
    SyncMetadata,
    SyncPushRequest,
    record_from_wire,
    record_to_wire,
)

if TYPE_CHECKING:
    from golfbuddy.storage import CursorStore, SQLiteEntityStore

    from .client import RemoteSyncClient

logger = logging.getLogger(__name__)


def merge_cursors(current: Cursors, server: Optional[Cursors]) -> Cursors:
    """Overlay server cursors on the current ones, ignoring nulls and unknown collections."""
    merged = dict(current)
    for name, value in (server or {}).items():
        if name in SYNC_COLLECTIONS and value is not None:
            merged[name] = str(value)
    return merged


class SyncEngine:
    """Runs sync round trips between the local store and the remote endpoint.

    Args:
        store: Local entity store.
        cursor_store: Cursor and status persistence.
        client: Remote sync client.
        pull_limit: Records requested per pull.
        sync_interval: Staleness ceiling used to compute ``next_sync_time``.
        full_snapshot: Push every record instead of only unacknowledged edits.
        lease_ttl: Seconds before an abandoned sync lease can be taken over.
    """

    def __init__(
        self,
        store: "SQLiteEntityStore",
        cursor_store: "CursorStore",
        client: "RemoteSyncClient",
        pull_limit: int = 100,
        sync_interval: timedelta = timedelta(hours=24),
        full_snapshot: bool = False,
        lease_ttl: float = 120.0,
    ):
        if pull_limit < 1:
            raise ValueError("pull_limit must be at least 1")
        self.store = store
        self.cursor_store = cursor_store
        self.client = client
        self.pull_limit = pull_limit
        self.sync_interval = sync_interval
        self.full_snapshot = full_snapshot
        self.lease_ttl = lease_ttl
        self._in_flight = False

    @property
    def is_syncing(self) -> bool:
        """True while a round trip started by this engine is running."""
        return self._in_flight

    def get_status(self) -> SyncStatus:
        status = self.cursor_store.get_status()
        if self._in_flight:
            status.syncing = True
        return status

    async def enable(self) -> SyncResult:
        """Turn sync on and run the initial round trip."""
        await asyncio.to_thread(self.cursor_store.set_enabled, True)
        logger.info("Sync enabled")
        return await self.sync()

    def disable(self) -> None:
        self.cursor_store.set_status(enabled=False, next_sync_time=None)
        logger.info("Sync disabled")

    async def sync(self, full_snapshot: Optional[bool] = None) -> SyncResult:
        """Run one round trip.

        Returns without network traffic when sync is disabled or another
        round trip (in this process or another) is running.
        """
        if self._in_flight:
            logger.debug("Sync skipped: round trip already in flight")
            return SyncResult(skipped="in_progress")

        # Claimed before the first await so a concurrent caller sees it.
        self._in_flight = True
        try:
            if not await asyncio.to_thread(self.cursor_store.is_enabled):
                logger.debug("Sync skipped: disabled")
                return SyncResult(skipped="disabled")

            device_id = await asyncio.to_thread(self.cursor_store.ensure_device_id)
            owner = f"{device_id}:{uuid.uuid4().hex[:8]}"
            if not await asyncio.to_thread(self.cursor_store.acquire_lease, owner, self.lease_ttl):
                holder = await asyncio.to_thread(self.cursor_store.lease_holder)
                logger.info(f"Sync skipped: lease held by {holder}")
                return SyncResult(skipped="in_progress")
            try:
                full = self.full_snapshot if full_snapshot is None else full_snapshot
                return await self._round_trip(device_id, full)
            finally:
                await asyncio.to_thread(self.cursor_store.release_lease, owner)
        finally:
            self._in_flight = False

    async def _round_trip(self, device_id: str, full_snapshot: bool) -> SyncResult:
        result = SyncResult()
        await asyncio.to_thread(self.cursor_store.set_status, state="syncing")
        log_sync_event("sync_start", f"full_snapshot={full_snapshot}", device_id=device_id)

        try:
            cursors = await asyncio.to_thread(self.cursor_store.get_cursors)

            # Phase 1: state check
            state = await self.client.check_state(cursors)
            pending = await asyncio.to_thread(self._pending_count)
            log_sync(device_id, "state", pending)
            if state.in_sync and pending == 0 and not full_snapshot:
                logger.info("Already in sync; nothing to push or pull")
                result.in_sync = True
                await self._record_success(device_id, result)
                return result

            # Phase 2: push
            cursors = await self._push(device_id, cursors, full_snapshot, result)

            # Phase 3: pull
            await self._pull(device_id, cursors, result)
        except (SyncError, sqlite3.Error) as e:
            await self._record_failure(device_id, e, result)
            return result
        except Exception as e:
            logger.error(f"Unexpected error during sync: {e}", exc_info=True)
            await self._record_failure(device_id, e, result)
            return result

        await self._record_success(device_id, result)
        return result

    # === Push ===

    def _pending_count(self) -> int:
        try:
            return self.store.pending_change_count()
        except sqlite3.Error as e:
            logger.warning(f"Could not count pending changes: {e}")
            return 0

    def _collect(self, full_snapshot: bool) -> Dict[str, List[Any]]:
        """Records to push, per collection, read in one transaction."""
        try:
            with self.store.transaction() as conn:
                if full_snapshot:
                    return {
                        name: self.store.table(name).to_list(include_deleted=True, conn=conn)
                        for name in SYNC_COLLECTIONS
                    }
                return {
                    name: self.store.table(name).pending_changes(conn=conn)
                    for name in SYNC_COLLECTIONS
                }
        except sqlite3.Error as e:
            logger.warning(f"Could not read local changes, pushing nothing: {e}")
            return {name: [] for name in SYNC_COLLECTIONS}

    def _mark_pushed(self, outbox: Dict[str, List[Any]]) -> int:
        with self.store.transaction() as conn:
            return sum(
                self.store.table(name).mark_synced(records, conn=conn)
                for name, records in outbox.items()
            )

    async def _push(
        self, device_id: str, cursors: Cursors, full_snapshot: bool, result: SyncResult
    ) -> Cursors:
        outbox = await asyncio.to_thread(self._collect, full_snapshot)
        total = sum(len(records) for records in outbox.values())
        if total == 0:
            logger.debug("No local changes to push")
            return cursors

        last_sync = (await asyncio.to_thread(self.cursor_store.get_status)).last_sync
        payload = SyncPushRequest(
            **{name: [record_to_wire(r) for r in outbox[name]] for name in SYNC_COLLECTIONS},
            metadata=SyncMetadata(
                device_id=device_id,
                last_sync=last_sync.isoformat() if last_sync else "",
                version=PROTOCOL_VERSION,
            ),
        )
        logger.info(f"Pushing {total} records")
        response = await self.client.push(payload)

        # Commit the push phase before anything else can fail.
        cursors = merge_cursors(cursors, response.server_cursors)
        await asyncio.to_thread(self.cursor_store.set_cursors, cursors)

        marked = await asyncio.to_thread(self._mark_pushed, outbox)
        if marked < total:
            logger.info(f"{total - marked} pushed records were edited during push; they stay pending")

        result.pushed = response.saved.total or total
        log_sync(device_id, "push", result.pushed)
        return cursors

    # === Pull ===

    def _apply(self, changes: SyncChanges) -> Tuple[int, int]:
        """Upsert pulled records; returns (applied, kept_local)."""
        try:
            records = {
                name: [record_from_wire(name, data) for data in getattr(changes, name)]
                for name in SYNC_COLLECTIONS
            }
        except ValueError as e:
            raise RemoteSyncError(f"pull returned an invalid record: {e}", phase="pull") from e

        applied = kept_local = 0
        try:
            with self.store.transaction() as conn:
                for name in SYNC_COLLECTIONS:
                    if not records[name]:
                        continue
                    outcome = self.store.table(name).bulk_put(records[name], from_remote=True, conn=conn)
                    applied += outcome.applied
                    kept_local += outcome.kept_local
        except sqlite3.Error as e:
            raise LocalApplyError(f"Could not apply pulled changes: {e}") from e
        return applied, kept_local

    async def _pull(self, device_id: str, cursors: Cursors, result: SyncResult) -> None:
        response = await self.client.pull(cursors, self.pull_limit)
        applied, kept_local = await asyncio.to_thread(self._apply, response.changes)

        await asyncio.to_thread(
            self.cursor_store.set_cursors, merge_cursors(cursors, response.server_cursors)
        )

        result.pulled = applied
        result.conflicts = kept_local
        result.has_more = response.has_more
        if response.has_more:
            logger.info("Server has more changes; the next sync continues from the new cursors")
        log_sync(device_id, "pull", applied)

    # === Outcome ===

    async def _record_success(self, device_id: str, result: SyncResult) -> None:
        now = datetime.now(timezone.utc)
        await asyncio.to_thread(
            self.cursor_store.set_status,
            last_sync=now,
            last_error=None,
            state="success",
            next_sync_time=now + self.sync_interval,
        )
        logger.info(
            f"Sync complete: pushed={result.pushed}, pulled={result.pulled}, "
            f"conflicts={result.conflicts}"
        )
        log_sync_event(
            "sync_complete",
            f"pushed={result.pushed}, pulled={result.pulled}, in_sync={result.in_sync}",
            device_id=device_id,
        )

    async def _record_failure(self, device_id: str, error: Exception, result: SyncResult) -> None:
        message = str(error) or error.__class__.__name__
        result.errors.append(message)
        await asyncio.to_thread(self.cursor_store.set_status, last_error=message, state="error")
        logger.error(f"Sync failed: {message}")
        log_sync_event("sync_error", message, device_id=device_id)
