"""SQLite entity store for golfbuddy.

Local-first storage with:
- One table per synced collection (profiles, courses, games, scores)
- JSON record bodies keyed by a globally unique id
- Device-local autoincrement ids that never leave the device
- Dirty tracking (version vs synced_version, both device-local counters)
  feeding the push outbox
- Tombstones instead of hard deletes so deletions propagate through sync
"""

import contextlib
import json
import logging
import sqlite3
import uuid
from dataclasses import asdict, fields, replace
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional

from pydantic import TypeAdapter

from golfbuddy.types import (
    ENTITY_TYPES,
    SYNC_COLLECTIONS,
    BulkPutResult,
    DuplicateRecordError,
    RecordNotFoundError,
    utc_now,
)

from .schema import NATURAL_KEYS, init_db, validate_table_name

logger = logging.getLogger(__name__)

# Columns kept outside the JSON body.
_COLUMN_FIELDS = ("id", "local_updated_at", "cloud_synced_at", "version", "deleted")


@lru_cache(maxsize=None)
def _adapter(record_type: type) -> TypeAdapter:
    return TypeAdapter(record_type)


def _iso(value: Any) -> Optional[str]:
    """Normalize a datetime or ISO string to the stored ISO form."""
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def record_to_dict(record: Any) -> Dict[str, Any]:
    """Convert a dataclass record to a JSON-safe dict (datetimes as ISO strings)."""
    d = asdict(record)
    for k, v in d.items():
        if isinstance(v, datetime):
            d[k] = _iso(v)
    return d


def record_from_dict(collection: str, data: Dict[str, Any]) -> Any:
    """Build (and validate) the dataclass record for ``collection`` from a dict."""
    record_type = ENTITY_TYPES[collection]
    return _adapter(record_type).validate_python(data)


class QueryResult:
    """Result of ``table.where(field).equals(value)``."""

    def __init__(self, table: "EntityTable", field_name: str, value: Any):
        self._table = table
        self._field = field_name
        self._value = value

    def to_list(self, conn: Optional[sqlite3.Connection] = None) -> List[Any]:
        return self._table._select_where(self._field, self._value, conn=conn)

    def first(self) -> Optional[Any]:
        rows = self.to_list()
        return rows[0] if rows else None

    def count(self) -> int:
        return len(self.to_list())


class FieldQuery:
    """Pending equality query on one field."""

    def __init__(self, table: "EntityTable", field_name: str):
        self._table = table
        self._field = field_name

    def equals(self, value: Any) -> QueryResult:
        return QueryResult(self._table, self._field, value)


class EntityTable:
    """Add/get/update/delete/query primitives for one collection."""

    def __init__(self, store: "SQLiteEntityStore", name: str):
        self._store = store
        self.name = validate_table_name(name)
        self.record_type = ENTITY_TYPES[name]
        self._field_names = {f.name for f in fields(self.record_type)}

    # === Row conversion ===

    def _to_body(self, record: Any) -> str:
        body = record_to_dict(record)
        for key in _COLUMN_FIELDS:
            body.pop(key, None)
        return json.dumps(body, sort_keys=True)

    def _from_row(self, row: sqlite3.Row) -> Any:
        data = json.loads(row["data"])
        data["id"] = row["id"]
        data["local_updated_at"] = row["local_updated_at"]
        data["cloud_synced_at"] = row["cloud_synced_at"]
        data["version"] = row["version"]
        data["deleted"] = bool(row["deleted"])
        return record_from_dict(self.name, data)

    # === Reads ===

    def get(
        self, record_id: str, include_deleted: bool = False, conn: Optional[sqlite3.Connection] = None
    ) -> Optional[Any]:
        with self._store._use(conn) as c:
            row = c.execute(f"SELECT * FROM {self.name} WHERE id = ?", (record_id,)).fetchone()
        if row is None or (row["deleted"] and not include_deleted):
            return None
        return self._from_row(row)

    def to_list(
        self, include_deleted: bool = False, conn: Optional[sqlite3.Connection] = None
    ) -> List[Any]:
        sql = f"SELECT * FROM {self.name}"
        if not include_deleted:
            sql += " WHERE deleted = 0"
        with self._store._use(conn) as c:
            rows = c.execute(sql + " ORDER BY local_id").fetchall()
        return [self._from_row(row) for row in rows]

    def count(self) -> int:
        with self._store._use(None) as c:
            return c.execute(f"SELECT COUNT(*) FROM {self.name} WHERE deleted = 0").fetchone()[0]

    def where(self, field_name: str) -> FieldQuery:
        if field_name not in self._field_names:
            raise ValueError(f"Unknown field for {self.name}: {field_name}")
        return FieldQuery(self, field_name)

    def _select_where(
        self, field_name: str, value: Any, conn: Optional[sqlite3.Connection] = None
    ) -> List[Any]:
        if field_name in _COLUMN_FIELDS:
            sql = f"SELECT * FROM {self.name} WHERE deleted = 0 AND {field_name} = ?"
            params: tuple = (value,)
        else:
            sql = f"SELECT * FROM {self.name} WHERE deleted = 0 AND json_extract(data, ?) = ?"
            params = (f"$.{field_name}", value)
        with self._store._use(conn) as c:
            rows = c.execute(sql + " ORDER BY local_id", params).fetchall()
        return [self._from_row(row) for row in rows]

    # === Writes ===

    def _find_natural_duplicate(
        self, conn: sqlite3.Connection, record: Any, record_id: str
    ) -> Optional[str]:
        key_fields = NATURAL_KEYS.get(self.name)
        if not key_fields or record.deleted:
            return None
        clauses = " AND ".join("json_extract(data, ?) = ?" for _ in key_fields)
        params: List[Any] = []
        for key in key_fields:
            params.extend([f"$.{key}", getattr(record, key)])
        row = conn.execute(
            f"SELECT id FROM {self.name} WHERE deleted = 0 AND id != ? AND {clauses}",
            (record_id, *params),
        ).fetchone()
        return row["id"] if row else None

    def add(self, record: Any, conn: Optional[sqlite3.Connection] = None) -> str:
        """Insert a new record and return its id (a UUID assigned here if missing)."""
        record_id = record.id or str(uuid.uuid4())
        now = utc_now()
        with self._store._use(conn) as c:
            if c.execute(f"SELECT 1 FROM {self.name} WHERE id = ?", (record_id,)).fetchone():
                raise DuplicateRecordError(f"{self.name}:{record_id} already exists")
            duplicate = self._find_natural_duplicate(c, record, record_id)
            if duplicate:
                raise DuplicateRecordError(
                    f"{self.name}:{duplicate} already holds {NATURAL_KEYS[self.name]}"
                )
            c.execute(
                f"""INSERT INTO {self.name}
                    (id, data, local_updated_at, cloud_synced_at, version, synced_version, deleted)
                    VALUES (?, ?, ?, NULL, 1, 0, ?)""",
                (record_id, self._to_body(record), now, int(record.deleted)),
            )
        record.id = record_id
        return record_id

    def update(
        self, record_id: str, changes: Dict[str, Any], conn: Optional[sqlite3.Connection] = None
    ) -> Any:
        """Merge ``changes`` into a live record and bump its update time."""
        rejected = (set(changes) - self._field_names) | (set(changes) & {"id", "version"})
        if rejected:
            raise ValueError(f"Cannot update fields on {self.name}: {sorted(rejected)}")

        with self._store._use(conn) as c:
            current = self.get(record_id, conn=c)
            if current is None:
                raise RecordNotFoundError(f"{self.name}:{record_id}")
            updated = replace(current, **changes)
            duplicate = self._find_natural_duplicate(c, updated, record_id)
            if duplicate:
                raise DuplicateRecordError(
                    f"{self.name}:{duplicate} already holds {NATURAL_KEYS[self.name]}"
                )
            now = utc_now()
            c.execute(
                f"""UPDATE {self.name}
                    SET data = ?, local_updated_at = ?, version = version + 1
                    WHERE id = ?""",
                (self._to_body(updated), now, record_id),
            )
            return self.get(record_id, conn=c)

    def delete(self, record_id: str, conn: Optional[sqlite3.Connection] = None) -> bool:
        """Tombstone a record. Returns False if it was missing or already deleted."""
        with self._store._use(conn) as c:
            cursor = c.execute(
                f"""UPDATE {self.name}
                    SET deleted = 1, local_updated_at = ?, version = version + 1
                    WHERE id = ? AND deleted = 0""",
                (utc_now(), record_id),
            )
            return cursor.rowcount > 0

    def bulk_put(
        self,
        records: Iterable[Any],
        from_remote: bool = False,
        conn: Optional[sqlite3.Connection] = None,
    ) -> BulkPutResult:
        """Upsert records by id.

        Local puts stamp a fresh update time and leave the row dirty. Remote
        puts store the row clean. A remote put only loses to the local row
        when the local row has unpushed edits newer than the remote copy
        (last write wins); clean rows are always overwritten.
        """
        result = BulkPutResult()
        with self._store._use(conn) as c:
            for record in records:
                record_id = record.id or str(uuid.uuid4())
                existing = c.execute(
                    f"""SELECT local_updated_at, cloud_synced_at, version, synced_version
                        FROM {self.name} WHERE id = ?""",
                    (record_id,),
                ).fetchone()
                version = existing["version"] + 1 if existing else 1

                if from_remote:
                    updated_at = _iso(record.local_updated_at) or utc_now()
                    dirty = existing is not None and existing["version"] > existing["synced_version"]
                    if dirty and existing["local_updated_at"] > updated_at:
                        logger.info(
                            f"Keeping local {self.name}:{record_id}, "
                            f"unpushed edit newer than the pulled version"
                        )
                        result.kept_local += 1
                        continue
                    synced_version = version
                    synced_at: Optional[str] = utc_now()
                else:
                    updated_at = utc_now()
                    synced_version = existing["synced_version"] if existing else 0
                    synced_at = existing["cloud_synced_at"] if existing else None

                duplicate = self._find_natural_duplicate(c, record, record_id)
                if duplicate:
                    if not from_remote:
                        raise DuplicateRecordError(
                            f"{self.name}:{duplicate} already holds {NATURAL_KEYS[self.name]}"
                        )
                    logger.warning(
                        f"Pulled {self.name}:{record_id} replaces local duplicate {duplicate}"
                    )
                    c.execute(
                        f"""UPDATE {self.name}
                            SET deleted = 1, local_updated_at = ?, version = version + 1
                            WHERE id = ?""",
                        (utc_now(), duplicate),
                    )

                params = (
                    self._to_body(record),
                    updated_at,
                    synced_at,
                    version,
                    synced_version,
                    int(record.deleted),
                    record_id,
                )
                if existing:
                    c.execute(
                        f"""UPDATE {self.name}
                            SET data = ?, local_updated_at = ?, cloud_synced_at = ?,
                                version = ?, synced_version = ?, deleted = ?
                            WHERE id = ?""",
                        params,
                    )
                    result.updated += 1
                else:
                    c.execute(
                        f"""INSERT INTO {self.name}
                            (data, local_updated_at, cloud_synced_at, version, synced_version, deleted, id)
                            VALUES (?, ?, ?, ?, ?, ?, ?)""",
                        params,
                    )
                    result.inserted += 1
        return result

    # === Sync outbox ===

    def pending_changes(self, conn: Optional[sqlite3.Connection] = None) -> List[Any]:
        """Records (tombstones included) with edits not yet acknowledged by the server."""
        with self._store._use(conn) as c:
            rows = c.execute(
                f"SELECT * FROM {self.name} WHERE version > synced_version ORDER BY local_id"
            ).fetchall()
        return [self._from_row(row) for row in rows]

    def mark_synced(self, records: Iterable[Any], conn: Optional[sqlite3.Connection] = None) -> int:
        """Mark pushed versions clean. Rows edited since collection stay dirty."""
        marked = 0
        now = utc_now()
        with self._store._use(conn) as c:
            for record in records:
                cursor = c.execute(
                    f"""UPDATE {self.name} SET synced_version = version, cloud_synced_at = ?
                        WHERE id = ? AND version = ?""",
                    (now, record.id, record.version),
                )
                marked += cursor.rowcount
        return marked


class SQLiteEntityStore:
    """Per-device durable storage of the four synced collections.

    Args:
        db_path: Database file. Parent directories are created.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._tables = {name: EntityTable(self, name) for name in SYNC_COLLECTIONS}
        self._init_db()

    @property
    def profiles(self) -> EntityTable:
        return self._tables["profiles"]

    @property
    def courses(self) -> EntityTable:
        return self._tables["courses"]

    @property
    def games(self) -> EntityTable:
        return self._tables["games"]

    @property
    def scores(self) -> EntityTable:
        return self._tables["scores"]

    def table(self, name: str) -> EntityTable:
        try:
            return self._tables[name]
        except KeyError:
            raise ValueError(f"Invalid table name: {name}") from None

    def _init_db(self):
        with self._connect() as conn:
            init_db(conn, self.db_path)

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=5000")
        return conn

    @contextlib.contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Context manager that commits on success, rolls back on error, always closes."""
        conn = self._get_conn()
        try:
            yield conn
            conn.commit()
        except Exception as e:
            logger.debug(f"Transaction failed, rolling back: {e}")
            conn.rollback()
            raise
        finally:
            conn.close()

    @contextlib.contextmanager
    def _use(self, conn: Optional[sqlite3.Connection]) -> Iterator[sqlite3.Connection]:
        """Join an open transaction, or run in a fresh one."""
        if conn is not None:
            yield conn
            return
        with self._connect() as fresh:
            yield fresh

    def connect(self):
        """Connection factory shared with the cursor store."""
        return self._connect()

    def transaction(self):
        """One transaction spanning several tables; pass the yielded conn to table calls."""
        return self._connect()

    def pending_change_count(self) -> int:
        return sum(len(self.table(name).pending_changes()) for name in SYNC_COLLECTIONS)

    def close(self):
        """Connections are per-operation; nothing to release."""
