"""Database schema for golfbuddy SQLite storage.

Contains:
- Schema DDL (SCHEMA)
- Schema version tracking (SCHEMA_VERSION)
- Table allowlist (ALLOWED_TABLES, validate_table_name)
- Database initialization (init_db) and migrations (migrate_schema)
"""

import logging
import os
import sqlite3
from pathlib import Path

from golfbuddy.types import SYNC_COLLECTIONS

logger = logging.getLogger(__name__)

# Schema version for migrations
# v2: version/synced_version counters replace timestamp dirty tracking
SCHEMA_VERSION = 2

# Allowed table names for SQL queries (security: prevents SQL injection via table names)
ALLOWED_TABLES = frozenset(SYNC_COLLECTIONS) | frozenset({"sync_meta", "schema_version"})

# Natural keys that must stay unique among live (non-tombstoned) records.
NATURAL_KEYS = {
    "scores": ("game_id", "hole"),
}


def validate_table_name(table: str) -> str:
    """Validate table name against allowlist to prevent SQL injection.

    Raises:
        ValueError: If table name is not in allowlist
    """
    if table not in ALLOWED_TABLES:
        raise ValueError(f"Invalid table name: {table}")
    return table


# A row is dirty while version > synced_version. Both counters are
# device-local; wall-clock timestamps never decide dirtiness.
_ENTITY_TABLE = """
CREATE TABLE IF NOT EXISTS {table} (
    local_id INTEGER PRIMARY KEY AUTOINCREMENT,  -- device-local, never synced
    id TEXT NOT NULL UNIQUE,                     -- UUID, the sync identity
    data TEXT NOT NULL,                          -- JSON body
    local_updated_at TEXT NOT NULL,
    cloud_synced_at TEXT,
    version INTEGER NOT NULL DEFAULT 1,          -- bumped on every local write
    synced_version INTEGER NOT NULL DEFAULT 0,   -- last version the server holds
    deleted INTEGER NOT NULL DEFAULT 0
);
CREATE INDEX IF NOT EXISTS idx_{table}_dirty ON {table}(synced_version, version);
"""

SCHEMA = (
    """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

-- Sync metadata: cursors, enabled flag, last sync, lease
CREATE TABLE IF NOT EXISTS sync_meta (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""
    + "".join(_ENTITY_TABLE.format(table=table) for table in SYNC_COLLECTIONS)
)


def migrate_schema(conn: sqlite3.Connection) -> None:
    """Bring an existing database up to the current columns.

    v1 databases tracked dirtiness by comparing ``cloud_synced_at`` with
    ``local_updated_at``; rows that were clean under that rule start clean.
    """
    table_names = {
        row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
    }

    applied = 0
    for table in SYNC_COLLECTIONS:
        if table not in table_names:
            continue
        validate_table_name(table)
        columns = {c[1] for c in conn.execute(f"PRAGMA table_info({table})").fetchall()}
        if "version" in columns:
            continue
        conn.execute(f"ALTER TABLE {table} ADD COLUMN version INTEGER NOT NULL DEFAULT 1")
        conn.execute(f"ALTER TABLE {table} ADD COLUMN synced_version INTEGER NOT NULL DEFAULT 0")
        conn.execute(
            f"""UPDATE {table} SET synced_version = version
                WHERE cloud_synced_at IS NOT NULL AND cloud_synced_at >= local_updated_at"""
        )
        conn.execute(f"DROP INDEX IF EXISTS idx_{table}_dirty")
        applied += 1

    if applied:
        logger.info(f"Migrated {applied} tables to version-based dirty tracking")


def init_db(conn: sqlite3.Connection, db_path: Path) -> None:
    """Create tables, record the schema version and lock down file permissions."""
    # Migrations first: the schema's indexes need the new columns.
    migrate_schema(conn)
    conn.executescript(SCHEMA)

    row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
    if row is None:
        conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
    elif row[0] != SCHEMA_VERSION:
        conn.execute("UPDATE schema_version SET version = ?", (SCHEMA_VERSION,))

    conn.commit()

    # Owner read/write only
    try:
        os.chmod(db_path, 0o600)
    except OSError as e:
        logger.warning(f"Could not set secure permissions: {e}")
