"""
Shared types for golfbuddy.

Entity dataclasses, sync status snapshots and the sync error hierarchy live
here. The entity store, the sync engine, the scheduler and the CLI all speak
these types.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

# Collections that take part in sync, in apply order (parents before children).
SYNC_COLLECTIONS = ("profiles", "courses", "games", "scores")

# Fields that never leave the device.
LOCAL_ONLY_FIELDS = frozenset({"cloud_synced_at", "version"})

# === Shared Utility Functions ===


def utc_now() -> str:
    """Get current timestamp as ISO string in UTC."""
    return datetime.now(timezone.utc).isoformat()


def parse_datetime(s: Optional[str]) -> Optional[datetime]:
    """Parse ISO datetime string, returning None for empty or invalid input."""
    if not s:
        return None
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None


# === Enums ===


class SyncState(str, Enum):
    """Display state of the sync subsystem."""

    DISABLED = "disabled"
    SYNCING = "syncing"
    ERROR = "error"
    OFFLINE = "offline"
    SYNCED = "synced"


class TriggerType(str, Enum):
    """Why a sync round trip was requested."""

    APP_STARTUP = "app_startup"
    ONLINE_STATUS = "online_status"
    GAME_COMPLETION = "game_completion"
    MANUAL = "manual"


# === Errors ===


class SyncError(Exception):
    """Base class for failures that abort a sync round trip."""


class RemoteSyncError(SyncError):
    """The remote endpoint failed or answered with something unusable."""

    def __init__(self, message: str, status_code: Optional[int] = None, phase: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.phase = phase


class LocalApplyError(SyncError):
    """Pulled changes could not be written to the local store."""


class DuplicateRecordError(ValueError):
    """A record with the same id or natural key already exists."""


class RecordNotFoundError(KeyError):
    """Update target does not exist."""


class ConfigurationError(ValueError):
    """Settings are missing or unsafe."""


# === Entities ===


@dataclass
class Profile:
    """A player profile. One per device/user; id is a client-side UUID."""

    id: Optional[str] = None
    username: str = ""
    dob_hash: str = ""
    created_at: Optional[datetime] = None
    last_active_at: Optional[datetime] = None
    # Sync metadata
    local_updated_at: Optional[datetime] = None
    cloud_synced_at: Optional[datetime] = None
    version: int = 0  # local write counter, never synced
    deleted: bool = False


@dataclass
class Course:
    """A course owned by a profile."""

    id: Optional[str] = None
    name: str = ""
    rounds: int = 18  # 9 or 18
    profile_id: Optional[str] = None
    # Sync metadata
    local_updated_at: Optional[datetime] = None
    cloud_synced_at: Optional[datetime] = None
    version: int = 0
    deleted: bool = False

    def __post_init__(self):
        if self.rounds not in (9, 18):
            raise ValueError(f"rounds must be 9 or 18, got {self.rounds!r}")


@dataclass
class Game:
    """A round played on a course."""

    id: Optional[str] = None
    date: Optional[datetime] = None
    course_id: Optional[str] = None
    final_note: str = ""
    final_score: int = 0
    scores: List[Dict[str, Any]] = field(default_factory=list)
    completed_at: Optional[datetime] = None
    # Sync metadata
    local_updated_at: Optional[datetime] = None
    cloud_synced_at: Optional[datetime] = None
    version: int = 0
    deleted: bool = False


@dataclass
class Score:
    """Score for a single hole. Unique per (game_id, hole)."""

    id: Optional[str] = None
    game_id: Optional[str] = None
    hole: int = 0  # 0-based
    par: str = ""
    score: str = ""
    putts: int = 0
    # Sync metadata
    local_updated_at: Optional[datetime] = None
    cloud_synced_at: Optional[datetime] = None
    version: int = 0
    deleted: bool = False

    def __post_init__(self):
        if self.hole < 0:
            raise ValueError(f"hole must be >= 0, got {self.hole!r}")


ENTITY_TYPES = {
    "profiles": Profile,
    "courses": Course,
    "games": Game,
    "scores": Score,
}


# === Sync State ===


@dataclass
class SyncStatus:
    """Persisted sync status, as read back from the cursor store."""

    last_sync: Optional[datetime] = None
    enabled: bool = False
    syncing: bool = False
    last_error: Optional[str] = None
    next_sync_time: Optional[datetime] = None
    state: str = "idle"  # idle | syncing | success | error


@dataclass
class SyncResult:
    """Result of one sync round trip."""

    skipped: Optional[str] = None  # "disabled" or "in_progress" when nothing ran
    in_sync: bool = False  # state check short-circuited the round trip
    pushed: int = 0  # Records acknowledged by the server
    pulled: int = 0  # Records applied locally
    conflicts: int = 0  # Pulled records dropped in favour of newer local edits
    has_more: bool = False  # Server has more changes than the pull limit
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.skipped is None and len(self.errors) == 0


@dataclass
class SyncTrigger:
    """A recorded scheduler trigger, kept in memory for diagnostics."""

    type: TriggerType
    timestamp: datetime
    reason: str
    outcome: str = "pending"  # pending | succeeded | failed | skipped_disabled | skipped_in_progress


@dataclass
class BulkPutResult:
    """Outcome of an upsert batch."""

    inserted: int = 0
    updated: int = 0
    kept_local: int = 0

    @property
    def applied(self) -> int:
        return self.inserted + self.updated
