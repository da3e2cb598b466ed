"""Pydantic models for the remote sync protocol.

JSON over HTTPS, camelCase on the wire:

    POST /sync/state  {cursors}                         -> {inSync, serverCursors?, counts?}
    POST /sync/push   {profiles, courses, games,
                       scores, metadata}                -> {status, saved, serverCursors}
    POST /sync/pull   {cursors, limit}                  -> {changes, serverCursors, hasMore?}
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel, to_snake

from golfbuddy.storage.sqlite import record_from_dict, record_to_dict
from golfbuddy.types import LOCAL_ONLY_FIELDS

PROTOCOL_VERSION = "1.0.0"

Cursors = Dict[str, Optional[str]]


class WireModel(BaseModel):
    """Base model: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# =============================================================================
# State
# =============================================================================


class SyncStateRequest(WireModel):
    """Ask the server whether this device is already caught up."""
    cursors: Cursors


class SyncStateResponse(WireModel):
    """Server answer to a state check."""
    in_sync: bool
    server_cursors: Optional[Cursors] = None
    counts: Optional[Dict[str, int]] = None


# =============================================================================
# Push
# =============================================================================


class SyncMetadata(WireModel):
    """Who is pushing, and what it last saw."""
    device_id: str
    last_sync: str
    version: str = PROTOCOL_VERSION


class SyncPushRequest(WireModel):
    """Local records to store on the server."""
    profiles: List[Dict[str, Any]] = []
    courses: List[Dict[str, Any]] = []
    games: List[Dict[str, Any]] = []
    scores: List[Dict[str, Any]] = []
    metadata: SyncMetadata


class SavedCounts(WireModel):
    """Records saved per collection."""
    profiles: int = 0
    courses: int = 0
    games: int = 0
    scores: int = 0

    @property
    def total(self) -> int:
        return self.profiles + self.courses + self.games + self.scores


class SyncPushResponse(WireModel):
    """Push acknowledgement with the cursors to store."""
    status: str = "ok"
    saved: SavedCounts = Field(default_factory=SavedCounts)
    server_cursors: Cursors


# =============================================================================
# Pull
# =============================================================================


class SyncPullRequest(WireModel):
    """Fetch changes newer than the given cursors."""
    cursors: Cursors
    limit: int = Field(default=100, ge=1)


class SyncChanges(WireModel):
    """Changed records per collection."""
    profiles: List[Dict[str, Any]] = []
    courses: List[Dict[str, Any]] = []
    games: List[Dict[str, Any]] = []
    scores: List[Dict[str, Any]] = []


class SyncPullResponse(WireModel):
    """Changes plus the cursors that cover them."""
    changes: SyncChanges = Field(default_factory=SyncChanges)
    server_cursors: Cursors
    has_more: bool = False


# =============================================================================
# Record conversion
# =============================================================================


def record_to_wire(record: Any) -> Dict[str, Any]:
    """Dataclass record -> camelCase dict, without device-local fields."""
    data = record_to_dict(record)
    return {to_camel(k): v for k, v in data.items() if k not in LOCAL_ONLY_FIELDS}


def record_from_wire(collection: str, data: Dict[str, Any]) -> Any:
    """camelCase dict -> validated dataclass record.

    Raises:
        ValueError: if the record has no id or fails validation
    """
    if not isinstance(data, dict) or not data.get("id"):
        raise ValueError(f"{collection} record without id")
    fields = {to_snake(k): v for k, v in data.items()}
    for key in LOCAL_ONLY_FIELDS:
        fields.pop(key, None)
    return record_from_dict(collection, fields)
