"""golfbuddy sync: remote client, engine, scheduler and status surface."""

from .client import RemoteSyncClient
from .engine import SyncEngine, merge_cursors
from .protocol import PROTOCOL_VERSION, record_from_wire, record_to_wire
from .scheduler import ConnectivityMonitor, SchedulerConfig, SyncScheduler
from .status import StatusView, SyncStatusSurface, format_last_sync

__all__ = [
    "PROTOCOL_VERSION",
    "ConnectivityMonitor",
    "RemoteSyncClient",
    "SchedulerConfig",
    "StatusView",
    "SyncEngine",
    "SyncScheduler",
    "SyncStatusSurface",
    "format_last_sync",
    "merge_cursors",
    "record_from_wire",
    "record_to_wire",
]
