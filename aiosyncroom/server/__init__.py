"""
Sync room server implementation.

SyncRoomServer is the core of the shared listening experience, responsible for:
- Managing websocket connections and the HTTP API
- Sequencing session events through the SessionCoordinator
- Persisting sessions and evicting inactive ones
"""

__all__ = [
    "CoordinatorConfig",
    "InvalidInputError",
    "JsonFileSnapshotStore",
    "MemorySnapshotStore",
    "QueueFullError",
    "QueueIndexError",
    "SearchError",
    "SearchProvider",
    "SessionCoordinator",
    "SessionNotFoundError",
    "SnapshotStore",
    "SyncRoomError",
    "SyncRoomServer",
    "Transport",
    "YouTubeSearchProvider",
]

from .coordinator import CoordinatorConfig, SessionCoordinator, Transport
from .errors import (
    InvalidInputError,
    QueueFullError,
    QueueIndexError,
    SessionNotFoundError,
    SyncRoomError,
)
from .search import SearchError, SearchProvider, YouTubeSearchProvider
from .server import SyncRoomServer
from .store import JsonFileSnapshotStore, MemorySnapshotStore, SnapshotStore
