"""Public interface for the SyncRoom client package."""

from .client import MessageCallback, RoomState, SessionRequestError, SyncRoomClient
from .discovery import RoomServer, RoomServerFinder

__all__ = [
    "MessageCallback",
    "RoomServer",
    "RoomServerFinder",
    "RoomState",
    "SessionRequestError",
    "SyncRoomClient",
]
