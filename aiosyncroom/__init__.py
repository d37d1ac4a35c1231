"""SyncRoom: synchronized shared media sessions over websockets."""

from __future__ import annotations

# Re-export client library for easy import
from aiosyncroom.client import MessageCallback, RoomState, SessionRequestError, SyncRoomClient

__all__ = [
    "MessageCallback",
    "RoomState",
    "SessionRequestError",
    "SyncRoomClient",
]
