"""Models for the sync room protocol."""

from __future__ import annotations

__all__ = [
    "ClientMessage",
    "ClientPayload",
    "MediaRef",
    "ParticipantInfo",
    "Provider",
    "QueueEntry",
    "ServerMessage",
    "chat",
    "playback",
    "queue",
    "session",
    "snapshot",
    "types",
]

# Importing every message module registers its subclasses with the discriminated
# ClientMessage/ServerMessage bases.
from . import chat, playback, queue, session, snapshot, types
from .types import (
    ClientMessage,
    ClientPayload,
    MediaRef,
    ParticipantInfo,
    Provider,
    QueueEntry,
    ServerMessage,
)
