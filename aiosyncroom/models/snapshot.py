"""Persisted representation of a session.

Participants and the host are connection-bound and therefore never part of a snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from mashumaro.mixins.orjson import DataClassORJSONMixin

from .types import MediaRef, QueueEntry


@dataclass
class SessionSnapshot(DataClassORJSONMixin):
    """Durable state of a single session."""

    id: str
    is_playing: bool
    position: float
    """Stored clock position in seconds, as of last_update."""
    last_update: float
    """Wall-clock time (seconds since the epoch) of the last position write."""
    last_activity: float
    """Wall-clock time (seconds since the epoch) of the last mutating event."""
    current_item: MediaRef | None = None
    queue: list[QueueEntry] = field(default_factory=list)
