"""State of a single synchronized playback session."""

from __future__ import annotations

import logging

from aiosyncroom.clock import PlaybackClock
from aiosyncroom.models import MediaRef
from aiosyncroom.models.snapshot import SessionSnapshot

from .membership import Membership
from .queue import MediaQueue

logger = logging.getLogger(__name__)


class Session:
    """
    One shared playback context: clock, queue, current item and participants.

    A Session holds state only. All mutations are sequenced by the SessionCoordinator, which
    is also responsible for broadcasting them.
    """

    session_id: str
    clock: PlaybackClock
    queue: MediaQueue
    members: Membership
    current_item: MediaRef | None
    last_activity: float
    """Wall-clock time of the last mutating event."""
    warning_issued: bool
    """Whether an inactivity warning was sent during the current inactivity window."""

    def __init__(
        self,
        session_id: str,
        now: float,
        *,
        clock: PlaybackClock | None = None,
        queue: MediaQueue | None = None,
        current_item: MediaRef | None = None,
    ) -> None:
        """Initialize a session that was last active at ``now``."""
        self.session_id = session_id
        self.clock = clock if clock is not None else PlaybackClock(last_update=now)
        self.queue = queue if queue is not None else MediaQueue()
        self.members = Membership()
        self.current_item = current_item
        self.last_activity = now
        self.warning_issued = False

    def __repr__(self) -> str:
        """Return a short description for logging."""
        return (
            f"Session({self.session_id!r}, participants={len(self.members)}, "
            f"queue={len(self.queue)}, playing={self.clock.is_playing})"
        )

    def touch(self, now: float) -> None:
        """Record activity, which also opens a new inactivity window."""
        self.last_activity = now
        self.warning_issued = False

    def inactive_for(self, now: float) -> float:
        """Return the number of seconds since the last activity."""
        return max(0.0, now - self.last_activity)

    def play_item(self, item: MediaRef, now: float) -> None:
        """Load ``item`` and start playing it from the beginning."""
        self.current_item = item
        self.clock.start(now)

    def to_snapshot(self) -> SessionSnapshot:
        """Return the durable part of this session."""
        return SessionSnapshot(
            id=self.session_id,
            is_playing=self.clock.is_playing,
            position=self.clock.position,
            last_update=self.clock.last_update,
            last_activity=self.last_activity,
            current_item=self.current_item,
            queue=self.queue.entries,
        )

    @classmethod
    def from_snapshot(cls, snapshot: SessionSnapshot) -> Session:
        """Rebuild a session from its snapshot, without participants."""
        return cls(
            snapshot.id,
            snapshot.last_activity,
            clock=PlaybackClock(
                position=max(0.0, snapshot.position),
                is_playing=snapshot.is_playing,
                last_update=snapshot.last_update,
            ),
            queue=MediaQueue(snapshot.queue),
            current_item=snapshot.current_item,
        )
