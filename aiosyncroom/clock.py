"""Playback clock shared by the server and the client library.

The clock is stored as a snapshot ``(position, is_playing, last_update)`` and projected on
every read. Nothing ticks: while playing, the effective position is the stored position plus
the wall-clock time elapsed since ``last_update``.
"""

from __future__ import annotations

from dataclasses import dataclass


def project_position(position: float, is_playing: bool, last_update: float, now: float) -> float:
    """Return the effective playback position at ``now``."""
    if not is_playing:
        return position
    # A clock stepping backwards must not move playback backwards.
    return position + max(0.0, now - last_update)


@dataclass(slots=True)
class PlaybackClock:
    """Snapshot of a playback timeline."""

    position: float = 0.0
    """Position in seconds as of last_update."""
    is_playing: bool = False
    last_update: float = 0.0
    """Time of the last write, in seconds on the owner's time base."""

    def project(self, now: float) -> float:
        """Return the effective playback position at ``now``."""
        return project_position(self.position, self.is_playing, self.last_update, now)

    def start(self, now: float) -> None:
        """Start a new item from the beginning."""
        self.position = 0.0
        self.is_playing = True
        self.last_update = now

    def set_play_state(self, is_playing: bool, position: float, now: float) -> None:
        """Store a play/pause report verbatim."""
        self.is_playing = is_playing
        self.position = position
        self.last_update = now

    def seek(self, position: float, now: float) -> None:
        """Move to ``position`` without changing the play state."""
        self.position = position
        self.last_update = now
