"""Owned collection of the live sessions of a server."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping

from aiosyncroom.models.snapshot import SessionSnapshot

from .session import Session
from .validation import SESSION_ID_LENGTH, is_valid_session_id

logger = logging.getLogger(__name__)


class SessionRegistry:
    """
    Live sessions keyed by id.

    The registry is created by the SessionCoordinator at construction, seeded from the
    snapshot store when the coordinator starts and dropped when it stops. It is never shared:
    all access goes through the coordinator.
    """

    _sessions: dict[str, Session]

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._sessions = {}

    def __len__(self) -> int:
        """Return the number of live sessions."""
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        """Return whether a session with ``session_id`` is live."""
        return session_id in self._sessions

    def _new_session_id(self) -> str:
        while True:
            session_id = uuid.uuid4().hex[:SESSION_ID_LENGTH]
            if session_id not in self._sessions:
                return session_id

    def create(self, now: float) -> Session:
        """Create an empty session with a fresh identifier."""
        session = Session(self._new_session_id(), now)
        self._sessions[session.session_id] = session
        logger.info("Created session %s", session.session_id)
        return session

    def remove(self, session_id: str) -> Session | None:
        """Remove the session with ``session_id`` and return it."""
        session = self._sessions.pop(session_id, None)
        if session is not None:
            logger.info("Removed session %s", session_id)
        return session

    def snapshot(self) -> dict[str, SessionSnapshot]:
        """Return the durable state of every live session."""
        return {
            session_id: session.to_snapshot() for session_id, session in self._sessions.items()
        }

    def restore(
        self, snapshots: Mapping[str, SessionSnapshot], now: float, ttl: float
    ) -> list[Session]:
        """
        Admit persisted sessions that were active within the last ``ttl`` seconds.

        Restored sessions start without participants and without a host.
        Returns the admitted sessions.
        """
        cutoff = now - ttl
        restored: list[Session] = []
        for session_id, snapshot in snapshots.items():
            if session_id != snapshot.id or not is_valid_session_id(session_id):
                logger.warning("Skipping persisted session with invalid id %r", session_id)
                continue
            if snapshot.last_activity <= cutoff:
                logger.debug("Not restoring expired session %s", session_id)
                continue
            if session_id in self._sessions:
                continue
            session = Session.from_snapshot(snapshot)
            self._sessions[session_id] = session
            restored.append(session)
        logger.info("Restored %d of %d persisted sessions", len(restored), len(snapshots))
        return restored
