"""Errors raised while handling session events."""


class SyncRoomError(Exception):
    """Base class for errors reported back to the requesting connection."""


class InvalidInputError(SyncRoomError):
    """An inbound event failed validation."""


class SessionNotFoundError(SyncRoomError):
    """The referenced session does not exist (anymore)."""

    def __init__(self, session_id: str) -> None:
        """Initialize the error for ``session_id``."""
        super().__init__("Session not found")
        self.session_id = session_id


class QueueFullError(SyncRoomError):
    """The queue already holds the maximum number of entries."""


class QueueIndexError(SyncRoomError):
    """A queue index is outside of the queue."""
