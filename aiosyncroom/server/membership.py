"""Tracks the participants of a session and who among them is host."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from aiosyncroom.models import ParticipantInfo

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Participant:
    """A connection attached to a session."""

    connection_id: str
    """Identifier of the live connection, unique per connection and not per person."""
    name: str
    """Escaped display name."""

    def info(self) -> ParticipantInfo:
        """Return the public representation of this participant."""
        return ParticipantInfo(id=self.connection_id, name=self.name)


@dataclass(frozen=True, slots=True)
class LeaveResult:
    """Outcome of Membership.leave()."""

    participant: Participant | None
    """The participant that left, None if the connection was not a member."""
    new_host: Participant | None = None
    """The participant promoted to host, if the host left and others remained."""


class Membership:
    """
    Ordered set of participants with a single host.

    The host is None exactly when there are no participants, otherwise it is one of them.
    """

    _participants: list[Participant]
    _host: Participant | None

    def __init__(self) -> None:
        """Initialize an empty membership."""
        self._participants = []
        self._host = None

    def __len__(self) -> int:
        """Return the number of participants."""
        return len(self._participants)

    def __contains__(self, connection_id: object) -> bool:
        """Return whether ``connection_id`` is a participant."""
        return self.get(connection_id) is not None

    @property
    def participants(self) -> tuple[Participant, ...]:
        """Participants in join order."""
        return tuple(self._participants)

    @property
    def host(self) -> Participant | None:
        """The current host."""
        return self._host

    def get(self, connection_id: object) -> Participant | None:
        """Return the participant with ``connection_id``."""
        for participant in self._participants:
            if participant.connection_id == connection_id:
                return participant
        return None

    def is_host(self, connection_id: str) -> bool:
        """Return whether ``connection_id`` is the host."""
        return self._host is not None and self._host.connection_id == connection_id

    def join(self, participant: Participant) -> bool:
        """
        Append ``participant``.

        Returns True if the participant became host because the session had none.
        """
        if participant.connection_id in self:
            raise ValueError(f"Connection {participant.connection_id} already joined")
        self._participants.append(participant)
        if self._host is None:
            self._host = participant
            return True
        return False

    def leave(self, connection_id: str) -> LeaveResult:
        """Remove the participant with ``connection_id`` and hand off the host role."""
        participant = self.get(connection_id)
        if participant is None:
            return LeaveResult(participant=None)
        self._participants.remove(participant)
        if self._host is not participant:
            return LeaveResult(participant=participant)
        if not self._participants:
            self._host = None
            return LeaveResult(participant=participant)
        self._host = self._participants[0]
        logger.debug("Host moved from %s to %s", connection_id, self._host.connection_id)
        return LeaveResult(participant=participant, new_host=self._host)
