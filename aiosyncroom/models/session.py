"""
Session messages for the sync room protocol.

This module contains the messages that create sessions and attach connections to them:
joining, leaving, membership notifications, host handoff and the lifecycle notices sent by
the inactivity reaper.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from mashumaro.config import BaseConfig
from mashumaro.mixins.orjson import DataClassORJSONMixin

from .types import (
    ClientMessage,
    ClientPayload,
    MediaRef,
    ParticipantInfo,
    QueueEntry,
    ServerMessage,
)


# Client -> Server: create-session
@dataclass
class CreateSessionMessage(ClientMessage):
    """Message sent by the client to create a new session."""

    type: Literal["create-session"] = "create-session"


# Client -> Server: join-session
@dataclass
class JoinSessionPayload(ClientPayload):
    """Payload for joining a session."""

    session_id: str
    """Identifier of the session to join."""
    name: str
    """Display name to use inside the session."""


@dataclass
class JoinSessionMessage(ClientMessage):
    """Message sent by the client to join a session."""

    payload: JoinSessionPayload
    type: Literal["join-session"] = "join-session"


# Client -> Server: leave-session
@dataclass
class LeaveSessionMessage(ClientMessage):
    """Message sent by the client to leave its current session without disconnecting."""

    type: Literal["leave-session"] = "leave-session"


# Server -> Client: session-created
@dataclass
class SessionCreatedPayload(DataClassORJSONMixin):
    """Identifier of a freshly created session."""

    id: str
    """Session identifier."""


@dataclass
class SessionCreatedMessage(ServerMessage):
    """Message sent by the server after creating a session."""

    payload: SessionCreatedPayload
    type: Literal["session-created"] = "session-created"


# Server -> Client: session-state
@dataclass
class SessionStatePayload(DataClassORJSONMixin):
    """Full state of a session, sent to a participant when it joins."""

    id: str
    """Session identifier."""
    participants: list[ParticipantInfo]
    """Participants in join order."""
    is_playing: bool
    """Whether playback is running."""
    position: float
    """Playback position in seconds, projected to the time this message was built."""
    queue: list[QueueEntry]
    """Pending queue entries."""
    is_host: bool
    """Whether the receiving participant is the host."""
    current_item: MediaRef | None = None
    """Item currently loaded, if any."""


@dataclass
class SessionStateMessage(ServerMessage):
    """Message sent by the server in reply to join-session."""

    payload: SessionStatePayload
    type: Literal["session-state"] = "session-state"


# Server -> Client: participant-joined / participant-left
@dataclass
class ParticipantJoinedMessage(ServerMessage):
    """Message sent to the other participants when someone joins."""

    payload: ParticipantInfo
    type: Literal["participant-joined"] = "participant-joined"


@dataclass
class ParticipantLeftMessage(ServerMessage):
    """Message sent to the remaining participants when someone leaves."""

    payload: ParticipantInfo
    type: Literal["participant-left"] = "participant-left"


# Server -> Client: became-host
@dataclass
class BecameHostMessage(ServerMessage):
    """Message sent to a participant that was promoted to host."""

    type: Literal["became-host"] = "became-host"


# Server -> Client: inactivity-warning / session-closed / error
@dataclass
class NoticePayload(DataClassORJSONMixin):
    """Human readable notice."""

    message: str


@dataclass
class InactivityWarningMessage(ServerMessage):
    """Message sent when a session is about to be closed for inactivity."""

    payload: NoticePayload
    type: Literal["inactivity-warning"] = "inactivity-warning"


@dataclass
class SessionClosedMessage(ServerMessage):
    """Message sent when a session was closed for inactivity."""

    payload: NoticePayload
    type: Literal["session-closed"] = "session-closed"


@dataclass
class ErrorMessage(ServerMessage):
    """Message sent to a single connection when one of its requests was rejected."""

    payload: NoticePayload
    type: Literal["error"] = "error"


# HTTP: GET /api/sessions/{id}
@dataclass
class SessionSummary(DataClassORJSONMixin):
    """Public summary of a session returned by the HTTP API."""

    id: str
    participants: list[str]
    """Display names in join order."""
    is_playing: bool
    position: float
    """Projected playback position in seconds."""
    queue_length: int
    current_item: MediaRef | None = None

    class Config(BaseConfig):
        """Config for serializing json responses."""

        omit_none = True
