"""Chat messages for the sync room protocol."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from mashumaro.mixins.orjson import DataClassORJSONMixin

from .types import ClientMessage, ClientPayload, ServerMessage


# Client -> Server: chat
@dataclass
class ChatPayload(ClientPayload):
    """Chat line typed by a participant."""

    message: str


@dataclass
class ChatMessage(ClientMessage):
    """Message sent by the client to post in the session chat."""

    payload: ChatPayload
    type: Literal["chat"] = "chat"


# Server -> Client: chat-message
@dataclass
class ChatBroadcastPayload(DataClassORJSONMixin):
    """Chat line as distributed to the session."""

    user: str
    """Escaped display name of the author."""
    message: str
    """Escaped message text."""
    timestamp: int
    """Server time the message was received, in milliseconds since the epoch."""


@dataclass
class ChatBroadcastMessage(ServerMessage):
    """Message sent by the server to every participant for each chat line."""

    payload: ChatBroadcastPayload
    type: Literal["chat-message"] = "chat-message"
