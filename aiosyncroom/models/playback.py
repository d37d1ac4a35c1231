"""
Playback messages for the sync room protocol.

These messages drive the shared playback clock of a session. The server never streams media,
it only distributes the authoritative (position, is_playing) pair; clients apply it to their
local player.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from mashumaro.config import BaseConfig
from mashumaro.mixins.orjson import DataClassORJSONMixin

from .types import ClientMessage, ClientPayload, MediaRef, ServerMessage


# Client -> Server: set-item
@dataclass
class SetItemMessage(ClientMessage):
    """Message sent by the client to load a new item and start playing it."""

    payload: MediaRef
    type: Literal["set-item"] = "set-item"


# Client -> Server: toggle-play
@dataclass
class TogglePlayPayload(ClientPayload):
    """Play or pause request."""

    is_playing: bool
    """Requested play state."""
    position: float
    """Position in seconds reported by the client's player."""


@dataclass
class TogglePlayMessage(ClientMessage):
    """Message sent by the client to play or pause."""

    payload: TogglePlayPayload
    type: Literal["toggle-play"] = "toggle-play"


# Client -> Server: seek
@dataclass
class SeekPayload(ClientPayload):
    """Seek request."""

    position: float
    """Target position in seconds."""


@dataclass
class SeekMessage(ClientMessage):
    """Message sent by the client to seek."""

    payload: SeekPayload
    type: Literal["seek"] = "seek"


# Client -> Server: sync-request
@dataclass
class SyncRequestMessage(ClientMessage):
    """Message sent by the client to ask for the current playback position."""

    type: Literal["sync-request"] = "sync-request"


# Server -> Client: item-changed
@dataclass
class ItemChangedPayload(DataClassORJSONMixin):
    """New item with the playback state it starts with."""

    provider: str
    id: str
    title: str
    is_playing: bool
    position: float
    thumbnail: str | None = None
    artist: str | None = None

    class Config(BaseConfig):
        """Config for parsing json messages."""

        omit_none = True

    @classmethod
    def for_item(cls, item: MediaRef, *, is_playing: bool, position: float) -> ItemChangedPayload:
        """Build the payload announcing ``item``."""
        return cls(
            provider=item.provider,
            id=item.id,
            title=item.title,
            is_playing=is_playing,
            position=position,
            thumbnail=item.thumbnail,
            artist=item.artist,
        )

    def to_media_ref(self) -> MediaRef:
        """Return the announced item without its playback state."""
        return MediaRef(
            provider=self.provider,
            id=self.id,
            title=self.title,
            thumbnail=self.thumbnail,
            artist=self.artist,
        )


@dataclass
class ItemChangedMessage(ServerMessage):
    """Message sent by the server when a new item was loaded."""

    payload: ItemChangedPayload
    type: Literal["item-changed"] = "item-changed"


# Server -> Client: play-state-changed
@dataclass
class PlayStateChangedPayload(DataClassORJSONMixin):
    """Play state written by another participant."""

    is_playing: bool
    position: float


@dataclass
class PlayStateChangedMessage(ServerMessage):
    """Message sent by the server when playback was played or paused."""

    payload: PlayStateChangedPayload
    type: Literal["play-state-changed"] = "play-state-changed"


# Server -> Client: seeked
@dataclass
class SeekedPayload(DataClassORJSONMixin):
    """Position written by another participant."""

    position: float


@dataclass
class SeekedMessage(ServerMessage):
    """Message sent by the server when playback was moved."""

    payload: SeekedPayload
    type: Literal["seeked"] = "seeked"


# Server -> Client: sync-response
@dataclass
class SyncResponsePayload(DataClassORJSONMixin):
    """Projected playback position."""

    position: float
    is_playing: bool


@dataclass
class SyncResponseMessage(ServerMessage):
    """Message sent by the server in reply to sync-request."""

    payload: SyncResponsePayload
    type: Literal["sync-response"] = "sync-response"
