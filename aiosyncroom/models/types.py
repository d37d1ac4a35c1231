"""Shared types used by the sync room protocol."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from mashumaro.config import BaseConfig
from mashumaro.helper import pass_through
from mashumaro.mixins.orjson import DataClassORJSONMixin
from mashumaro.types import Discriminator


# Scalars of client input are decoded exactly as sent so that validation sees wrong JSON
# types instead of coerced values.
RAW_SCALARS = {bool: pass_through, int: pass_through, float: pass_through, str: pass_through}


# Base message classes
@dataclass
class ClientMessage(DataClassORJSONMixin):
    """Base class for client messages."""

    class Config(BaseConfig):
        """Config for parsing json messages."""

        discriminator = Discriminator(field="type", include_subtypes=True)


@dataclass
class ServerMessage(DataClassORJSONMixin):
    """Base class for server messages."""

    class Config(BaseConfig):
        """Config for parsing json messages."""

        discriminator = Discriminator(field="type", include_subtypes=True)


@dataclass
class ClientPayload(DataClassORJSONMixin):
    """Base class for payloads of client messages."""

    class Config(BaseConfig):
        """Config for parsing json messages."""

        serialization_strategy = RAW_SCALARS


# Enums


class Provider(Enum):
    """Media providers a session can play from."""

    YOUTUBE = "youtube"
    """Videos played through the YouTube embedded player."""


# Shared payload objects
@dataclass
class MediaRef(DataClassORJSONMixin):
    """Reference to a playable item of an external provider."""

    provider: str
    """Provider tag, one of the values of Provider."""
    id: str
    """Identifier of the item at the provider."""
    title: str
    """Title of the item."""
    thumbnail: str | None = None
    """Thumbnail image URL."""
    artist: str | None = None
    """Artist or channel name."""

    class Config(BaseConfig):
        """Config for parsing json messages."""

        omit_none = True
        serialization_strategy = RAW_SCALARS


@dataclass
class QueueEntry(DataClassORJSONMixin):
    """An item waiting in the session queue."""

    entry_id: str
    """Identifier of this entry, unique within the queue."""
    item: MediaRef
    """The queued item."""
    added_by: str
    """Display name of the participant who queued the item, at insertion time."""


@dataclass
class ParticipantInfo(DataClassORJSONMixin):
    """Public information about a participant."""

    id: str
    """Connection identifier of the participant."""
    name: str
    """Display name of the participant."""
