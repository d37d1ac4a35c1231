"""
Queue messages for the sync room protocol.

The server always answers a queue mutation with the complete resulting queue, clients replace
their copy instead of applying deltas.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from mashumaro.mixins.orjson import DataClassORJSONMixin

from .types import ClientMessage, ClientPayload, MediaRef, QueueEntry, ServerMessage


# Client -> Server: enqueue
@dataclass
class EnqueueMessage(ClientMessage):
    """Message sent by the client to append an item to the queue."""

    payload: MediaRef
    type: Literal["enqueue"] = "enqueue"


# Client -> Server: reorder
@dataclass
class ReorderPayload(ClientPayload):
    """Move of a single queue entry."""

    from_index: int
    """Current index of the entry."""
    to_index: int
    """Index the entry should end up at."""


@dataclass
class ReorderMessage(ClientMessage):
    """Message sent by the client to move a queue entry."""

    payload: ReorderPayload
    type: Literal["reorder"] = "reorder"


# Client -> Server: remove-from-queue / play-from-queue
@dataclass
class QueueEntryPayload(ClientPayload):
    """Reference to a queue entry."""

    entry_id: str


@dataclass
class RemoveFromQueueMessage(ClientMessage):
    """Message sent by the client to drop a queue entry."""

    payload: QueueEntryPayload
    type: Literal["remove-from-queue"] = "remove-from-queue"


@dataclass
class PlayFromQueueMessage(ClientMessage):
    """Message sent by the client to take an entry out of the queue and play it now."""

    payload: QueueEntryPayload
    type: Literal["play-from-queue"] = "play-from-queue"


# Client -> Server: advance
@dataclass
class AdvanceMessage(ClientMessage):
    """Message sent by the client to play the first queued entry."""

    type: Literal["advance"] = "advance"


# Server -> Client: queue-changed
@dataclass
class QueueChangedPayload(DataClassORJSONMixin):
    """The complete queue after a mutation."""

    queue: list[QueueEntry]


@dataclass
class QueueChangedMessage(ServerMessage):
    """Message sent by the server whenever the queue changed."""

    payload: QueueChangedPayload
    type: Literal["queue-changed"] = "queue-changed"
