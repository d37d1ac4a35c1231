"""Bounded, ordered queue of entries waiting to be played in a session."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from aiosyncroom.models import QueueEntry

from .errors import QueueFullError, QueueIndexError

MAX_QUEUE_LENGTH = 50

logger = logging.getLogger(__name__)


class MediaQueue:
    """
    Ordered list of queue entries holding at most MAX_QUEUE_LENGTH items.

    Every mutating method returns the complete resulting queue, which is what gets broadcast
    to the session. Failed mutations raise before anything is changed.
    """

    _entries: list[QueueEntry]

    def __init__(self, entries: Iterable[QueueEntry] = ()) -> None:
        """Initialize the queue, optionally with restored ``entries``."""
        self._entries = list(entries)
        if len(self._entries) > MAX_QUEUE_LENGTH:
            logger.warning(
                "Dropping %d restored queue entries over the limit of %d",
                len(self._entries) - MAX_QUEUE_LENGTH,
                MAX_QUEUE_LENGTH,
            )
            del self._entries[MAX_QUEUE_LENGTH:]

    def __len__(self) -> int:
        """Return the number of queued entries."""
        return len(self._entries)

    @property
    def entries(self) -> list[QueueEntry]:
        """Copy of the queued entries in play order."""
        return list(self._entries)

    def enqueue(self, entry: QueueEntry) -> list[QueueEntry]:
        """Append ``entry`` to the end of the queue."""
        if len(self._entries) >= MAX_QUEUE_LENGTH:
            raise QueueFullError(f"Queue is full (max {MAX_QUEUE_LENGTH} items)")
        self._entries.append(entry)
        return self.entries

    def dequeue_front(self) -> QueueEntry | None:
        """Pop the first entry, or return None when the queue is empty."""
        if not self._entries:
            return None
        return self._entries.pop(0)

    def reorder(self, from_index: int, to_index: int) -> list[QueueEntry]:
        """Move a single entry, keeping the relative order of all others."""
        length = len(self._entries)
        if not (0 <= from_index < length and 0 <= to_index < length):
            raise QueueIndexError(f"Queue index out of range (queue has {length} items)")
        entry = self._entries.pop(from_index)
        self._entries.insert(to_index, entry)
        return self.entries

    def remove(self, entry_id: str) -> list[QueueEntry]:
        """Remove the entry with ``entry_id``, if present."""
        self.take(entry_id)
        return self.entries

    def take(self, entry_id: str) -> QueueEntry | None:
        """Remove and return the entry with ``entry_id``, or None if it is not queued."""
        for index, entry in enumerate(self._entries):
            if entry.entry_id == entry_id:
                return self._entries.pop(index)
        return None

    def contains(self, entry_id: str) -> bool:
        """Return whether an entry with ``entry_id`` is queued."""
        return any(entry.entry_id == entry_id for entry in self._entries)
