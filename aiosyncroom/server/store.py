"""
Durable storage of session snapshots.

A store only knows how to write and read the whole snapshot; there is no partial update.
The SnapshotWriter decouples the writes from the event path: the coordinator signals that a
snapshot is due and the writer task persists the current registry state whenever it gets to
it, coalescing bursts of signals into a single write.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Mapping
from contextlib import suppress
from pathlib import Path
from typing import Protocol

import orjson

from aiosyncroom.models.snapshot import SessionSnapshot

DEFAULT_IO_TIMEOUT = 10.0
MAX_RETRY_DELAY = 300.0

logger = logging.getLogger(__name__)


class SnapshotStore(Protocol):
    """Whole-snapshot key-value store for sessions."""

    async def load(self) -> dict[str, SessionSnapshot]:
        """Read the complete snapshot, keyed by session id."""
        ...

    async def save(self, snapshot: Mapping[str, SessionSnapshot]) -> None:
        """Replace the complete snapshot."""
        ...


class MemorySnapshotStore:
    """Snapshot store that lives only as long as the process."""

    def __init__(self, initial: Mapping[str, SessionSnapshot] | None = None) -> None:
        """Initialize the store, optionally with an ``initial`` snapshot."""
        self._data = dict(initial) if initial else {}
        self.save_count = 0

    async def load(self) -> dict[str, SessionSnapshot]:
        """Return a copy of the stored snapshot."""
        return dict(self._data)

    async def save(self, snapshot: Mapping[str, SessionSnapshot]) -> None:
        """Replace the stored snapshot."""
        self._data = dict(snapshot)
        self.save_count += 1


class JsonFileSnapshotStore:
    """
    Snapshot store backed by a single JSON file.

    The file holds a mapping of session id to snapshot. Writes go to a temporary file that
    replaces the previous one, so a crash never leaves a truncated snapshot behind.
    """

    def __init__(
        self, path: str | os.PathLike[str], *, timeout: float = DEFAULT_IO_TIMEOUT
    ) -> None:
        """Initialize the store for ``path``."""
        self._path = Path(path)
        self._timeout = timeout

    async def load(self) -> dict[str, SessionSnapshot]:
        """Read and decode the snapshot file; a missing file is an empty snapshot."""
        async with asyncio.timeout(self._timeout):
            raw = await asyncio.to_thread(self._read)
        if raw is None:
            return {}
        data = orjson.loads(raw)
        if not isinstance(data, dict):
            raise ValueError(f"Snapshot file {self._path} does not contain a mapping")
        snapshots: dict[str, SessionSnapshot] = {}
        for session_id, entry in data.items():
            try:
                snapshots[session_id] = SessionSnapshot.from_dict(entry)
            except Exception:  # noqa: BLE001
                logger.warning("Ignoring unreadable snapshot for session %r", session_id)
        return snapshots

    async def save(self, snapshot: Mapping[str, SessionSnapshot]) -> None:
        """Encode and write the snapshot file."""
        raw = orjson.dumps({session_id: entry.to_dict() for session_id, entry in snapshot.items()})
        async with asyncio.timeout(self._timeout):
            await asyncio.to_thread(self._write, raw)

    def _read(self) -> bytes | None:
        try:
            return self._path.read_bytes()
        except FileNotFoundError:
            return None

    def _write(self, raw: bytes) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_name(f"{self._path.name}.tmp")
        tmp_path.write_bytes(raw)
        os.replace(tmp_path, self._path)


class SnapshotWriter:
    """
    Background task writing the registry snapshot whenever one is due.

    schedule() never blocks and never fails; write errors are logged and the write is retried
    with exponential backoff until it succeeds or a newer snapshot supersedes it.
    """

    def __init__(
        self,
        store: SnapshotStore,
        collect: Callable[[], Mapping[str, SessionSnapshot]],
        *,
        retry_delay: float = 1.0,
    ) -> None:
        """
        Initialize the writer.

        Args:
            store: Where snapshots are written.
            collect: Returns the current snapshot; called on the event loop right before
                each write.
            retry_delay: Initial delay before retrying a failed write.
        """
        self._store = store
        self._collect = collect
        self._retry_delay = retry_delay
        self._due = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def pending(self) -> bool:
        """Whether a snapshot is due but not written yet."""
        return self._due.is_set()

    def start(self) -> None:
        """Start the writer task on the running loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        """Stop the writer task and write a final snapshot if one is due."""
        if self._task is not None and not self._task.done():
            _ = self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
        self._task = None
        if self._due.is_set():
            await self.flush()

    def schedule(self) -> None:
        """Signal that the registry changed and should be persisted."""
        self._due.set()

    async def flush(self) -> bool:
        """Write the current snapshot now. Returns whether the write succeeded."""
        self._due.clear()
        snapshot = self._collect()
        try:
            await self._store.save(snapshot)
        except Exception:  # noqa: BLE001
            logger.warning("Failed to persist %d session(s)", len(snapshot), exc_info=True)
            self._due.set()
            return False
        logger.debug("Persisted %d session(s)", len(snapshot))
        return True

    async def _run(self) -> None:
        delay = self._retry_delay
        while True:
            _ = await self._due.wait()
            if await self.flush():
                delay = self._retry_delay
                continue
            await asyncio.sleep(delay)
            delay = min(delay * 2, MAX_RETRY_DELAY)
