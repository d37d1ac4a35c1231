"""Sequences inbound session events into state changes, broadcasts and snapshots."""

from __future__ import annotations

import asyncio
import logging
import math
import time
import uuid
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass
from functools import partial
from typing import Any, Protocol, TypeVar

from aiosyncroom.models import ClientMessage, MediaRef, QueueEntry, ServerMessage
from aiosyncroom.models.chat import ChatBroadcastMessage, ChatBroadcastPayload, ChatMessage
from aiosyncroom.models.playback import (
    ItemChangedMessage,
    ItemChangedPayload,
    PlayStateChangedMessage,
    PlayStateChangedPayload,
    SeekedMessage,
    SeekedPayload,
    SeekMessage,
    SetItemMessage,
    SyncRequestMessage,
    SyncResponseMessage,
    SyncResponsePayload,
    TogglePlayMessage,
)
from aiosyncroom.models.queue import (
    AdvanceMessage,
    EnqueueMessage,
    PlayFromQueueMessage,
    QueueChangedMessage,
    QueueChangedPayload,
    RemoveFromQueueMessage,
    ReorderMessage,
)
from aiosyncroom.models.session import (
    BecameHostMessage,
    CreateSessionMessage,
    ErrorMessage,
    InactivityWarningMessage,
    JoinSessionMessage,
    LeaveSessionMessage,
    NoticePayload,
    ParticipantJoinedMessage,
    ParticipantLeftMessage,
    SessionClosedMessage,
    SessionCreatedMessage,
    SessionCreatedPayload,
    SessionStateMessage,
    SessionStatePayload,
    SessionSummary,
)
from aiosyncroom.models.snapshot import SessionSnapshot

from .errors import InvalidInputError, SessionNotFoundError, SyncRoomError
from .membership import Participant
from .reaper import InactivityVerdict, SessionReaper, inactivity_verdict
from .registry import SessionRegistry
from .session import Session
from .store import MemorySnapshotStore, SnapshotStore, SnapshotWriter
from .validation import (
    CHAT_MAX_LENGTH,
    CHAT_MIN_LENGTH,
    ENTRY_ID_MAX_LENGTH,
    NAME_MAX_LENGTH,
    NAME_MIN_LENGTH,
    is_valid_bool,
    is_valid_index,
    is_valid_media_ref,
    is_valid_number,
    is_valid_session_id,
    is_valid_string,
    sanitize_text,
)

ENTRY_ID_LENGTH = 8

_T = TypeVar("_T")

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Delivers server messages to connections."""

    def send(self, connection_id: str, message: ServerMessage) -> None:
        """
        Enqueue ``message`` for ``connection_id``.

        Must not block and must not raise; unknown connections are ignored.
        """
        ...


@dataclass(slots=True)
class CoordinatorConfig:
    """Tunables of the session lifecycle, all durations in seconds."""

    session_ttl: float = 2 * 3600.0
    """Inactivity after which a session is evicted."""
    warning_window: float = 10 * 60.0
    """How long before eviction the inactivity warning is sent."""
    reaper_interval: float = 10 * 60.0
    """Time between two inactivity sweeps."""
    snapshot_retry_delay: float = 1.0
    """Initial delay before retrying a failed snapshot write."""

    def __post_init__(self) -> None:
        """Validate the configured durations."""
        if self.session_ttl <= 0:
            raise ValueError("session_ttl must be positive")
        if not 0 <= self.warning_window < self.session_ttl:
            raise ValueError("warning_window must be in range [0, session_ttl)")
        if self.reaper_interval <= 0:
            raise ValueError("reaper_interval must be positive")


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise InvalidInputError(message)


class _SessionActor:
    """Runs the commands of one session strictly one after another."""

    session: Session
    _inbox: asyncio.Queue[tuple[Callable[[Session], Any], asyncio.Future[Any]]]
    _task: asyncio.Task[None]
    _closed: bool

    def __init__(self, session: Session) -> None:
        self.session = session
        self._inbox = asyncio.Queue()
        self._closed = False
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def submit(self, action: Callable[[Session], _T]) -> _T:
        """Queue ``action`` and wait for its result."""
        if self._closed:
            raise SessionNotFoundError(self.session.session_id)
        future: asyncio.Future[_T] = asyncio.get_running_loop().create_future()
        self._inbox.put_nowait((action, future))
        return await future

    def close(self) -> None:
        """Reject every command that did not start yet."""
        self._closed = True

    async def stop(self) -> None:
        """Close the actor and end its task."""
        self._closed = True
        if not self._task.done():
            _ = self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
        while not self._inbox.empty():
            _, future = self._inbox.get_nowait()
            if not future.done():
                future.set_exception(SessionNotFoundError(self.session.session_id))

    async def _run(self) -> None:
        while True:
            action, future = await self._inbox.get()
            if future.done():
                # The submitter gave up waiting
                continue
            if self._closed:
                future.set_exception(SessionNotFoundError(self.session.session_id))
                continue
            # Commands are plain functions: they cannot suspend, so no other command of this
            # session can observe a half-applied change.
            try:
                result = action(self.session)
            except Exception as err:  # noqa: BLE001
                future.set_exception(err)
            else:
                future.set_result(result)


class SessionCoordinator:
    """
    Owns the live sessions and applies every event to them.

    Each session gets an actor that processes one command at a time, in arrival order. Client
    events and inactivity sweeps are both submitted as commands, so a sweep can never
    interleave with a client mutation of the same session. A command applies the change,
    broadcasts it and signals the SnapshotWriter before the next command starts.

    Lifecycle: construct, await start() (restores persisted sessions and starts background
    tasks), route events through handle_message() and disconnect(), await stop() on shutdown
    (writes the final snapshot).
    """

    _transport: Transport
    _store: SnapshotStore
    _config: CoordinatorConfig
    _time: Callable[[], float]
    _registry: SessionRegistry
    _actors: dict[str, _SessionActor]
    """Actors keyed by session id, one for every session in the registry."""
    _bindings: dict[str, str]
    """Session id each attached connection is a participant of."""
    _writer: SnapshotWriter
    _reaper: SessionReaper
    _started: bool

    def __init__(
        self,
        transport: Transport,
        *,
        store: SnapshotStore | None = None,
        config: CoordinatorConfig | None = None,
        time_func: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize the coordinator.

        Args:
            transport: Delivers outbound messages to connections.
            store: Durable snapshot store; defaults to an in-memory store.
            config: Lifecycle tunables.
            time_func: Wall-clock source in seconds since the epoch.
        """
        self._transport = transport
        self._store = store if store is not None else MemorySnapshotStore()
        self._config = config if config is not None else CoordinatorConfig()
        self._time = time_func
        self._registry = SessionRegistry()
        self._actors = {}
        self._bindings = {}
        self._writer = SnapshotWriter(
            self._store,
            self._registry.snapshot,
            retry_delay=self._config.snapshot_retry_delay,
        )
        self._reaper = SessionReaper(self.sweep, self._config.reaper_interval)
        self._started = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def start(self) -> None:
        """Restore persisted sessions and start the writer and reaper tasks."""
        if self._started:
            return
        try:
            snapshots = await self._store.load()
        except Exception:  # noqa: BLE001
            logger.warning("Could not load persisted sessions, starting empty", exc_info=True)
            snapshots = {}
        for session in self._registry.restore(snapshots, self._time(), self._config.session_ttl):
            self._actors[session.session_id] = _SessionActor(session)
        self._writer.start()
        self._reaper.start()
        self._started = True
        logger.debug("SessionCoordinator started with %d session(s)", len(self._registry))

    async def stop(self) -> None:
        """Stop background tasks and write the final snapshot."""
        if not self._started:
            return
        self._started = False
        await self._reaper.stop()
        actors = list(self._actors.values())
        self._actors.clear()
        for actor in actors:
            await actor.stop()
        self._bindings.clear()
        await self._writer.stop()
        logger.debug("SessionCoordinator stopped")

    @property
    def config(self) -> CoordinatorConfig:
        """Lifecycle tunables of this coordinator."""
        return self._config

    @property
    def session_ids(self) -> set[str]:
        """Identifiers of all live sessions."""
        return set(self._actors)

    def connection_session(self, connection_id: str) -> str | None:
        """Return the id of the session ``connection_id`` is attached to."""
        return self._bindings.get(connection_id)

    def snapshot(self) -> dict[str, SessionSnapshot]:
        """Return the durable state of all live sessions."""
        return self._registry.snapshot()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------
    async def create_session(self) -> str:
        """Create an empty session and return its id."""
        if not self._started:
            raise RuntimeError("SessionCoordinator is not started")
        session = self._registry.create(self._time())
        self._actors[session.session_id] = _SessionActor(session)
        self._writer.schedule()
        return session.session_id

    async def describe_session(self, session_id: str) -> SessionSummary | None:
        """Return a summary of the session, or None if it does not exist."""
        actor = self._actors.get(session_id)
        if actor is None:
            return None
        try:
            return await actor.submit(self._summarize)
        except SessionNotFoundError:
            return None

    async def handle_message(self, connection_id: str, message: ClientMessage) -> None:
        """
        Apply an inbound message from ``connection_id``.

        Rejected events are answered with a single error message to the sender only.
        """
        try:
            await self._dispatch(connection_id, message)
        except SyncRoomError as err:
            logger.debug(
                "Rejected %s from %s: %s", type(message).__name__, connection_id, err
            )
            self.send_error(connection_id, str(err))

    async def join(self, connection_id: str, session_id: str, name: str) -> None:
        """Attach ``connection_id`` to a session, leaving its previous one first."""
        _require(is_valid_session_id(session_id), "Invalid session id")
        _require(is_valid_string(name, NAME_MIN_LENGTH, NAME_MAX_LENGTH), "Invalid display name")
        actor = self._actors.get(session_id)
        if actor is None:
            raise SessionNotFoundError(session_id)
        if connection_id in self._bindings:
            await self.leave(connection_id)
        await actor.submit(
            partial(self._apply_join, connection_id=connection_id, name=sanitize_text(name))
        )

    async def leave(self, connection_id: str) -> None:
        """Detach ``connection_id`` from its session, if any."""
        session_id = self._bindings.get(connection_id)
        if session_id is None:
            return
        actor = self._actors.get(session_id)
        if actor is None:
            self._bindings.pop(connection_id, None)
            return
        try:
            await actor.submit(partial(self._apply_leave, connection_id=connection_id))
        except SessionNotFoundError:
            self._bindings.pop(connection_id, None)

    async def disconnect(self, connection_id: str) -> None:
        """Handle the connection going away."""
        await self.leave(connection_id)

    async def sweep(self) -> None:
        """Warn or evict inactive sessions; one pass over every session."""
        for actor in list(self._actors.values()):
            try:
                evicted = await actor.submit(self._apply_inactivity_check)
            except SessionNotFoundError:
                continue
            if evicted:
                await actor.stop()

    def send_error(self, connection_id: str, message: str) -> None:
        """Send an error notice to a single connection."""
        self._transport.send(connection_id, ErrorMessage(NoticePayload(message=message)))

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------
    async def _dispatch(self, connection_id: str, message: ClientMessage) -> None:  # noqa: PLR0912
        match message:
            case CreateSessionMessage():
                session_id = await self.create_session()
                self._transport.send(
                    connection_id, SessionCreatedMessage(SessionCreatedPayload(id=session_id))
                )
            case JoinSessionMessage(payload):
                await self.join(connection_id, payload.session_id, payload.name)
            case LeaveSessionMessage():
                await self.leave(connection_id)
            case SetItemMessage(item):
                _require(is_valid_media_ref(item), "Invalid media item")
                await self._submit(connection_id, partial(self._apply_set_item, item=item))
            case TogglePlayMessage(payload):
                _require(is_valid_bool(payload.is_playing), "Invalid play state")
                _require(is_valid_number(payload.position), "Invalid position")
                await self._submit(
                    connection_id,
                    partial(
                        self._apply_toggle,
                        connection_id=connection_id,
                        is_playing=payload.is_playing,
                        position=float(payload.position),
                    ),
                )
            case SeekMessage(payload):
                _require(is_valid_number(payload.position), "Invalid position")
                await self._submit(
                    connection_id,
                    partial(
                        self._apply_seek,
                        connection_id=connection_id,
                        position=float(payload.position),
                    ),
                )
            case EnqueueMessage(item):
                _require(is_valid_media_ref(item), "Invalid media item")
                await self._submit(
                    connection_id,
                    partial(self._apply_enqueue, connection_id=connection_id, item=item),
                )
            case ReorderMessage(payload):
                _require(
                    is_valid_index(payload.from_index) and is_valid_index(payload.to_index),
                    "Invalid queue index",
                )
                await self._submit(
                    connection_id,
                    partial(
                        self._apply_reorder,
                        from_index=payload.from_index,
                        to_index=payload.to_index,
                    ),
                )
            case RemoveFromQueueMessage(payload):
                _require(
                    is_valid_string(payload.entry_id, 1, ENTRY_ID_MAX_LENGTH),
                    "Invalid queue entry",
                )
                await self._submit(
                    connection_id, partial(self._apply_remove, entry_id=payload.entry_id)
                )
            case PlayFromQueueMessage(payload):
                _require(
                    is_valid_string(payload.entry_id, 1, ENTRY_ID_MAX_LENGTH),
                    "Invalid queue entry",
                )
                await self._submit(
                    connection_id, partial(self._apply_play_from_queue, entry_id=payload.entry_id)
                )
            case AdvanceMessage():
                await self._submit(connection_id, self._apply_advance)
            case ChatMessage(payload):
                _require(
                    is_valid_string(payload.message, CHAT_MIN_LENGTH, CHAT_MAX_LENGTH),
                    "Invalid chat message",
                )
                await self._submit(
                    connection_id,
                    partial(
                        self._apply_chat,
                        connection_id=connection_id,
                        message=sanitize_text(payload.message),
                    ),
                )
            case SyncRequestMessage():
                await self._submit(
                    connection_id, partial(self._apply_sync, connection_id=connection_id)
                )
            case _:
                raise InvalidInputError(f"Unsupported message type: {type(message).__name__}")

    async def _submit(self, connection_id: str, action: Callable[[Session], None]) -> None:
        """Run ``action`` in the session of ``connection_id``; detached connections are ignored."""
        session_id = self._bindings.get(connection_id)
        actor = self._actors.get(session_id) if session_id is not None else None
        if actor is None:
            logger.debug("Ignoring event from detached connection %s", connection_id)
            return

        def guarded(session: Session) -> None:
            # The connection may have left while the command was waiting in the inbox
            if connection_id not in session.members:
                return
            action(session)

        try:
            await actor.submit(guarded)
        except SessionNotFoundError:
            logger.debug("Session of connection %s is gone, ignoring event", connection_id)

    # ------------------------------------------------------------------
    # Commands, executed by the session actor
    # ------------------------------------------------------------------
    def _broadcast(
        self, session: Session, message: ServerMessage, *, exclude: str | None = None
    ) -> None:
        for participant in session.members.participants:
            if participant.connection_id != exclude:
                self._transport.send(participant.connection_id, message)

    def _mutated(self, session: Session, now: float) -> None:
        session.touch(now)
        self._writer.schedule()

    def _queue_changed(self, session: Session, queue: list[QueueEntry]) -> None:
        self._broadcast(session, QueueChangedMessage(QueueChangedPayload(queue=queue)))

    def _start_item(self, session: Session, item: MediaRef, now: float) -> None:
        session.play_item(item, now)
        self._broadcast(
            session,
            ItemChangedMessage(ItemChangedPayload.for_item(item, is_playing=True, position=0.0)),
        )
        logger.info("Session %s now playing %r", session.session_id, item.title)

    def _apply_join(self, session: Session, *, connection_id: str, name: str) -> None:
        now = self._time()
        participant = Participant(connection_id=connection_id, name=name)
        session.members.join(participant)
        self._bindings[connection_id] = session.session_id
        self._transport.send(
            connection_id,
            SessionStateMessage(
                SessionStatePayload(
                    id=session.session_id,
                    participants=[p.info() for p in session.members.participants],
                    is_playing=session.clock.is_playing,
                    position=session.clock.project(now),
                    queue=session.queue.entries,
                    is_host=session.members.is_host(connection_id),
                    current_item=session.current_item,
                )
            ),
        )
        self._broadcast(
            session, ParticipantJoinedMessage(participant.info()), exclude=connection_id
        )
        self._mutated(session, now)
        logger.info("%s (%s) joined session %s", name, connection_id, session.session_id)

    def _apply_leave(self, session: Session, *, connection_id: str) -> None:
        if self._bindings.get(connection_id) == session.session_id:
            del self._bindings[connection_id]
        result = session.members.leave(connection_id)
        if result.participant is None:
            return
        self._broadcast(session, ParticipantLeftMessage(result.participant.info()))
        if result.new_host is not None:
            self._transport.send(result.new_host.connection_id, BecameHostMessage())
        self._mutated(session, self._time())
        logger.info(
            "%s (%s) left session %s", result.participant.name, connection_id, session.session_id
        )

    def _apply_set_item(self, session: Session, *, item: MediaRef) -> None:
        now = self._time()
        self._start_item(session, item, now)
        self._mutated(session, now)

    def _apply_toggle(
        self, session: Session, *, connection_id: str, is_playing: bool, position: float
    ) -> None:
        now = self._time()
        session.clock.set_play_state(is_playing, position, now)
        self._broadcast(
            session,
            PlayStateChangedMessage(
                PlayStateChangedPayload(is_playing=is_playing, position=position)
            ),
            exclude=connection_id,
        )
        self._mutated(session, now)

    def _apply_seek(self, session: Session, *, connection_id: str, position: float) -> None:
        now = self._time()
        session.clock.seek(position, now)
        self._broadcast(
            session, SeekedMessage(SeekedPayload(position=position)), exclude=connection_id
        )
        self._mutated(session, now)

    def _new_entry_id(self, session: Session) -> str:
        while True:
            entry_id = uuid.uuid4().hex[:ENTRY_ID_LENGTH]
            if not session.queue.contains(entry_id):
                return entry_id

    def _apply_enqueue(self, session: Session, *, connection_id: str, item: MediaRef) -> None:
        participant = session.members.get(connection_id)
        assert participant is not None  # guarded by _submit
        entry = QueueEntry(
            entry_id=self._new_entry_id(session), item=item, added_by=participant.name
        )
        queue = session.queue.enqueue(entry)
        self._queue_changed(session, queue)
        self._mutated(session, self._time())

    def _apply_reorder(self, session: Session, *, from_index: int, to_index: int) -> None:
        queue = session.queue.reorder(from_index, to_index)
        self._queue_changed(session, queue)
        self._mutated(session, self._time())

    def _apply_remove(self, session: Session, *, entry_id: str) -> None:
        queue = session.queue.remove(entry_id)
        self._queue_changed(session, queue)
        self._mutated(session, self._time())

    def _apply_advance(self, session: Session) -> None:
        entry = session.queue.dequeue_front()
        if entry is None:
            logger.debug("Advance on empty queue in session %s", session.session_id)
            return
        now = self._time()
        self._start_item(session, entry.item, now)
        self._queue_changed(session, session.queue.entries)
        self._mutated(session, now)

    def _apply_play_from_queue(self, session: Session, *, entry_id: str) -> None:
        entry = session.queue.take(entry_id)
        if entry is None:
            logger.debug("Entry %s is not queued in session %s", entry_id, session.session_id)
            return
        now = self._time()
        self._start_item(session, entry.item, now)
        self._queue_changed(session, session.queue.entries)
        self._mutated(session, now)

    def _apply_chat(self, session: Session, *, connection_id: str, message: str) -> None:
        participant = session.members.get(connection_id)
        assert participant is not None  # guarded by _submit
        now = self._time()
        self._broadcast(
            session,
            ChatBroadcastMessage(
                ChatBroadcastPayload(
                    user=participant.name, message=message, timestamp=int(now * 1000)
                )
            ),
        )
        self._mutated(session, now)

    def _apply_sync(self, session: Session, *, connection_id: str) -> None:
        if session.current_item is None:
            return
        self._transport.send(
            connection_id,
            SyncResponseMessage(
                SyncResponsePayload(
                    position=session.clock.project(self._time()),
                    is_playing=session.clock.is_playing,
                )
            ),
        )

    def _apply_inactivity_check(self, session: Session) -> bool:
        """Warn or evict ``session``; returns True if it was evicted."""
        now = self._time()
        ttl = self._config.session_ttl
        verdict = inactivity_verdict(
            session, now, timeout=ttl, warning_window=self._config.warning_window
        )
        if verdict is InactivityVerdict.KEEP:
            return False
        if verdict is InactivityVerdict.WARN:
            minutes = max(1, math.ceil((ttl - session.inactive_for(now)) / 60))
            self._broadcast(
                session,
                InactivityWarningMessage(
                    NoticePayload(
                        message=(
                            f"This session will close in {minutes} minute(s) "
                            "unless there is some activity."
                        )
                    )
                ),
            )
            session.warning_issued = True
            logger.info("Warned session %s about inactivity", session.session_id)
            return False

        self._broadcast(
            session,
            SessionClosedMessage(
                NoticePayload(message="This session was closed due to inactivity.")
            ),
        )
        for participant in session.members.participants:
            if self._bindings.get(participant.connection_id) == session.session_id:
                del self._bindings[participant.connection_id]
        self._registry.remove(session.session_id)
        actor = self._actors.pop(session.session_id, None)
        if actor is not None:
            actor.close()
        self._writer.schedule()
        logger.info(
            "Evicted session %s after %.0f minutes of inactivity",
            session.session_id,
            session.inactive_for(now) / 60,
        )
        return True

    def _summarize(self, session: Session) -> SessionSummary:
        return SessionSummary(
            id=session.session_id,
            participants=[p.name for p in session.members.participants],
            is_playing=session.clock.is_playing,
            position=session.clock.project(self._time()),
            queue_length=len(session.queue),
            current_item=session.current_item,
        )
