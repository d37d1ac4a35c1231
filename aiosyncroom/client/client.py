"""SyncRoom client implementation to connect to a SyncRoom server."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from contextlib import suppress
from dataclasses import dataclass, field
from types import TracebackType
from typing import Self

from aiohttp import ClientSession, ClientWebSocketResponse, WSMessage, WSMsgType

from aiosyncroom.clock import PlaybackClock
from aiosyncroom.models import ClientMessage, MediaRef, ParticipantInfo, QueueEntry, ServerMessage
from aiosyncroom.models.chat import ChatMessage, ChatPayload
from aiosyncroom.models.playback import (
    ItemChangedMessage,
    PlayStateChangedMessage,
    SeekedMessage,
    SeekMessage,
    SeekPayload,
    SetItemMessage,
    SyncRequestMessage,
    SyncResponseMessage,
    TogglePlayMessage,
    TogglePlayPayload,
)
from aiosyncroom.models.queue import (
    AdvanceMessage,
    EnqueueMessage,
    PlayFromQueueMessage,
    QueueChangedMessage,
    QueueEntryPayload,
    RemoveFromQueueMessage,
    ReorderMessage,
    ReorderPayload,
)
from aiosyncroom.models.session import (
    BecameHostMessage,
    CreateSessionMessage,
    ErrorMessage,
    JoinSessionMessage,
    JoinSessionPayload,
    LeaveSessionMessage,
    ParticipantJoinedMessage,
    ParticipantLeftMessage,
    SessionClosedMessage,
    SessionCreatedMessage,
    SessionStateMessage,
)

REQUEST_TIMEOUT = 10.0

# Errors the server answers a join-session with; any other error belongs to another event
JOIN_ERRORS = frozenset({"Invalid session id", "Invalid display name", "Session not found"})

logger = logging.getLogger(__name__)

MessageCallback = Callable[[ServerMessage], Awaitable[None] | None]


class SessionRequestError(Exception):
    """The server rejected a join request."""


@dataclass(slots=True)
class RoomState:
    """Local mirror of the session the client is attached to."""

    session_id: str
    participants: list[ParticipantInfo] = field(default_factory=list)
    current_item: MediaRef | None = None
    clock: PlaybackClock = field(default_factory=PlaybackClock)
    queue: list[QueueEntry] = field(default_factory=list)
    is_host: bool = False


class SyncRoomClient:
    """Async SyncRoom client mirroring the state of one session."""

    def __init__(
        self,
        *,
        session: ClientSession | None = None,
        time_func: Callable[[], float] = time.time,
    ) -> None:
        """
        Create a new SyncRoom client instance.

        Args:
            session: Optional aiohttp session to reuse; one is created on connect otherwise.
            time_func: Wall-clock source used to project the playback position.
        """
        self._session = session
        self._owns_session = session is None
        self._time = time_func
        self._ws: ClientWebSocketResponse | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._send_lock = asyncio.Lock()
        self._connected = False
        self._state: RoomState | None = None
        self._callbacks: list[MessageCallback] = []
        self._pending_create: asyncio.Future[str] | None = None
        self._pending_join: asyncio.Future[RoomState] | None = None

    # ---------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------
    @property
    def connected(self) -> bool:
        """Return True if the client currently has an active connection."""
        return self._connected and self._ws is not None and not self._ws.closed

    @property
    def state(self) -> RoomState | None:
        """Mirror of the joined session, None while not attached."""
        return self._state

    @property
    def position(self) -> float:
        """Projected playback position of the joined session."""
        if self._state is None:
            return 0.0
        return self._state.clock.project(self._time())

    async def connect(self, url: str) -> None:
        """Connect to a SyncRoom server via WebSocket."""
        if self.connected:
            logger.debug("Already connected")
            return
        if self._session is None:
            self._session = ClientSession()
        logger.info("Connecting to SyncRoom server at %s", url)
        self._ws = await self._session.ws_connect(url, heartbeat=30)
        self._connected = True
        self._reader_task = asyncio.get_running_loop().create_task(self._reader_loop())

    async def disconnect(self) -> None:
        """Disconnect from the server and release resources."""
        self._connected = False
        current_task = asyncio.current_task()
        if self._reader_task is not None:
            if self._reader_task is not current_task:
                _ = self._reader_task.cancel()
                with suppress(asyncio.CancelledError):
                    await self._reader_task
            self._reader_task = None
        if self._ws is not None:
            _ = await self._ws.close()
            self._ws = None
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
        self._fail_pending(ConnectionError("Disconnected from server"))
        self._state = None

    def add_message_listener(self, callback: MessageCallback) -> Callable[[], None]:
        """
        Register a callback invoked for every message received from the server.

        Callbacks run after the local state was updated. Returns a function to remove the
        listener.
        """
        self._callbacks.append(callback)
        return lambda: self._callbacks.remove(callback)

    async def create_session(self) -> str:
        """Ask the server for a new session and return its id."""
        self._pending_create = asyncio.get_running_loop().create_future()
        try:
            await self._send_json(CreateSessionMessage())
            async with asyncio.timeout(REQUEST_TIMEOUT):
                return await self._pending_create
        finally:
            self._pending_create = None

    async def join(self, session_id: str, name: str) -> RoomState:
        """Join ``session_id`` as ``name`` and return the mirrored session state."""
        self._pending_join = asyncio.get_running_loop().create_future()
        try:
            await self._send_json(
                JoinSessionMessage(JoinSessionPayload(session_id=session_id, name=name))
            )
            async with asyncio.timeout(REQUEST_TIMEOUT):
                return await self._pending_join
        finally:
            self._pending_join = None

    async def leave(self) -> None:
        """Leave the joined session while staying connected."""
        await self._send_json(LeaveSessionMessage())
        self._state = None

    async def set_item(self, item: MediaRef) -> None:
        """Replace the current item; the server starts it for everyone."""
        await self._send_json(SetItemMessage(item))

    async def play(self) -> None:
        """Resume playback at the projected position."""
        await self.toggle_play(is_playing=True)

    async def pause(self) -> None:
        """Pause playback at the projected position."""
        await self.toggle_play(is_playing=False)

    async def toggle_play(self, *, is_playing: bool, position: float | None = None) -> None:
        """Report a play or pause at ``position``, the projected position by default."""
        if position is None:
            position = self.position
        await self._send_json(
            TogglePlayMessage(TogglePlayPayload(is_playing=is_playing, position=position))
        )
        # The server does not echo play state changes back to their sender
        if self._state is not None:
            self._state.clock.set_play_state(is_playing, position, self._time())

    async def seek(self, position: float) -> None:
        """Move playback to ``position`` seconds."""
        await self._send_json(SeekMessage(SeekPayload(position=position)))
        if self._state is not None:
            self._state.clock.seek(position, self._time())

    async def enqueue(self, item: MediaRef) -> None:
        """Append ``item`` to the session queue."""
        await self._send_json(EnqueueMessage(item))

    async def reorder(self, from_index: int, to_index: int) -> None:
        """Move the queue entry at ``from_index`` to ``to_index``."""
        await self._send_json(
            ReorderMessage(ReorderPayload(from_index=from_index, to_index=to_index))
        )

    async def remove_from_queue(self, entry_id: str) -> None:
        """Remove the queue entry with ``entry_id``."""
        await self._send_json(RemoveFromQueueMessage(QueueEntryPayload(entry_id=entry_id)))

    async def play_from_queue(self, entry_id: str) -> None:
        """Play the queue entry with ``entry_id`` right away."""
        await self._send_json(PlayFromQueueMessage(QueueEntryPayload(entry_id=entry_id)))

    async def advance(self) -> None:
        """Skip to the next queued item."""
        await self._send_json(AdvanceMessage())

    async def chat(self, message: str) -> None:
        """Send a chat message to the session."""
        await self._send_json(ChatMessage(ChatPayload(message=message)))

    async def request_sync(self) -> None:
        """Ask the server for the authoritative playback position."""
        await self._send_json(SyncRequestMessage())

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    async def _send_json(self, message: ClientMessage) -> None:
        if not self.connected or self._ws is None:
            raise RuntimeError("Client is not connected")
        async with self._send_lock:
            await self._ws.send_str(message.to_json())

    async def _reader_loop(self) -> None:
        assert self._ws is not None
        try:
            async for msg in self._ws:
                await self._handle_ws_message(msg)
        except asyncio.CancelledError:  # pragma: no cover - cancellation path
            pass
        except Exception:
            logger.exception("WebSocket reader encountered an error")
        finally:
            if self._connected:
                await self.disconnect()

    async def _handle_ws_message(self, msg: WSMessage) -> None:
        if msg.type is WSMsgType.TEXT:
            await self._handle_json_message(msg.data)
        elif msg.type in (WSMsgType.CLOSE, WSMsgType.CLOSING, WSMsgType.CLOSED):
            logger.info("WebSocket closed by server")
            await self.disconnect()
        elif msg.type is WSMsgType.ERROR:
            logger.error("WebSocket error: %s", self._ws.exception() if self._ws else "unknown")
            await self.disconnect()

    async def _handle_json_message(self, data: str) -> None:
        try:
            message = ServerMessage.from_json(data)
        except Exception:
            logger.exception("Failed to parse server message: %s", data)
            return
        self._apply(message)
        await self._notify_callbacks(message)

    def _apply(self, message: ServerMessage) -> None:  # noqa: PLR0912
        """Update the local mirror from a server message."""
        now = self._time()
        state = self._state
        match message:
            case SessionCreatedMessage(payload):
                if self._pending_create is not None and not self._pending_create.done():
                    self._pending_create.set_result(payload.id)
            case SessionStateMessage(payload):
                self._state = RoomState(
                    session_id=payload.id,
                    participants=list(payload.participants),
                    current_item=payload.current_item,
                    clock=PlaybackClock(
                        position=payload.position,
                        is_playing=payload.is_playing,
                        last_update=now,
                    ),
                    queue=list(payload.queue),
                    is_host=payload.is_host,
                )
                if self._pending_join is not None and not self._pending_join.done():
                    self._pending_join.set_result(self._state)
            case ErrorMessage(payload):
                logger.debug("Server reported an error: %s", payload.message)
                pending = self._pending_join
                if payload.message in JOIN_ERRORS and pending is not None and not pending.done():
                    pending.set_exception(SessionRequestError(payload.message))
            case SessionClosedMessage(payload):
                logger.info("Session closed: %s", payload.message)
                self._state = None
            case _ if state is None:
                logger.debug("Ignoring %s while not in a session", type(message).__name__)
            case ItemChangedMessage(payload):
                state.current_item = payload.to_media_ref()
                state.clock.set_play_state(payload.is_playing, payload.position, now)
            case PlayStateChangedMessage(payload):
                state.clock.set_play_state(payload.is_playing, payload.position, now)
            case SeekedMessage(payload):
                state.clock.seek(payload.position, now)
            case SyncResponseMessage(payload):
                state.clock.set_play_state(payload.is_playing, payload.position, now)
            case QueueChangedMessage(payload):
                state.queue = list(payload.queue)
            case ParticipantJoinedMessage(participant):
                state.participants.append(participant)
            case ParticipantLeftMessage(participant):
                state.participants = [p for p in state.participants if p.id != participant.id]
            case BecameHostMessage():
                state.is_host = True
            case _:
                pass

    def _fail_pending(self, err: Exception) -> None:
        for pending in (self._pending_create, self._pending_join):
            if pending is not None and not pending.done():
                pending.set_exception(err)

    async def _notify_callbacks(self, message: ServerMessage) -> None:
        for callback in self._callbacks:
            try:
                result = callback(message)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("Error in client callback %s", callback)

    async def __aenter__(self) -> Self:
        """Enter the async context manager returning this instance."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        """Disconnect when leaving the async context manager."""
        await self.disconnect()
