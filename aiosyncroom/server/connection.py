"""Represents a single websocket connection to the sync room server."""

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import suppress
from typing import TYPE_CHECKING, cast

from aiohttp import WSMessage, WSMsgType, web

from aiosyncroom.models import ClientMessage, ServerMessage
from aiosyncroom.models.session import ErrorMessage, NoticePayload

MAX_PENDING_MSG = 512
PREPARE_TIMEOUT = 10

logger = logging.getLogger(__name__)

# The cyclic import is not an issue during runtime, so hide it
# pyright: reportImportCycles=none
if TYPE_CHECKING:
    from .coordinator import SessionCoordinator


class Connection:
    """
    A websocket connection from a browser or console client.

    A connection has no identity beyond its random id; participants are bound to it by the
    SessionCoordinator once it joins a session.
    """

    _coordinator: SessionCoordinator
    _request: web.Request
    _wsock: web.WebSocketResponse
    _connection_id: str
    _writer_task: asyncio.Task[None] | None = None
    """Task responsible for sending JSON messages."""
    _to_write: asyncio.Queue[ServerMessage]
    """Queue for messages to be sent to the client through the WebSocket."""
    _logger: logging.Logger

    def __init__(self, coordinator: SessionCoordinator, request: web.Request) -> None:
        """
        DO NOT CALL THIS CONSTRUCTOR. INTERNAL USE ONLY.

        Use SyncRoomServer.on_connect instead.
        """
        self._coordinator = coordinator
        self._request = request
        self._wsock = web.WebSocketResponse(heartbeat=55)
        self._connection_id = uuid.uuid4().hex
        self._to_write = asyncio.Queue(maxsize=MAX_PENDING_MSG)
        self._logger = logger.getChild(self._connection_id[:8])
        self._logger.debug("Connection initialized from %s", request.remote)

    @property
    def connection_id(self) -> str:
        """The unique identifier of this connection."""
        return self._connection_id

    @property
    def websocket(self) -> web.WebSocketResponse:
        """The underlying websocket response."""
        return self._wsock

    def send_message(self, message: ServerMessage) -> None:
        """
        Enqueue a message to be sent to the client.

        Never blocks; if the client does not keep up the message is dropped.
        """
        if self._wsock.closed:
            return
        self._logger.debug("Enqueueing message: %s", type(message).__name__)
        try:
            self._to_write.put_nowait(message)
        except asyncio.QueueFull:
            self._logger.warning(
                "Outgoing queue full, dropping %s", type(message).__name__
            )

    async def handle(self) -> web.WebSocketResponse:
        """
        Handle the complete websocket connection lifecycle.

        This method should only be called by SyncRoomServer during connection handling.
        """
        try:
            await self._setup_connection()
            await self._run_message_loop()
        finally:
            await self._cleanup_connection()
        return self._wsock

    async def _setup_connection(self) -> None:
        try:
            async with asyncio.timeout(PREPARE_TIMEOUT):
                # Prepare response, writer not needed
                _ = await self._wsock.prepare(self._request)
        except TimeoutError:
            self._logger.warning("Timeout preparing request")
            raise
        self._logger.info("Connection established")
        self._writer_task = asyncio.get_running_loop().create_task(self._writer())

    async def _run_message_loop(self) -> None:
        receive_task: asyncio.Task[WSMessage] | None = None
        loop = asyncio.get_running_loop()
        try:
            while not self._wsock.closed:
                # Wait for either a message or the writer task to complete (meaning the client
                # disconnected or errored)
                receive_task = loop.create_task(self._wsock.receive())
                assert self._writer_task is not None  # for type checking
                done, pending = await asyncio.wait(
                    [receive_task, self._writer_task],
                    return_when=asyncio.FIRST_COMPLETED,
                )

                if self._writer_task in done:
                    self._logger.debug("Writer task ended, closing connection")
                    if receive_task in pending:
                        _ = receive_task.cancel()  # Don't care about cancellation result
                    break

                try:
                    msg = await receive_task
                except (ConnectionError, asyncio.CancelledError, TimeoutError) as e:
                    self._logger.error("Error receiving message: %s", e)
                    break

                if msg.type in (WSMsgType.CLOSE, WSMsgType.CLOSING, WSMsgType.CLOSED):
                    break

                if msg.type != WSMsgType.TEXT:
                    continue

                message = self._parse_message(cast("str", msg.data))
                if message is None:
                    continue
                try:
                    await self._coordinator.handle_message(self._connection_id, message)
                except Exception:
                    # NOTE: Intentional catch-all, one bad event must not end the connection.
                    self._logger.exception("Error handling %s", type(message).__name__)
            self._logger.debug("wsock was closed")

        except asyncio.CancelledError:
            self._logger.debug("Connection closed by client")
        except Exception:
            self._logger.exception("Unexpected error inside websocket API")
        finally:
            if receive_task and not receive_task.done():
                _ = receive_task.cancel()  # Don't care about cancellation result

    def _parse_message(self, data: str) -> ClientMessage | None:
        try:
            return ClientMessage.from_json(data)
        except Exception as err:  # noqa: BLE001
            # NOTE: Intentional catch-all, decoding raises several unrelated exception types.
            self._logger.debug("Rejecting malformed message: %s", err)
        self.send_message(ErrorMessage(NoticePayload(message="Invalid message")))
        return None

    async def _writer(self) -> None:
        """Write outgoing messages from the queue."""
        try:
            while not self._wsock.closed:
                item = await self._to_write.get()
                try:
                    await self._wsock.send_str(item.to_json())
                except ConnectionError:
                    self._logger.warning("Connection error sending JSON data, ending writer task")
                    break
            self._logger.debug("WebSocket Connection was closed, ending writer task")
        except Exception:
            self._logger.exception("Error in writer task")

    async def _cleanup_connection(self) -> None:
        try:
            await self._coordinator.disconnect(self._connection_id)
        except Exception:
            self._logger.exception("Failed to detach connection from its session")

        if self._writer_task and not self._writer_task.done():
            self._logger.debug("Cancelling writer task")
            _ = self._writer_task.cancel()  # Don't care about cancellation result
            with suppress(asyncio.CancelledError):
                await self._writer_task

        try:
            if not self._wsock.closed:
                _ = await self._wsock.close()  # Don't care about close result
        except Exception:
            self._logger.exception("Failed to close websocket")

        self._logger.info("Connection closed")
