"""Sync room server: websocket endpoint, HTTP API and session coordination."""

from __future__ import annotations

import logging
import socket
import time
from collections.abc import Callable

import orjson
from aiohttp import WSCloseCode, web
from zeroconf import IPVersion
from zeroconf.asyncio import AsyncServiceInfo, AsyncZeroconf

from aiosyncroom.models import ServerMessage

from .connection import Connection
from .coordinator import CoordinatorConfig, SessionCoordinator
from .search import SearchError, SearchProvider
from .store import SnapshotStore
from .validation import is_valid_session_id

SERVICE_TYPE = "_syncroom._tcp.local."
WS_PATH = "/ws"
MAX_QUERY_LENGTH = 200

logger = logging.getLogger(__name__)


def _json_response(body: bytes, status: int = 200) -> web.Response:
    return web.Response(body=body, status=status, content_type="application/json")


def _error_response(message: str, status: int) -> web.Response:
    return _json_response(orjson.dumps({"error": message}), status=status)


def _local_ip() -> str:
    """Return the address of the interface used for outbound traffic."""
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        try:
            # No packet is sent, this only selects a route
            sock.connect(("10.255.255.255", 1))
            return str(sock.getsockname()[0])
        except OSError:
            return "127.0.0.1"


class SyncRoomServer:
    """
    Sync room server hosting any number of sessions.

    Owns the live connections and the SessionCoordinator; serves as the coordinator's transport.
    Use create_app() to embed the routes into an existing aiohttp setup or start_server() to run
    a standalone site.
    """

    _connections: dict[str, Connection]
    _coordinator: SessionCoordinator
    _search: SearchProvider | None
    _name: str
    _runner: web.AppRunner | None
    _zeroconf: AsyncZeroconf | None
    _service_info: AsyncServiceInfo | None

    def __init__(
        self,
        *,
        name: str = "SyncRoom",
        store: SnapshotStore | None = None,
        config: CoordinatorConfig | None = None,
        search_provider: SearchProvider | None = None,
        time_func: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize a new sync room server.

        Args:
            name: Human readable name, used for the mDNS advertisement.
            store: Snapshot store used to persist sessions across restarts.
            config: Session lifecycle tunables.
            search_provider: Backend of the search endpoint; search is disabled without one.
            time_func: Wall-clock source in seconds since the epoch.
        """
        self._connections = {}
        self._coordinator = SessionCoordinator(
            self, store=store, config=config, time_func=time_func
        )
        self._search = search_provider
        self._name = name
        self._runner = None
        self._zeroconf = None
        self._service_info = None
        logger.debug("SyncRoomServer initialized: name=%s", name)

    @property
    def coordinator(self) -> SessionCoordinator:
        """The coordinator sequencing all session events."""
        return self._coordinator

    @property
    def connections(self) -> set[str]:
        """Identifiers of all open websocket connections."""
        return set(self._connections)

    def send(self, connection_id: str, message: ServerMessage) -> None:
        """Enqueue ``message`` for the connection with ``connection_id``."""
        connection = self._connections.get(connection_id)
        if connection is None:
            logger.debug("Dropping %s for closed connection", type(message).__name__)
            return
        connection.send_message(message)

    def create_app(self) -> web.Application:
        """Create the aiohttp application serving the websocket and HTTP routes."""
        app = web.Application()
        app.router.add_get(WS_PATH, self.on_connect)
        app.router.add_post("/api/sessions", self._handle_create_session)
        app.router.add_get("/api/sessions/{session_id}", self._handle_get_session)
        app.router.add_get("/api/search", self._handle_search)
        app.on_startup.append(self._on_startup)
        app.on_shutdown.append(self._on_shutdown)
        app.on_cleanup.append(self._on_cleanup)
        return app

    async def on_connect(self, request: web.Request) -> web.WebSocketResponse:
        """Handle an incoming websocket connection."""
        logger.debug("Incoming connection from %s", request.remote)
        connection = Connection(self._coordinator, request)
        self._connections[connection.connection_id] = connection
        try:
            return await connection.handle()
        finally:
            self._connections.pop(connection.connection_id, None)

    async def start_server(
        self, host: str = "0.0.0.0", port: int = 8927, *, advertise: bool = False
    ) -> None:
        """
        Start serving on ``host``:``port``.

        With ``advertise`` the server announces itself over mDNS so console clients can
        find it without a URL.
        """
        if self._runner is not None:
            raise RuntimeError("Server is already running")
        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, host, port)
        await site.start()
        logger.info("Serving on http://%s:%d", host, port)
        if advertise:
            await self._advertise(host, port)

    async def stop_server(self) -> None:
        """Stop the mDNS advertisement and the site started by start_server()."""
        if self._zeroconf is not None:
            if self._service_info is not None:
                await self._zeroconf.async_unregister_service(self._service_info)
            await self._zeroconf.async_close()
            self._zeroconf = None
            self._service_info = None
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None

    async def _advertise(self, host: str, port: int) -> None:
        address = _local_ip() if host in ("0.0.0.0", "") else host
        self._service_info = AsyncServiceInfo(
            SERVICE_TYPE,
            f"{self._name}.{SERVICE_TYPE}",
            parsed_addresses=[address],
            port=port,
            properties={"path": WS_PATH},
        )
        self._zeroconf = AsyncZeroconf(ip_version=IPVersion.V4Only)
        await self._zeroconf.async_register_service(self._service_info)
        logger.info("Advertising %s at %s:%d", SERVICE_TYPE, address, port)

    async def _on_startup(self, _app: web.Application) -> None:
        await self._coordinator.start()

    async def _on_shutdown(self, _app: web.Application) -> None:
        for connection in list(self._connections.values()):
            _ = await connection.websocket.close(
                code=WSCloseCode.GOING_AWAY, message=b"Server shutdown"
            )

    async def _on_cleanup(self, _app: web.Application) -> None:
        await self._coordinator.stop()
        if self._search is not None:
            await self._search.close()

    async def _handle_create_session(self, _request: web.Request) -> web.Response:
        session_id = await self._coordinator.create_session()
        return _json_response(orjson.dumps({"id": session_id}), status=201)

    async def _handle_get_session(self, request: web.Request) -> web.Response:
        session_id = request.match_info["session_id"]
        summary = (
            await self._coordinator.describe_session(session_id)
            if is_valid_session_id(session_id)
            else None
        )
        if summary is None:
            return _error_response("Session not found", 404)
        return _json_response(summary.to_jsonb())

    async def _handle_search(self, request: web.Request) -> web.Response:
        query = request.query.get("q", "").strip()
        if not query or len(query) > MAX_QUERY_LENGTH:
            return _error_response("Missing search query", 400)
        if self._search is None:
            return _error_response("Search is disabled", 503)
        try:
            results = await self._search.search(query)
        except SearchError as err:
            logger.warning("Search for %r failed: %s", query, err)
            return _error_response("Search failed", 502)
        return _json_response(orjson.dumps([result.to_dict() for result in results]))
