"""Finding sync room servers announced on the local network."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from zeroconf import ServiceStateChange, Zeroconf
from zeroconf.asyncio import AsyncServiceBrowser, AsyncServiceInfo, AsyncZeroconf

from aiosyncroom.server.server import SERVICE_TYPE, WS_PATH

RESOLVE_TIMEOUT_MS = 3000

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RoomServer:
    """A sync room server announced over mDNS."""

    name: str
    """Instance name the server advertises, e.g. ``SyncRoom``."""
    url: str
    """Websocket URL to connect a SyncRoomClient to."""


def room_server_from_info(info: AsyncServiceInfo) -> RoomServer | None:
    """Build the RoomServer for a resolved service, None if it has no usable address."""
    addresses = info.parsed_addresses()
    if info.port is None or not addresses:
        return None
    raw_path = info.properties.get(b"path")
    path = raw_path.decode("utf-8", "ignore").strip() if raw_path else ""
    if not path:
        path = WS_PATH
    elif not path.startswith("/"):
        path = f"/{path}"
    host = f"[{addresses[0]}]" if ":" in addresses[0] else addresses[0]
    return RoomServer(
        name=info.name.removesuffix(f".{info.type}"),
        url=f"ws://{host}:{info.port}{path}",
    )


class RoomServerFinder:
    """
    Keeps the set of announced sync room servers up to date.

    Browsing continues after the first server was found, so the console client can follow a
    server that restarted on another address.
    """

    _servers: dict[str, RoomServer]
    """Resolved servers keyed by mDNS service name."""

    def __init__(self) -> None:
        """Initialize an idle finder; call start() to begin browsing."""
        self._servers = {}
        self._available = asyncio.Event()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._zeroconf: AsyncZeroconf | None = None
        self._browser: AsyncServiceBrowser | None = None
        self._resolving: set[asyncio.Task[None]] = set()

    @property
    def servers(self) -> list[RoomServer]:
        """Currently announced servers, ordered by name."""
        return sorted(self._servers.values(), key=lambda server: server.name)

    async def start(self) -> None:
        """Start browsing for servers."""
        self._loop = asyncio.get_running_loop()
        self._zeroconf = AsyncZeroconf()
        self._browser = AsyncServiceBrowser(
            self._zeroconf.zeroconf, SERVICE_TYPE, handlers=[self._on_service_state_change]
        )

    async def stop(self) -> None:
        """Stop browsing and release the mDNS socket."""
        if self._browser is not None:
            await self._browser.async_cancel()
            self._browser = None
        for task in list(self._resolving):
            _ = task.cancel()
        if self._zeroconf is not None:
            await self._zeroconf.async_close()
            self._zeroconf = None

    async def wait_for_server(self) -> RoomServer:
        """Wait until at least one server is announced and return the first one."""
        while not self._servers:
            self._available.clear()
            await self._available.wait()
        return self.servers[0]

    def pick(self, preferred: str | None = None) -> RoomServer | None:
        """Return the server named ``preferred`` if it is announced, else the first one."""
        servers = self.servers
        return next(
            (server for server in servers if server.name == preferred),
            servers[0] if servers else None,
        )

    def _on_service_state_change(
        self,
        zeroconf: Zeroconf,
        service_type: str,
        name: str,
        state_change: ServiceStateChange,
    ) -> None:
        if state_change is ServiceStateChange.Removed:
            if (server := self._servers.pop(name, None)) is not None:
                logger.info("Room server %s is no longer announced", server.name)
            return
        assert self._loop is not None
        task = self._loop.create_task(self._resolve(zeroconf, service_type, name))
        self._resolving.add(task)
        task.add_done_callback(self._resolving.discard)

    async def _resolve(self, zeroconf: Zeroconf, service_type: str, name: str) -> None:
        info = AsyncServiceInfo(service_type, name)
        if not await info.async_request(zeroconf, RESOLVE_TIMEOUT_MS):
            logger.debug("Could not resolve %s", name)
            return
        server = room_server_from_info(info)
        if server is None:
            logger.debug("Ignoring %s without a usable address", name)
            return
        self._servers[name] = server
        self._available.set()
        logger.info("Found room server %s at %s", server.name, server.url)
