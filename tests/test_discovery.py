import pytest
from zeroconf.asyncio import AsyncServiceInfo

from aiosyncroom.client.discovery import RoomServer, room_server_from_info
from aiosyncroom.server.server import SERVICE_TYPE


def announced(
    name: str = "Living room",
    addresses: list[str] | None = None,
    port: int | None = 8927,
    properties: dict[str, str] | None = None,
) -> AsyncServiceInfo:
    return AsyncServiceInfo(
        SERVICE_TYPE,
        f"{name}.{SERVICE_TYPE}",
        parsed_addresses=["192.168.1.20"] if addresses is None else addresses,
        port=port,
        properties={"path": "/ws"} if properties is None else properties,
    )


def test_server_url_from_announcement() -> None:
    assert room_server_from_info(announced()) == RoomServer(
        name="Living room", url="ws://192.168.1.20:8927/ws"
    )


@pytest.mark.parametrize(
    ("properties", "url"),
    [
        ({}, "ws://192.168.1.20:8927/ws"),
        ({"path": ""}, "ws://192.168.1.20:8927/ws"),
        ({"path": "rooms"}, "ws://192.168.1.20:8927/rooms"),
    ],
)
def test_path_defaults(properties: dict[str, str], url: str) -> None:
    server = room_server_from_info(announced(properties=properties))

    assert server is not None
    assert server.url == url


def test_ipv6_hosts_are_bracketed() -> None:
    server = room_server_from_info(announced(addresses=["fd00::20"]))

    assert server is not None
    assert server.url == "ws://[fd00::20]:8927/ws"


def test_announcement_without_address_is_ignored() -> None:
    assert room_server_from_info(announced(addresses=[])) is None
    assert room_server_from_info(announced(port=None)) is None
