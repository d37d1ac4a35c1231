import asyncio

import pytest
from aiohttp import test_utils

from aiosyncroom.client import SessionRequestError, SyncRoomClient
from aiosyncroom.models import ServerMessage
from aiosyncroom.models.chat import ChatBroadcastMessage
from aiosyncroom.models.playback import ItemChangedMessage, PlayStateChangedMessage
from aiosyncroom.models.queue import QueueChangedMessage
from aiosyncroom.models.session import ErrorMessage, ParticipantJoinedMessage
from aiosyncroom.server import SyncRoomServer

from conftest import make_item


async def wait_for(
    queue: asyncio.Queue[ServerMessage], message_type: type[ServerMessage]
) -> ServerMessage:
    async with asyncio.timeout(5):
        while True:
            message = await queue.get()
            if isinstance(message, message_type):
                return message


@pytest.mark.anyio
async def test_two_clients_share_a_session() -> None:
    async with test_utils.TestServer(SyncRoomServer().create_app()) as test_server:
        url = str(test_server.make_url("/ws"))
        alice = SyncRoomClient()
        bob = SyncRoomClient()
        alice_inbox: asyncio.Queue[ServerMessage] = asyncio.Queue()
        bob_inbox: asyncio.Queue[ServerMessage] = asyncio.Queue()
        alice.add_message_listener(alice_inbox.put)
        bob.add_message_listener(bob_inbox.put)
        try:
            await alice.connect(url)
            await bob.connect(url)

            session_id = await alice.create_session()
            alice_state = await alice.join(session_id, "alice")
            assert alice_state.is_host is True

            bob_state = await bob.join(session_id, "bob")
            assert bob_state.is_host is False
            assert [p.name for p in bob_state.participants] == ["alice", "bob"]
            await wait_for(alice_inbox, ParticipantJoinedMessage)
            assert alice.state is not None
            assert [p.name for p in alice.state.participants] == ["alice", "bob"]

            await alice.set_item(make_item("vid", "Shared"))
            await wait_for(bob_inbox, ItemChangedMessage)
            assert bob.state is not None
            assert bob.state.current_item == make_item("vid", "Shared")
            assert bob.state.clock.is_playing is True

            await alice.pause()
            changed = await wait_for(bob_inbox, PlayStateChangedMessage)
            assert changed.payload.is_playing is False
            assert bob.state.clock.is_playing is False
            assert alice.state.clock.is_playing is False

            await bob.enqueue(make_item("next", "Next up"))
            await wait_for(alice_inbox, QueueChangedMessage)
            assert [entry.added_by for entry in alice.state.queue] == ["bob"]

            await bob.chat("hello")
            chat = await wait_for(alice_inbox, ChatBroadcastMessage)
            assert (chat.payload.user, chat.payload.message) == ("bob", "hello")
        finally:
            await alice.disconnect()
            await bob.disconnect()


@pytest.mark.anyio
async def test_join_unknown_session_raises() -> None:
    async with test_utils.TestServer(SyncRoomServer().create_app()) as test_server:
        client = SyncRoomClient()
        try:
            await client.connect(str(test_server.make_url("/ws")))

            with pytest.raises(SessionRequestError, match="Session not found"):
                await client.join("zzzz9999", "alice")

            assert client.state is None
        finally:
            await client.disconnect()


@pytest.mark.anyio
async def test_commands_require_connection() -> None:
    client = SyncRoomClient()

    with pytest.raises(RuntimeError):
        await client.chat("hello")


@pytest.mark.anyio
async def test_unrelated_error_does_not_fail_join() -> None:
    async with test_utils.TestServer(SyncRoomServer().create_app()) as test_server:
        client = SyncRoomClient()
        inbox: asyncio.Queue[ServerMessage] = asyncio.Queue()
        client.add_message_listener(inbox.put)
        try:
            await client.connect(str(test_server.make_url("/ws")))
            session_id = await client.create_session()

            await client.seek(-1.0)
            state = await client.join(session_id, "alice")

            assert state.session_id == session_id
            error = await wait_for(inbox, ErrorMessage)
            assert error.payload.message == "Invalid position"
        finally:
            await client.disconnect()
