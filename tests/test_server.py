import asyncio

import pytest
from aiohttp import test_utils

from aiosyncroom.models import MediaRef
from aiosyncroom.models.session import (
    CreateSessionMessage,
    JoinSessionMessage,
    JoinSessionPayload,
)
from aiosyncroom.server import SearchError, SyncRoomServer

from conftest import make_item


class FakeSearch:
    def __init__(
        self, results: list[MediaRef] | None = None, error: Exception | None = None
    ) -> None:
        self.results = results or []
        self.error = error
        self.queries: list[str] = []
        self.closed = False

    async def search(self, query: str, limit: int = 10) -> list[MediaRef]:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return self.results[:limit]

    async def close(self) -> None:
        self.closed = True


def client_for(server: SyncRoomServer) -> test_utils.TestClient:
    return test_utils.TestClient(test_utils.TestServer(server.create_app()))


@pytest.mark.anyio
async def test_create_and_describe_session() -> None:
    server = SyncRoomServer()
    async with client_for(server) as client:
        resp = await client.post("/api/sessions")
        assert resp.status == 201
        session_id = (await resp.json())["id"]
        assert session_id in server.coordinator.session_ids

        resp = await client.get(f"/api/sessions/{session_id}")
        assert resp.status == 200
        assert await resp.json() == {
            "id": session_id,
            "participants": [],
            "is_playing": False,
            "position": 0.0,
            "queue_length": 0,
        }


@pytest.mark.anyio
async def test_unknown_session_is_404() -> None:
    async with client_for(SyncRoomServer()) as client:
        resp = await client.get("/api/sessions/zzzz9999")
        assert resp.status == 404
        assert await resp.json() == {"error": "Session not found"}

        resp = await client.get("/api/sessions/not-an-id")
        assert resp.status == 404


@pytest.mark.anyio
async def test_search_requires_query() -> None:
    async with client_for(SyncRoomServer(search_provider=FakeSearch())) as client:
        resp = await client.get("/api/search")
        assert resp.status == 400
        resp = await client.get("/api/search", params={"q": "   "})
        assert resp.status == 400


@pytest.mark.anyio
async def test_search_disabled() -> None:
    async with client_for(SyncRoomServer()) as client:
        resp = await client.get("/api/search", params={"q": "lofi"})
        assert resp.status == 503


@pytest.mark.anyio
async def test_search_returns_media_refs() -> None:
    search = FakeSearch(results=[make_item("abc", "Lofi beats")])
    async with client_for(SyncRoomServer(search_provider=search)) as client:
        resp = await client.get("/api/search", params={"q": " lofi "})
        assert resp.status == 200
        assert await resp.json() == [{"provider": "youtube", "id": "abc", "title": "Lofi beats"}]

    assert search.queries == ["lofi"]
    assert search.closed


@pytest.mark.anyio
async def test_search_failure_is_502() -> None:
    search = FakeSearch(error=SearchError("quota exceeded"))
    async with client_for(SyncRoomServer(search_provider=search)) as client:
        resp = await client.get("/api/search", params={"q": "lofi"})
        assert resp.status == 502
        assert await resp.json() == {"error": "Search failed"}


@pytest.mark.anyio
async def test_websocket_session_flow() -> None:
    server = SyncRoomServer()
    async with client_for(server) as client:
        ws = await client.ws_connect("/ws")

        await ws.send_str(CreateSessionMessage().to_json())
        created = await ws.receive_json(timeout=5)
        assert created["type"] == "session-created"
        session_id = created["payload"]["id"]

        await ws.send_str(
            JoinSessionMessage(JoinSessionPayload(session_id=session_id, name="alice")).to_json()
        )
        state = await ws.receive_json(timeout=5)
        assert state["type"] == "session-state"
        assert state["payload"]["is_host"] is True
        assert [p["name"] for p in state["payload"]["participants"]] == ["alice"]
        assert len(server.connections) == 1

        await ws.send_str("definitely not json")
        error = await ws.receive_json(timeout=5)
        assert error == {"type": "error", "payload": {"message": "Invalid message"}}

        await ws.send_str('{"type": "self-destruct"}')
        error = await ws.receive_json(timeout=5)
        assert error["payload"]["message"] == "Invalid message"

        await ws.send_str('{"type": "chat", "payload": {"message": ""}}')
        error = await ws.receive_json(timeout=5)
        assert error["payload"]["message"] == "Invalid chat message"

        await ws.send_str(
            '{"type": "toggle-play", "payload": {"is_playing": "false", "position": 5}}'
        )
        error = await ws.receive_json(timeout=5)
        assert error["payload"]["message"] == "Invalid play state"

        await ws.close()

        for _ in range(100):
            summary = await server.coordinator.describe_session(session_id)
            assert summary is not None
            if not summary.participants and not server.connections:
                break
            await asyncio.sleep(0.01)
        assert summary.participants == []
        assert server.connections == set()
