import asyncio

import pytest

from aiosyncroom.models.chat import ChatMessage, ChatPayload
from aiosyncroom.models.session import (
    InactivityWarningMessage,
    JoinSessionMessage,
    JoinSessionPayload,
    SessionClosedMessage,
)
from aiosyncroom.server.coordinator import CoordinatorConfig, SessionCoordinator
from aiosyncroom.server.reaper import InactivityVerdict, SessionReaper, inactivity_verdict
from aiosyncroom.server.session import Session
from aiosyncroom.server.store import MemorySnapshotStore

from conftest import FakeTime, RecordingTransport

MINUTE = 60.0
TIMEOUT = 120 * MINUTE
WINDOW = 10 * MINUTE


def verdict(session: Session, now: float) -> InactivityVerdict:
    return inactivity_verdict(session, now, timeout=TIMEOUT, warning_window=WINDOW)


def test_verdict_thresholds() -> None:
    session = Session("abcd1234", 0.0)

    assert verdict(session, 100 * MINUTE) is InactivityVerdict.KEEP
    assert verdict(session, 116 * MINUTE) is InactivityVerdict.WARN
    assert verdict(session, 120 * MINUTE) is InactivityVerdict.EVICT

    session.warning_issued = True
    assert verdict(session, 116 * MINUTE) is InactivityVerdict.KEEP

    session.touch(116 * MINUTE)
    assert session.warning_issued is False
    assert verdict(session, 117 * MINUTE) is InactivityVerdict.KEEP


def test_reaper_rejects_non_positive_interval() -> None:
    async def sweep() -> None:
        pass

    with pytest.raises(ValueError):
        SessionReaper(sweep, 0)


@pytest.mark.anyio
async def test_reaper_keeps_running_after_failed_sweep() -> None:
    calls = 0

    async def sweep() -> None:
        nonlocal calls
        calls += 1
        if calls == 1:
            raise RuntimeError("boom")

    reaper = SessionReaper(sweep, 0.01)
    reaper.start()
    try:
        for _ in range(100):
            if calls >= 2:
                break
            await asyncio.sleep(0.01)
        assert reaper.running
    finally:
        await reaper.stop()

    assert calls >= 2
    assert not reaper.running


async def joined_session(
    coordinator: SessionCoordinator, connection_ids: list[str]
) -> str:
    session_id = await coordinator.create_session()
    for connection_id in connection_ids:
        await coordinator.handle_message(
            connection_id,
            JoinSessionMessage(JoinSessionPayload(session_id=session_id, name=connection_id)),
        )
    return session_id


@pytest.mark.anyio
async def test_sweep_warns_once_then_evicts(
    transport: RecordingTransport, fake_time: FakeTime
) -> None:
    store = MemorySnapshotStore()
    coordinator = SessionCoordinator(transport, store=store, time_func=fake_time)
    await coordinator.start()
    try:
        session_id = await joined_session(coordinator, ["c1", "c2"])
        transport.clear()

        fake_time.advance(116 * MINUTE)
        await coordinator.sweep()
        await coordinator.sweep()

        warnings = transport.of_type(InactivityWarningMessage)
        assert sorted(recipient for recipient, _ in warnings) == ["c1", "c2"]
        assert session_id in coordinator.session_ids

        fake_time.advance(9 * MINUTE)
        await coordinator.sweep()

        closed = transport.of_type(SessionClosedMessage)
        assert sorted(recipient for recipient, _ in closed) == ["c1", "c2"]
        assert session_id not in coordinator.session_ids
        assert coordinator.connection_session("c1") is None
        assert await coordinator.describe_session(session_id) is None
    finally:
        await coordinator.stop()

    assert session_id not in await store.load()


@pytest.mark.anyio
async def test_empty_sessions_are_evicted_too(
    transport: RecordingTransport, fake_time: FakeTime
) -> None:
    coordinator = SessionCoordinator(transport, time_func=fake_time)
    await coordinator.start()
    try:
        session_id = await coordinator.create_session()

        fake_time.advance(125 * MINUTE)
        await coordinator.sweep()

        assert session_id not in coordinator.session_ids
        assert transport.sent == []
    finally:
        await coordinator.stop()


@pytest.mark.anyio
async def test_activity_resets_warning(
    transport: RecordingTransport, fake_time: FakeTime
) -> None:
    coordinator = SessionCoordinator(transport, time_func=fake_time)
    await coordinator.start()
    try:
        session_id = await joined_session(coordinator, ["c1"])

        fake_time.advance(116 * MINUTE)
        await coordinator.sweep()
        await coordinator.handle_message("c1", ChatMessage(ChatPayload(message="still here")))

        fake_time.advance(116 * MINUTE)
        await coordinator.sweep()

        assert len(transport.messages_for("c1", InactivityWarningMessage)) == 2
        assert session_id in coordinator.session_ids
    finally:
        await coordinator.stop()


@pytest.mark.anyio
async def test_events_after_eviction_are_ignored(
    transport: RecordingTransport, fake_time: FakeTime
) -> None:
    coordinator = SessionCoordinator(
        transport,
        config=CoordinatorConfig(session_ttl=TIMEOUT, warning_window=WINDOW),
        time_func=fake_time,
    )
    await coordinator.start()
    try:
        await joined_session(coordinator, ["c1"])
        fake_time.advance(130 * MINUTE)
        await coordinator.sweep()
        transport.clear()

        await coordinator.handle_message("c1", ChatMessage(ChatPayload(message="hello?")))

        assert transport.sent == []
    finally:
        await coordinator.stop()
