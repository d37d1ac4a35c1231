from __future__ import annotations

import pytest

from aiosyncroom.models import MediaRef, ServerMessage


class FakeTime:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingTransport:
    def __init__(self) -> None:
        self.sent: list[tuple[str, ServerMessage]] = []

    def send(self, connection_id: str, message: ServerMessage) -> None:
        self.sent.append((connection_id, message))

    def messages_for(
        self, connection_id: str, message_type: type[ServerMessage] | None = None
    ) -> list[ServerMessage]:
        return [
            message
            for recipient, message in self.sent
            if recipient == connection_id
            and (message_type is None or isinstance(message, message_type))
        ]

    def of_type(self, message_type: type[ServerMessage]) -> list[tuple[str, ServerMessage]]:
        return [(recipient, msg) for recipient, msg in self.sent if isinstance(msg, message_type)]

    def clear(self) -> None:
        self.sent.clear()


def make_item(video_id: str = "dQw4w9WgXcQ", title: str = "Song") -> MediaRef:
    return MediaRef(provider="youtube", id=video_id, title=title)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def fake_time() -> FakeTime:
    return FakeTime()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()
