"""Command-line interface for joining a SyncRoom session."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from collections.abc import Sequence
from dataclasses import dataclass

import aioconsole
from aiohttp import ClientError

from aiosyncroom.client import SessionRequestError, SyncRoomClient
from aiosyncroom.client.discovery import RoomServerFinder
from aiosyncroom.models import MediaRef, Provider, ServerMessage
from aiosyncroom.models.chat import ChatBroadcastMessage
from aiosyncroom.models.playback import (
    ItemChangedMessage,
    PlayStateChangedMessage,
    SeekedMessage,
)
from aiosyncroom.models.queue import QueueChangedMessage
from aiosyncroom.models.session import (
    BecameHostMessage,
    ErrorMessage,
    InactivityWarningMessage,
    ParticipantJoinedMessage,
    ParticipantLeftMessage,
    SessionClosedMessage,
)

logger = logging.getLogger(__name__)


@dataclass
class CLISession:
    """Remembers where to reconnect to and which session to rejoin."""

    url: str | None = None
    server_name: str | None = None
    """mDNS name of the server, used to find it again after it moved."""
    session_id: str | None = None
    name: str = "Listener"


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the SyncRoom console client."""
    parser = argparse.ArgumentParser(description="Run a SyncRoom console client")
    parser.add_argument(
        "--url",
        default=None,
        help=("WebSocket URL of the SyncRoom server. If omitted, discover via mDNS."),
    )
    parser.add_argument(
        "--name",
        default="Listener",
        help="Display name inside the session",
    )
    parser.add_argument(
        "--session",
        default=None,
        help="Session id to join right after connecting",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level to use",
    )
    return parser.parse_args(argv)


async def _backoff(delay: float, keyboard_task: asyncio.Task[None]) -> bool:
    """Wait ``delay`` seconds unless the user quits first. Return True if they did."""
    done, _ = await asyncio.wait({keyboard_task}, timeout=delay)
    return bool(done)


async def _connection_loop(
    client: SyncRoomClient,
    finder: RoomServerFinder | None,
    cli_session: CLISession,
    keyboard_task: asyncio.Task[None],
) -> None:
    """
    Keep the client connected and inside its session until the user quits.

    After a reconnect the previously joined session is joined again, so a restarted server
    that restored the session puts the user right back into it. With mDNS the loop follows
    the server it was connected to, by name, to whatever address it is announced at now.
    """
    error_backoff = 1.0
    max_backoff = 300.0  # 5 minutes

    while not keyboard_task.done():
        if finder is not None and (server := finder.pick(cli_session.server_name)):
            cli_session.url = server.url
            cli_session.server_name = server.name
        url = cli_session.url
        assert url is not None
        try:
            await client.connect(url)
            logger.info("Connected to %s", url)
            _print_event(f"Connected to {url}")
            error_backoff = 1.0
            if cli_session.session_id is not None:
                await _join(client, cli_session, cli_session.session_id)

            while client.connected and not keyboard_task.done():  # noqa: ASYNC110
                await asyncio.sleep(0.5)

            if keyboard_task.done():
                break
            logger.info("Connection to %s lost", url)
            _print_event("Connection lost, reconnecting...")
        except (TimeoutError, OSError, ClientError) as e:
            logger.debug(
                "Connection error (%s), retrying in %.0fs", type(e).__name__, error_backoff
            )
            _print_event(f"Connection error, retrying in {error_backoff:.0f}s...")
            if await _backoff(error_backoff, keyboard_task):
                break
            error_backoff = min(error_backoff * 2, max_backoff)
        except Exception:
            # NOTE: Intentional catch-all to log unexpected exceptions so they are visible.
            logger.exception("Unexpected error during connection")
            _print_event("Unexpected error occurred")
            if await _backoff(error_backoff, keyboard_task):
                break
            error_backoff = min(error_backoff * 2, max_backoff)


async def main_async(argv: Sequence[str] | None = None) -> int:
    """Entry point executing the asynchronous CLI workflow."""
    args = parse_args(list(argv) if argv is not None else None)
    logging.basicConfig(level=getattr(logging, args.log_level))

    client = SyncRoomClient()
    cli_session = CLISession(url=args.url, session_id=args.session, name=args.name)
    client.add_message_listener(_print_server_message)

    finder: RoomServerFinder | None = None
    try:
        if cli_session.url is None:
            finder = RoomServerFinder()
            await finder.start()
            _print_event("Searching for a SyncRoom server on the local network...")
            server = await finder.wait_for_server()
            _print_event(f"Found {server.name} at {server.url}")

        _print_instructions()
        keyboard_task = asyncio.create_task(_keyboard_loop(client, cli_session))

        loop = asyncio.get_running_loop()

        def signal_handler() -> None:
            logger.debug("Received interrupt signal, shutting down...")
            keyboard_task.cancel()

        loop.add_signal_handler(signal.SIGINT, signal_handler)
        try:
            await _connection_loop(client, finder, cli_session, keyboard_task)
        except asyncio.CancelledError:  # pragma: no cover - cancellation path
            logger.debug("Connection loop cancelled")
        finally:
            loop.remove_signal_handler(signal.SIGINT)
            if not keyboard_task.done():
                keyboard_task.cancel()
            await client.disconnect()
    finally:
        if finder is not None:
            await finder.stop()
    return 0


async def _join(client: SyncRoomClient, cli_session: CLISession, session_id: str) -> None:
    try:
        state = await client.join(session_id, cli_session.name)
    except (SessionRequestError, TimeoutError) as err:
        _print_event(f"Could not join {session_id}: {err}")
        return
    cli_session.session_id = state.session_id
    names = ", ".join(p.name for p in state.participants)
    role = " (host)" if state.is_host else ""
    _print_event(f"Joined session {state.session_id}{role} with {names}")


def _media_ref(parts: list[str]) -> MediaRef | None:
    if len(parts) < 3:
        return None
    return MediaRef(provider=Provider.YOUTUBE.value, id=parts[1], title=" ".join(parts[2:]))


async def _handle_command(  # noqa: PLR0911, PLR0912
    client: SyncRoomClient, cli_session: CLISession, parts: list[str]
) -> None:
    keyword = parts[0].lower()
    if keyword == "create":
        session_id = await client.create_session()
        _print_event(f"Created session {session_id}")
        await _join(client, cli_session, session_id)
    elif keyword == "join" and len(parts) == 2:
        await _join(client, cli_session, parts[1])
    elif keyword == "leave":
        await client.leave()
        cli_session.session_id = None
        _print_event("Left session")
    elif keyword in {"play", "p"}:
        await client.play()
    elif keyword == "pause":
        await client.pause()
    elif keyword == "seek" and len(parts) == 2:
        try:
            position = float(parts[1])
        except ValueError:
            _print_event("Invalid position")
            return
        await client.seek(position)
    elif keyword == "set":
        if (item := _media_ref(parts)) is None:
            _print_event("Usage: set <video-id> <title>")
            return
        await client.set_item(item)
    elif keyword in {"add", "a"}:
        if (item := _media_ref(parts)) is None:
            _print_event("Usage: add <video-id> <title>")
            return
        await client.enqueue(item)
    elif keyword in {"next", "n"}:
        await client.advance()
    elif keyword == "move" and len(parts) == 3:
        try:
            from_index, to_index = int(parts[1]), int(parts[2])
        except ValueError:
            _print_event("Usage: move <from> <to>")
            return
        await client.reorder(from_index, to_index)
    elif keyword == "remove" and len(parts) == 2:
        await client.remove_from_queue(parts[1])
    elif keyword == "pick" and len(parts) == 2:
        await client.play_from_queue(parts[1])
    elif keyword == "say" and len(parts) > 1:
        await client.chat(" ".join(parts[1:]))
    elif keyword == "sync":
        await client.request_sync()
    elif keyword in {"status", "s"}:
        _print_status(client)
    else:
        _print_event("Unknown command")


async def _keyboard_loop(client: SyncRoomClient, cli_session: CLISession) -> None:
    try:
        while True:
            try:
                line = await aioconsole.ainput()
            except EOFError:
                break
            raw_line = line.strip()
            if not raw_line:
                continue
            if raw_line.lower() in {"quit", "exit", "q"}:
                break
            if not client.connected:
                _print_event("Not connected")
                continue
            try:
                await _handle_command(client, cli_session, raw_line.split())
            except (RuntimeError, ConnectionError, TimeoutError) as err:
                _print_event(f"Command failed: {err}")
    except asyncio.CancelledError:
        # Graceful shutdown on Ctrl+C
        logger.debug("Keyboard loop cancelled, exiting gracefully")
        raise


def _print_status(client: SyncRoomClient) -> None:
    state = client.state
    if state is None:
        _print_event("Not in a session")
        return
    lines = [f"Session: {state.session_id}{' (host)' if state.is_host else ''}"]
    lines.append("Participants: " + ", ".join(p.name for p in state.participants))
    if state.current_item is not None:
        play_state = "playing" if state.clock.is_playing else "paused"
        lines.append(
            f"Now {play_state}: {state.current_item.title} at {client.position:.1f}s"
        )
    for index, entry in enumerate(state.queue):
        lines.append(f"  {index}. [{entry.entry_id}] {entry.item.title} ({entry.added_by})")
    _print_event("\n".join(lines))


async def _print_server_message(message: ServerMessage) -> None:  # noqa: PLR0912
    match message:
        case ItemChangedMessage(payload):
            _print_event(f"Now playing: {payload.title}")
        case PlayStateChangedMessage(payload):
            state = "Playing" if payload.is_playing else "Paused"
            _print_event(f"{state} at {payload.position:.1f}s")
        case SeekedMessage(payload):
            _print_event(f"Seeked to {payload.position:.1f}s")
        case QueueChangedMessage(payload):
            _print_event(f"Queue now has {len(payload.queue)} item(s)")
        case ParticipantJoinedMessage(participant):
            _print_event(f"{participant.name} joined")
        case ParticipantLeftMessage(participant):
            _print_event(f"{participant.name} left")
        case BecameHostMessage():
            _print_event("You are now the host")
        case ChatBroadcastMessage(payload):
            _print_event(f"<{payload.user}> {payload.message}")
        case InactivityWarningMessage(payload) | SessionClosedMessage(payload):
            _print_event(payload.message)
        case ErrorMessage(payload):
            _print_event(f"Error: {payload.message}")
        case _:
            pass


def _print_event(message: str) -> None:
    print(message, flush=True)  # noqa: T201


def _print_instructions() -> None:
    print(  # noqa: T201
        (
            "Commands: create, join <id>, leave, play(p), pause, seek <s>, set <id> <title>, "
            "add(a) <id> <title>, next(n), move <from> <to>, remove <entry>, pick <entry>, "
            "say <text>, sync, status(s), quit(q)"
        ),
        flush=True,
    )


def main() -> int:
    """Run the CLI client."""
    return asyncio.run(main_async(sys.argv[1:]))


if __name__ == "__main__":  # pragma: no cover - CLI entry
    raise SystemExit(main())
