"""Command-line entry point running a standalone sync room server."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys
from collections.abc import Sequence

from .coordinator import CoordinatorConfig
from .search import SearchProvider, YouTubeSearchProvider
from .server import SyncRoomServer
from .store import JsonFileSnapshotStore, MemorySnapshotStore, SnapshotStore

logger = logging.getLogger(__name__)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the sync room server."""
    parser = argparse.ArgumentParser(description="Run a SyncRoom server")
    parser.add_argument("--host", default="0.0.0.0", help="Address to listen on")
    parser.add_argument("--port", type=int, default=8927, help="Port to listen on")
    parser.add_argument("--name", default="SyncRoom", help="Name advertised over mDNS")
    parser.add_argument(
        "--state-file",
        default=None,
        help="JSON file to persist sessions to. Sessions are kept in memory if omitted.",
    )
    parser.add_argument(
        "--session-ttl",
        type=float,
        default=120.0,
        help="Minutes of inactivity after which a session is closed",
    )
    parser.add_argument(
        "--warning-window",
        type=float,
        default=10.0,
        help="Minutes before closing at which participants are warned",
    )
    parser.add_argument(
        "--reaper-interval",
        type=float,
        default=10.0,
        help="Minutes between two inactivity sweeps",
    )
    parser.add_argument(
        "--youtube-api-key",
        default=os.environ.get("YOUTUBE_API_KEY"),
        help="YouTube Data API key, defaults to the YOUTUBE_API_KEY environment variable",
    )
    parser.add_argument(
        "--no-search",
        action="store_true",
        help="Disable the search endpoint",
    )
    parser.add_argument(
        "--advertise",
        action="store_true",
        help="Advertise the server on the local network via mDNS",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level to use",
    )
    return parser.parse_args(argv)


async def main_async(argv: Sequence[str] | None = None) -> int:
    """Entry point executing the asynchronous server workflow."""
    args = parse_args(list(argv) if argv is not None else None)
    logging.basicConfig(level=getattr(logging, args.log_level))

    search: SearchProvider | None = None
    if not args.no_search:
        if not args.youtube_api_key:
            logger.error(
                "No YouTube API key configured. Set YOUTUBE_API_KEY, pass --youtube-api-key "
                "or disable search with --no-search."
            )
            return 2
        search = YouTubeSearchProvider(args.youtube_api_key)

    try:
        config = CoordinatorConfig(
            session_ttl=args.session_ttl * 60,
            warning_window=args.warning_window * 60,
            reaper_interval=args.reaper_interval * 60,
        )
    except ValueError as err:
        logger.error("Invalid session settings: %s", err)  # noqa: TRY400
        return 2

    store: SnapshotStore = (
        JsonFileSnapshotStore(args.state_file) if args.state_file else MemorySnapshotStore()
    )
    server = SyncRoomServer(
        name=args.name, store=store, config=config, search_provider=search
    )

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    try:
        await server.start_server(args.host, args.port, advertise=args.advertise)
        _ = await stop_event.wait()
        logger.info("Shutting down")
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
        await server.stop_server()
    return 0


def main() -> int:
    """Run the sync room server."""
    return asyncio.run(main_async(sys.argv[1:]))


if __name__ == "__main__":  # pragma: no cover - CLI entry
    raise SystemExit(main())
