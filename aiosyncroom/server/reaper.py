"""Periodic eviction of abandoned sessions."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import suppress
from enum import Enum

from .session import Session

logger = logging.getLogger(__name__)


class InactivityVerdict(Enum):
    """What a sweep should do with a session."""

    KEEP = "keep"
    WARN = "warn"
    """Send an inactivity warning and mark it as sent."""
    EVICT = "evict"
    """Close the session and remove it from the registry."""


def inactivity_verdict(
    session: Session, now: float, *, timeout: float, warning_window: float
) -> InactivityVerdict:
    """
    Decide the fate of ``session`` at ``now``.

    Sessions inactive for at least ``timeout`` seconds are evicted regardless of how many
    participants they have. Sessions within ``warning_window`` seconds of the timeout get a
    single warning per inactivity window.
    """
    inactive = session.inactive_for(now)
    if inactive >= timeout:
        return InactivityVerdict.EVICT
    if inactive >= timeout - warning_window and not session.warning_issued:
        return InactivityVerdict.WARN
    return InactivityVerdict.KEEP


class SessionReaper:
    """Runs a sweep callback on a fixed interval until stopped."""

    def __init__(self, sweep: Callable[[], Awaitable[None]], interval: float) -> None:
        """
        Initialize the reaper.

        Args:
            sweep: Coroutine function performing a single pass over all sessions.
            interval: Seconds between the end of one pass and the start of the next.
        """
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._sweep = sweep
        self._interval = interval
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        """Whether the reaper task is active."""
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start sweeping on the running loop."""
        if not self.running:
            logger.debug("Starting session reaper, interval=%ss", self._interval)
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        """Stop sweeping."""
        if self._task is not None and not self._task.done():
            _ = self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
        self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self._sweep()
            except Exception:
                # NOTE: Intentional catch-all, a failing pass must not end the reaper.
                logger.exception("Session sweep failed")
