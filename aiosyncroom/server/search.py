"""Search collaborators turning a free-text query into playable media references."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

from aiohttp import ClientError, ClientSession, ClientTimeout

from aiosyncroom.models import MediaRef, Provider

from .validation import ARTIST_MAX_LENGTH, THUMBNAIL_MAX_LENGTH, TITLE_MAX_LENGTH

YOUTUBE_SEARCH_URL = "https://www.googleapis.com/youtube/v3/search"
DEFAULT_SEARCH_LIMIT = 10
DEFAULT_SEARCH_TIMEOUT = 10.0

logger = logging.getLogger(__name__)


class SearchError(Exception):
    """The search provider could not answer the query."""


class SearchProvider(Protocol):
    """Looks up media items for a query."""

    async def search(self, query: str, limit: int = DEFAULT_SEARCH_LIMIT) -> list[MediaRef]:
        """Return at most ``limit`` results for ``query``."""
        ...

    async def close(self) -> None:
        """Release resources held by the provider."""
        ...


class YouTubeSearchProvider:
    """Search provider backed by the YouTube Data API v3."""

    _api_key: str
    _session: ClientSession | None
    _owns_session: bool
    _timeout: float

    def __init__(
        self,
        api_key: str,
        *,
        session: ClientSession | None = None,
        timeout: float = DEFAULT_SEARCH_TIMEOUT,
    ) -> None:
        """
        Initialize the provider.

        Args:
            api_key: YouTube Data API key.
            session: Optional aiohttp session to reuse; one is created lazily otherwise.
            timeout: Upper bound in seconds for a single search request.
        """
        if not api_key:
            raise ValueError("A YouTube API key is required")
        self._api_key = api_key
        self._session = session
        self._owns_session = session is None
        self._timeout = timeout

    async def search(self, query: str, limit: int = DEFAULT_SEARCH_LIMIT) -> list[MediaRef]:
        """Return at most ``limit`` videos matching ``query``."""
        if self._session is None:
            self._session = ClientSession()
        params = {
            "part": "snippet",
            "type": "video",
            "q": query,
            "maxResults": str(limit),
            "key": self._api_key,
        }
        try:
            async with self._session.get(
                YOUTUBE_SEARCH_URL, params=params, timeout=ClientTimeout(total=self._timeout)
            ) as response:
                if response.status != 200:
                    raise SearchError(f"YouTube search failed with status {response.status}")
                data = await response.json()
        except (ClientError, asyncio.TimeoutError, ValueError) as err:
            raise SearchError(f"YouTube search failed: {err}") from err
        if not isinstance(data, dict):
            raise SearchError("YouTube search returned an unexpected body")

        results = [ref for item in data.get("items", []) if (ref := _parse_item(item))]
        logger.debug("YouTube search for %r returned %d result(s)", query, len(results))
        return results[:limit]

    async def close(self) -> None:
        """Close the aiohttp session if it was created by this provider."""
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None


def _parse_item(item: dict[str, Any]) -> MediaRef | None:
    video_id = item.get("id", {}).get("videoId")
    snippet = item.get("snippet", {})
    title = snippet.get("title")
    if not video_id or not title:
        return None
    thumbnails = snippet.get("thumbnails", {})
    thumbnail = next(
        (
            thumbnails[size]["url"]
            for size in ("high", "medium", "default")
            if "url" in thumbnails.get(size, {})
        ),
        None,
    )
    artist = snippet.get("channelTitle") or None
    return MediaRef(
        provider=Provider.YOUTUBE.value,
        id=video_id,
        title=title[:TITLE_MAX_LENGTH],
        thumbnail=thumbnail[:THUMBNAIL_MAX_LENGTH] if thumbnail else None,
        artist=artist[:ARTIST_MAX_LENGTH] if artist else None,
    )
