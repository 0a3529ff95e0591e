"""YouTube Data API v3 search adapter.

Features:
  - Single-track search (``search.list``, music category, relevance order)
  - OR-combined search for up to 5 tracks at the flat cost of one search
  - Typed failures: InvalidRequest / QuotaExceeded / ProviderError
  - Quota attribution through the shared ``QuotaTracker``
  - Bounded request timeout (timeouts surface as ProviderError)
"""

from __future__ import annotations

import logging
from typing import Dict, List, Sequence

import httpx

from app.quota import QuotaTracker
from core.matching import attribute_batch_results, build_batch_query, build_query
from core.models import MatchCandidate, Track
from core.results import YOUTUBE_WATCH_URL

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

_YOUTUBE_API = "https://www.googleapis.com/youtube/v3"
_MUSIC_CATEGORY_ID = "10"
_MAX_BATCH_TRACKS = 5
_VIDEO_DETAILS_COST = 1

_QUOTA_REASONS = {"quotaExceeded", "dailyLimitExceeded", "forbidden"}


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class SearchError(Exception):
    """Base class for YouTube adapter failures."""

    def __init__(self, message: str, status_code: int = 0):
        self.status_code = status_code
        super().__init__(message)


class InvalidRequest(SearchError):
    """The query was malformed or rejected as invalid (400)."""


class QuotaExceeded(SearchError):
    """The provider refused the call for quota or permission reasons."""


class ProviderError(SearchError):
    """Any other upstream failure, including timeouts."""


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class YouTubeClient:
    """Thin async wrapper around ``search.list`` and ``videos.list``."""

    def __init__(
        self,
        api_key: str,
        quota: QuotaTracker,
        *,
        timeout: float = 10.0,
        base_url: str = _YOUTUBE_API,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.quota = quota
        self._http = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Low-level request
    # ------------------------------------------------------------------

    async def _get(self, path: str, params: dict) -> dict:
        if not self.api_key:
            raise ProviderError("YouTube API key not configured. Please set YOUTUBE_API_KEY in .env")

        try:
            resp = await self._http.get(path, params={**params, "key": self.api_key})
        except httpx.TimeoutException as exc:
            raise ProviderError(f"YouTube API request timed out ({path})") from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"YouTube API request failed: {exc}") from exc

        if resp.status_code < 400:
            try:
                data = resp.json()
            except ValueError as exc:
                raise ProviderError(f"YouTube API returned a non-JSON body ({path})", resp.status_code) from exc
            if not isinstance(data, dict):
                raise ProviderError(f"YouTube API returned an unexpected payload ({path})", resp.status_code)
            return data

        message, reason = _error_details(resp)

        if resp.status_code == 400:
            raise InvalidRequest(f"YouTube API error: Invalid request - {message}", 400)

        if resp.status_code == 403 or reason in _QUOTA_REASONS:
            self.quota.mark_exceeded()
            raise QuotaExceeded(
                "YouTube API quota exceeded or access forbidden. "
                "Please check your API key and quota limits at https://console.cloud.google.com",
                resp.status_code,
            )

        if resp.status_code == 404:
            raise ProviderError("YouTube API endpoint not found. Please check the API configuration.", 404)

        raise ProviderError(f"YouTube API error ({resp.status_code}): {message}", resp.status_code)

    async def _search(self, query: str, max_results: int) -> List[MatchCandidate]:
        if not query.strip():
            raise InvalidRequest("Search query must not be empty", 400)

        data = await self._get(
            "/search",
            {
                "part": "snippet",
                "q": query,
                "type": "video",
                "videoCategoryId": _MUSIC_CATEGORY_ID,
                "maxResults": max_results,
                "safeSearch": "none",
                "order": "relevance",
            },
        )
        self.quota.record_usage(self.quota.search_cost)
        items = data.get("items") or []
        if not isinstance(items, list):
            raise ProviderError("YouTube API returned an unexpected items field", 200)
        logger.debug("YouTube search %r → %d items", query, len(items))
        return [
            _to_candidate(item)
            for item in items
            if isinstance(item, dict) and (item.get("id") or {}).get("videoId")
        ]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def search_single(
        self, name: str, artists: Sequence[str], max_results: int = 5
    ) -> List[MatchCandidate]:
        """Search for one track; results in provider relevance order."""
        return await self._search(build_query(name, artists), max_results)

    async def search_batch(
        self, tracks: Sequence[Track], max_results: int = 5
    ) -> Dict[str, List[MatchCandidate]]:
        """One OR-combined search for up to 5 tracks.

        Returns identity → candidates whose title mentions that track's
        name or one of its artists.
        """
        if not tracks:
            return {}
        if len(tracks) > _MAX_BATCH_TRACKS:
            raise InvalidRequest(f"A batch search takes at most {_MAX_BATCH_TRACKS} tracks", 400)

        # Ask for enough results that every track has a chance at max_results.
        pool = min(50, max_results * len(tracks))
        candidates = await self._search(build_batch_query(tracks), pool)
        return attribute_batch_results(tracks, candidates, max_results)

    async def get_video_details(self, video_id: str) -> dict:
        """Return snippet, duration and statistics for one video."""
        data = await self._get(
            "/videos",
            {"part": "snippet,contentDetails,statistics", "id": video_id},
        )
        self.quota.record_usage(_VIDEO_DETAILS_COST)

        items = data.get("items") or []
        if not items:
            raise ProviderError("Video not found", 404)

        video = items[0]
        snippet = video.get("snippet", {})
        stats = video.get("statistics", {})
        return {
            "videoId": video["id"],
            "title": snippet.get("title", ""),
            "channelTitle": snippet.get("channelTitle", ""),
            "duration": video.get("contentDetails", {}).get("duration"),
            "viewCount": stats.get("viewCount"),
            "likeCount": stats.get("likeCount"),
            "thumbnailUrl": _thumbnail(snippet),
            "url": f"{YOUTUBE_WATCH_URL}{video['id']}",
        }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _error_details(resp: httpx.Response) -> tuple[str, str]:
    """Pull (message, first reason) out of a Google API error body."""
    try:
        error = resp.json().get("error", {})
    except ValueError:
        return resp.text or resp.reason_phrase, ""
    reasons = [e.get("reason", "") for e in error.get("errors", [])]
    return error.get("message") or resp.reason_phrase, reasons[0] if reasons else ""


def _thumbnail(snippet: dict) -> str | None:
    thumbs = snippet.get("thumbnails", {})
    for size in ("medium", "high", "default"):
        if size in thumbs:
            return thumbs[size].get("url")
    return None


def _to_candidate(item: dict) -> MatchCandidate:
    snippet = item.get("snippet", {})
    video_id = item["id"]["videoId"]
    return MatchCandidate(
        video_id=video_id,
        title=snippet.get("title", ""),
        channel_title=snippet.get("channelTitle", ""),
        channel_id=snippet.get("channelId"),
        thumbnail_url=_thumbnail(snippet),
        published_at=snippet.get("publishedAt"),
        url=f"{YOUTUBE_WATCH_URL}{video_id}",
    )
