"""Spotify Web API fetch adapter (client-credentials, read-only).

Functions:
- extract_playlist_id  → playlist id from an open.spotify.com URL or URI
- get_access_token     → app token, cached until shortly before expiry
- get_playlist_tracks  → every track of a public playlist as ``Track``
"""

from __future__ import annotations

import logging
import re
import time

import httpx

from core.models import Track

logger = logging.getLogger(__name__)

_API_BASE = "https://api.spotify.com/v1"
_TOKEN_URL = "https://accounts.spotify.com/api/token"

_PLAYLIST_ID_RE = re.compile(r"(?:playlist/|playlist:)([a-zA-Z0-9]+)")

_TRACK_FIELDS = (
    "items(track(name,type,is_local,duration_ms,artists(name),album(name),external_ids(isrc))),next"
)

_STATUS_MESSAGES = {
    401: "Spotify authentication failed — check SPOTIFY_CLIENT_ID / SPOTIFY_CLIENT_SECRET",
    403: "Playlist is private or access is forbidden",
    404: "Playlist not found",
    429: "Spotify rate limit exceeded — please try again shortly",
}

# (access_token, expires_at)
_token_cache: dict[str, tuple[str, float]] = {}


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class SpotifyAPIError(Exception):
    """Raised when a Spotify API request fails."""

    def __init__(self, status_code: int, detail: str):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"Spotify API error {status_code}: {detail}")


class InvalidPlaylistUrl(ValueError):
    """The URL does not point at a Spotify playlist."""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def extract_playlist_id(url: str) -> str:
    """Supports ``https://open.spotify.com/playlist/{id}`` and ``spotify:playlist:{id}``."""
    match = _PLAYLIST_ID_RE.search(url or "")
    if not match:
        raise InvalidPlaylistUrl("Invalid Spotify playlist URL")
    return match.group(1)


def _raise_for_status(resp: httpx.Response) -> None:
    if resp.status_code < 400:
        return
    detail = _STATUS_MESSAGES.get(resp.status_code)
    if detail is None:
        try:
            detail = resp.json().get("error", {}).get("message") or resp.reason_phrase
        except ValueError:
            detail = resp.reason_phrase
        detail = f"Spotify API error: {detail}"
    raise SpotifyAPIError(resp.status_code, detail)


def _to_track(raw: dict) -> Track:
    return Track(
        name=raw.get("name") or "(untitled)",
        artists=[a.get("name", "") for a in raw.get("artists", [])] or ["Unknown Artist"],
        album=(raw.get("album") or {}).get("name"),
        duration_ms=raw.get("duration_ms"),
        isrc=(raw.get("external_ids") or {}).get("isrc"),
    )


# ---------------------------------------------------------------------------
# Token
# ---------------------------------------------------------------------------

async def get_access_token(
    client_id: str, client_secret: str, *, timeout: float = 10.0
) -> str:
    """Return an app access token, reusing the cached one when still valid."""
    if not client_id or not client_secret:
        raise SpotifyAPIError(
            500,
            "Spotify credentials not configured. Please set SPOTIFY_CLIENT_ID "
            "and SPOTIFY_CLIENT_SECRET in .env",
        )

    cached = _token_cache.get(client_id)
    if cached and cached[1] > time.time() + 60:
        return cached[0]

    async with httpx.AsyncClient(timeout=timeout) as client:
        resp = await client.post(
            _TOKEN_URL,
            data={"grant_type": "client_credentials"},
            auth=(client_id, client_secret),
        )

    if resp.status_code != 200:
        logger.warning("Spotify token request failed (%s): %s", resp.status_code, resp.text)
        raise SpotifyAPIError(401, _STATUS_MESSAGES[401])

    data = resp.json()
    token = data["access_token"]
    _token_cache[client_id] = (token, time.time() + data.get("expires_in", 3600))
    return token


# ---------------------------------------------------------------------------
# Fetch all tracks (paged)
# ---------------------------------------------------------------------------

async def get_playlist_tracks(
    url: str,
    *,
    client_id: str,
    client_secret: str,
    timeout: float = 10.0,
) -> list[Track]:
    """Fetch every track of the playlist at *url*.

    Unavailable placeholders, local files and podcast episodes are skipped.
    """
    playlist_id = extract_playlist_id(url)
    token = await get_access_token(client_id, client_secret, timeout=timeout)

    tracks: list[Track] = []
    next_url: str | None = (
        f"{_API_BASE}/playlists/{playlist_id}/tracks?limit=100&fields={_TRACK_FIELDS}"
    )
    headers = {"Authorization": f"Bearer {token}"}

    async with httpx.AsyncClient(timeout=timeout) as client:
        while next_url:
            try:
                resp = await client.get(next_url, headers=headers)
            except httpx.TimeoutException as exc:
                raise SpotifyAPIError(504, "Spotify API request timed out") from exc
            except httpx.HTTPError as exc:
                raise SpotifyAPIError(502, f"Spotify API request failed: {exc}") from exc
            _raise_for_status(resp)
            data = resp.json()

            for item in data.get("items", []):
                raw = item.get("track")
                if raw is None or raw.get("is_local", False):
                    continue
                if raw.get("type", "track") != "track":
                    continue
                tracks.append(_to_track(raw))

            next_url = data.get("next")  # None when last page

    logger.info("Fetched %d tracks from Spotify playlist %s", len(tracks), playlist_id)
    return tracks
