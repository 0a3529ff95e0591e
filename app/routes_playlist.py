"""Playlist routes: Spotify fetch, YouTube conversion, quota and sharing."""

from __future__ import annotations

import logging
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from app.converter import InvalidInput
from app.rate_limit import limit
from app.services import Services, get_services
from app.spotify import InvalidPlaylistUrl, SpotifyAPIError, get_playlist_tracks
from app.storage import generate_playlist_id
from app.youtube_client import QuotaExceeded, SearchError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/playlist", tags=["playlist"])


class FetchRequest(BaseModel):
    url: Optional[str] = None
    platform: Optional[str] = None


class ConvertRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    tracks: Optional[List[Any]] = None
    spotify_url: Optional[str] = None


# ---------------------------------------------------------------------------
# POST /playlist/fetch
# ---------------------------------------------------------------------------

@router.post("/fetch", dependencies=[limit("fetch")])
async def fetch_playlist(body: FetchRequest, services: Services = Depends(get_services)):
    """Fetch a source playlist and return its tracks."""
    if not body.url:
        raise HTTPException(status_code=400, detail="URL is required")
    if not body.platform:
        raise HTTPException(status_code=400, detail="Platform is required")

    platform = body.platform.lower()
    if platform == "apple-music":
        raise HTTPException(status_code=501, detail="Apple Music not yet implemented")
    if platform != "spotify":
        raise HTTPException(status_code=400, detail="Unsupported platform")

    settings = services.settings
    try:
        tracks = await get_playlist_tracks(
            body.url,
            client_id=settings.spotify_client_id,
            client_secret=settings.spotify_client_secret,
            timeout=settings.request_timeout,
        )
    except InvalidPlaylistUrl as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except SpotifyAPIError as exc:
        logger.warning("Spotify fetch failed for %s: %s", body.url, exc)
        status = exc.status_code if exc.status_code in (401, 403, 404, 429) else 500
        raise HTTPException(status_code=status, detail=exc.detail) from exc

    return JSONResponse(
        {
            "tracks": [t.model_dump(by_alias=True) for t in tracks],
            "count": len(tracks),
        }
    )


# ---------------------------------------------------------------------------
# Quota
# ---------------------------------------------------------------------------

@router.get("/youtube/quota/status", dependencies=[limit("general")])
async def quota_status(services: Services = Depends(get_services)):
    return JSONResponse(services.quota.status().model_dump(by_alias=True))


@router.post("/youtube/quota/reset", dependencies=[limit("general")])
async def quota_reset(services: Services = Depends(get_services)):
    """Operator override: zero today's quota usage."""
    previous = services.quota.reset()
    return JSONResponse(
        {
            "message": "YouTube quota counters reset",
            "previousUsage": previous,
            "currentUsage": services.quota.units_used,
            "quotaLimit": services.quota.daily_limit,
        }
    )


# ---------------------------------------------------------------------------
# Search cache
# ---------------------------------------------------------------------------

@router.get("/youtube/cache/stats", dependencies=[limit("general")])
async def cache_stats(services: Services = Depends(get_services)):
    return JSONResponse(services.cache.stats())


@router.post("/youtube/cache/clear", dependencies=[limit("general")])
async def cache_clear(services: Services = Depends(get_services)):
    services.cache.clear()
    return JSONResponse({"message": "YouTube search cache cleared"})


@router.get("/youtube/storage/stats", dependencies=[limit("general")])
async def storage_stats(services: Services = Depends(get_services)):
    """Active shared-playlist backend and how many live records it holds."""
    return JSONResponse(await services.store.stats())


# ---------------------------------------------------------------------------
# POST /playlist/youtube/convert
# ---------------------------------------------------------------------------

@router.post("/youtube/convert", dependencies=[limit("conversion")])
async def convert_to_youtube(body: ConvertRequest, services: Services = Depends(get_services)):
    """Match every track on YouTube; optionally store the result for sharing."""
    try:
        output = await services.converter.convert(body.tracks or [])
    except InvalidInput as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    payload = output.model_dump(by_alias=True)

    if body.spotify_url:
        playlist_id = generate_playlist_id(body.spotify_url)
        await services.store.save(playlist_id, payload, body.spotify_url)
        payload["playlistId"] = playlist_id

    return JSONResponse(payload)


# ---------------------------------------------------------------------------
# GET /playlist/youtube/video/{video_id}
# ---------------------------------------------------------------------------

@router.get("/youtube/video/{video_id}", dependencies=[limit("general")])
async def video_details(video_id: str, services: Services = Depends(get_services)):
    """Duration and statistics of one YouTube video (1 quota unit)."""
    services.quota.check_and_maybe_reset()
    if services.quota.is_exhausted():
        raise HTTPException(status_code=429, detail="YouTube API quota reached")
    try:
        details = await services.youtube.get_video_details(video_id)
    except QuotaExceeded as exc:
        raise HTTPException(status_code=429, detail=str(exc)) from exc
    except SearchError as exc:
        status = 404 if exc.status_code == 404 else 502
        raise HTTPException(status_code=status, detail=str(exc)) from exc
    return JSONResponse(details)


# ---------------------------------------------------------------------------
# GET /playlist/youtube/{playlist_id} — shared conversion
# ---------------------------------------------------------------------------

@router.get("/youtube/{playlist_id}", dependencies=[limit("shared")])
async def shared_playlist(playlist_id: str, services: Services = Depends(get_services)):
    record = await services.store.get(playlist_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Playlist not found or expired")
    return JSONResponse(record)
