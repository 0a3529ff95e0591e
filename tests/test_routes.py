"""Tests for the playlist HTTP routes (app/routes_playlist.py).

Services are built per test against a fake YouTube API and injected with
``app.dependency_overrides``; Spotify calls are patched out.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.services import get_services
from app.spotify import SpotifyAPIError
from core.models import Track


@pytest.fixture
def client(services):
    app.dependency_overrides[get_services] = lambda: services
    yield TestClient(app)
    app.dependency_overrides.clear()


IMAGINE = {"name": "Imagine", "artists": ["John Lennon"], "album": "Imagine", "durationMs": 183000, "isrc": None}
SPOTIFY_URL = "https://open.spotify.com/playlist/37i9dQZF1DXcBWIGoYBM5M"


# ---------------------------------------------------------------------------
# POST /playlist/fetch
# ---------------------------------------------------------------------------

def test_fetch_returns_tracks(client):
    tracks = [Track(name="Imagine", artists=["John Lennon"], duration_ms=183000)]
    with patch("app.routes_playlist.get_playlist_tracks", new_callable=AsyncMock, return_value=tracks):
        resp = client.post("/playlist/fetch", json={"url": SPOTIFY_URL, "platform": "Spotify"})

    assert resp.status_code == 200
    data = resp.json()
    assert data["count"] == 1
    assert data["tracks"][0]["durationMs"] == 183000


@pytest.mark.parametrize(
    "body, status",
    [
        ({"platform": "spotify"}, 400),
        ({"url": SPOTIFY_URL}, 400),
        ({"url": SPOTIFY_URL, "platform": "tidal"}, 400),
        ({"url": SPOTIFY_URL, "platform": "apple-music"}, 501),
    ],
)
def test_fetch_rejects_bad_input(client, body, status):
    assert client.post("/playlist/fetch", json=body).status_code == status


def test_fetch_invalid_url(client):
    resp = client.post("/playlist/fetch", json={"url": "https://example.com", "platform": "spotify"})
    assert resp.status_code == 400
    assert "Invalid Spotify playlist URL" in resp.json()["detail"]


@pytest.mark.parametrize("upstream, expected", [(404, 404), (403, 403), (429, 429), (502, 500)])
def test_fetch_maps_upstream_errors(client, upstream, expected):
    err = SpotifyAPIError(upstream, "upstream says no")
    with patch("app.routes_playlist.get_playlist_tracks", new_callable=AsyncMock, side_effect=err):
        resp = client.post("/playlist/fetch", json={"url": SPOTIFY_URL, "platform": "spotify"})
    assert resp.status_code == expected
    assert resp.json()["detail"] == "upstream says no"


# ---------------------------------------------------------------------------
# POST /playlist/youtube/convert
# ---------------------------------------------------------------------------

def test_convert_returns_results_and_summary(client):
    resp = client.post("/playlist/youtube/convert", json={"tracks": [IMAGINE]})

    assert resp.status_code == 200
    data = resp.json()
    assert "playlistId" not in data
    yt = data["results"][0]["youtube"]
    assert yt["topMatch"]["videoId"] == "imagine-john-lennon-0"
    assert yt["topMatch"]["isFallback"] is False
    assert data["results"][0]["original"] == IMAGINE
    assert data["summary"] == {
        "total": 1,
        "successful": 1,
        "failed": 0,
        "successRate": "100.0%",
        "quotaUsed": 100,
        "quotaLimit": 10000,
    }


@pytest.mark.parametrize(
    "body",
    [{"tracks": []}, {}, {"tracks": "nope"}, {"tracks": [{"name": "x"}]}],
)
def test_convert_rejects_malformed_tracks(client, fake_youtube, body):
    resp = client.post("/playlist/youtube/convert", json=body)
    assert resp.status_code == 400
    assert fake_youtube.requests == []


def test_convert_with_source_url_is_shareable(client):
    resp = client.post(
        "/playlist/youtube/convert", json={"tracks": [IMAGINE], "spotifyUrl": SPOTIFY_URL}
    )
    playlist_id = resp.json()["playlistId"]
    assert len(playlist_id) == 12

    shared = client.get(f"/playlist/youtube/{playlist_id}")
    assert shared.status_code == 200
    record = shared.json()
    assert record["sourceUrl"] == SPOTIFY_URL
    assert "createdAt" in record
    assert record["results"][0]["youtube"]["topMatch"]["videoId"] == "imagine-john-lennon-0"


def test_storage_stats_counts_shared_playlists(client):
    assert client.get("/playlist/youtube/storage/stats").json() == {"backend": "memory", "keys": 0}

    client.post("/playlist/youtube/convert", json={"tracks": [IMAGINE], "spotifyUrl": SPOTIFY_URL})

    assert client.get("/playlist/youtube/storage/stats").json() == {"backend": "memory", "keys": 1}


def test_shared_playlist_not_found(client):
    resp = client.get("/playlist/youtube/doesnotexist")
    assert resp.status_code == 404


def test_convert_rate_limited(client, services):
    services.rate_limiter.limits["conversion"] = 2
    for _ in range(2):
        assert client.post("/playlist/youtube/convert", json={"tracks": [IMAGINE]}).status_code == 200

    resp = client.post("/playlist/youtube/convert", json={"tracks": [IMAGINE]})
    assert resp.status_code == 429
    assert "Retry-After" in resp.headers
    assert "Too many conversion requests" in resp.json()["detail"]


# ---------------------------------------------------------------------------
# Quota and cache endpoints
# ---------------------------------------------------------------------------

def test_quota_status_and_reset(client):
    client.post("/playlist/youtube/convert", json={"tracks": [IMAGINE]})

    status = client.get("/playlist/youtube/quota/status").json()
    assert status["quotaUsed"] == 100
    assert status["quotaRemaining"] == 9900
    assert status["searchesUsed"] == 1
    assert status["searchesRemaining"] == 89
    assert status["quotaExceeded"] is False
    assert "lastResetDate" in status

    reset = client.post("/playlist/youtube/quota/reset").json()
    assert reset["previousUsage"] == 100
    assert reset["currentUsage"] == 0
    assert client.get("/playlist/youtube/quota/status").json()["quotaUsed"] == 0


def test_cache_stats_and_clear(client):
    client.post("/playlist/youtube/convert", json={"tracks": [IMAGINE]})
    client.post("/playlist/youtube/convert", json={"tracks": [IMAGINE]})

    stats = client.get("/playlist/youtube/cache/stats").json()
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["keyCount"] == 1

    assert client.post("/playlist/youtube/cache/clear").status_code == 200
    assert client.get("/playlist/youtube/cache/stats").json()["keyCount"] == 0


# ---------------------------------------------------------------------------
# GET /playlist/youtube/video/{video_id}
# ---------------------------------------------------------------------------

def test_video_details(client, fake_youtube):
    fake_youtube.videos["abc"] = {
        "id": "abc",
        "snippet": {"title": "Imagine", "channelTitle": "Lennon"},
        "contentDetails": {"duration": "PT3M4S"},
        "statistics": {},
    }
    resp = client.get("/playlist/youtube/video/abc")
    assert resp.status_code == 200
    assert resp.json()["duration"] == "PT3M4S"

    assert client.get("/playlist/youtube/video/missing").status_code == 404


def test_video_details_refused_when_quota_exhausted(client, services, fake_youtube):
    services.quota.mark_exceeded()
    assert client.get("/playlist/youtube/video/abc").status_code == 429
    assert fake_youtube.requests == []
