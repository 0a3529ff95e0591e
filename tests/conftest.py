"""Shared fixtures: env-backed settings, a fake YouTube API, wired services."""

from __future__ import annotations

import re

import httpx
import pytest

from app.services import build_services


class FakeYouTube:
    """Programmable stand-in for the YouTube Data API.

    By default every search returns three videos whose titles echo the
    query. ``responses`` overrides the items for a given query; ``errors``
    maps a query to ``(status, reason)``; ``raw`` maps a query to a
    ``(status, body_text)`` pair sent verbatim.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.responses: dict[str, list[dict]] = {}
        self.errors: dict[str, tuple[int, str]] = {}
        self.raw: dict[str, tuple[int, str]] = {}
        self.fail_all: tuple[int, str] | None = None
        self.videos: dict[str, dict] = {}

    @property
    def search_queries(self) -> list[str]:
        return [r.url.params["q"] for r in self.requests if r.url.path.endswith("/search")]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.endswith("/videos"):
            vid = request.url.params["id"]
            return httpx.Response(200, json={"items": [self.videos[vid]] if vid in self.videos else []})

        q = request.url.params["q"]
        if q in self.raw:
            status, body = self.raw[q]
            return httpx.Response(status, content=body.encode())
        failure = self.errors.get(q) or self.fail_all
        if failure:
            status, reason = failure
            return httpx.Response(
                status,
                json={"error": {"code": status, "message": reason, "errors": [{"reason": reason}]}},
            )
        items = self.responses.get(q)
        if items is None:
            items = [make_item(q, n) for n in range(3)]
        return httpx.Response(200, json={"items": items})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def make_item(title: str, n: int = 0, video_id: str | None = None) -> dict:
    """A ``search.list`` item the way YouTube returns it."""
    vid = video_id or f"{re.sub(r'[^a-z0-9]+', '-', title.lower()).strip('-')}-{n}"
    return {
        "id": {"kind": "youtube#video", "videoId": vid},
        "snippet": {
            "title": f"{title} (Official Audio)" if n == 0 else f"{title} #{n}",
            "channelTitle": "Some Channel",
            "channelId": "UC123",
            "publishedAt": "2020-01-01T00:00:00Z",
            "thumbnails": {"medium": {"url": f"https://i.ytimg.com/vi/{vid}/mqdefault.jpg"}},
        },
    }


@pytest.fixture
def settings(monkeypatch, tmp_path):
    """Settings from env vars, with a temp database and zero throttling."""
    monkeypatch.setenv("DB_PATH", str(tmp_path / "test.db"))
    monkeypatch.setenv("SPOTIFY_CLIENT_ID", "test_cid")
    monkeypatch.setenv("SPOTIFY_CLIENT_SECRET", "test_secret")
    monkeypatch.setenv("YOUTUBE_API_KEY", "test_key")
    monkeypatch.setenv("YOUTUBE_THROTTLE_MS", "0")
    monkeypatch.setenv("STORAGE_BACKEND", "memory")
    from app.config import get_settings
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest.fixture
def fake_youtube():
    return FakeYouTube()


@pytest.fixture
def services(settings, fake_youtube):
    """Fully wired services talking to ``fake_youtube`` (memory storage)."""
    return build_services(settings, youtube_transport=fake_youtube.transport())
