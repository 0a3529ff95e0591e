"""Tests for fallback synthesis and the conversion summary."""

from __future__ import annotations

from urllib.parse import unquote

from core.models import MatchCandidate, Track
from core.results import (
    REASON_QUOTA,
    fallback_candidate,
    fallback_result,
    fallback_url,
    match_result,
    summarize,
)


def _track(name: str = "Imagine", artists=("John Lennon",)) -> Track:
    return Track(name=name, artists=list(artists))


def _match(vid: str = "abc") -> MatchCandidate:
    return MatchCandidate(video_id=vid, title="t", url=f"https://www.youtube.com/watch?v={vid}")


# ---------------------------------------------------------------------------
# Fallbacks
# ---------------------------------------------------------------------------

def test_fallback_url_is_deterministic():
    a = fallback_url("Imagine", ["John Lennon"])
    b = fallback_url("Imagine", ["John Lennon"])
    assert a == b
    assert a.startswith("https://www.youtube.com/results?search_query=")


def test_fallback_url_encodes_query():
    url = fallback_url("Rock & Roll", ["AC/DC"])
    query = url.split("search_query=", 1)[1]
    assert "&" not in query and "/" not in query and " " not in query
    assert unquote(query) == "Rock & Roll AC/DC official audio"


def test_fallback_candidate_shape():
    c = fallback_candidate(_track())
    assert c.is_fallback is True
    assert c.video_id is None
    assert c.url == fallback_url("Imagine", ["John Lennon"])


def test_fallback_result_is_sole_top_match():
    r = fallback_result(_track(), REASON_QUOTA, error="boom")
    assert r.youtube.matches == [r.youtube.top_match]
    assert r.youtube.is_fallback is True
    assert r.youtube.fallback_reason == REASON_QUOTA
    assert r.youtube.error == "boom"


def test_match_result_top_is_first():
    r = match_result(_track(), [_match("1"), _match("2")])
    assert r.youtube.top_match.video_id == "1"
    assert r.youtube.is_fallback is False


def test_match_result_empty_has_no_top():
    r = match_result(_track(), [])
    assert r.youtube.top_match is None


# ---------------------------------------------------------------------------
# summarize
# ---------------------------------------------------------------------------

def test_summary_counts_fallbacks_as_successful_but_not_in_rate():
    results = [
        match_result(_track("a"), [_match()]),
        fallback_result(_track("b"), REASON_QUOTA),
        fallback_result(_track("c"), REASON_QUOTA),
        match_result(_track("d"), [_match()]),
    ]
    s = summarize(results, quota_used=200, quota_limit=10000)
    assert s.total == 4
    assert s.successful == 4
    assert s.failed == 0
    assert s.success_rate == "50.0%"
    assert s.quota_used == 200


def test_summary_wire_names():
    s = summarize([match_result(_track(), [_match()])], 100, 10000)
    data = s.model_dump(by_alias=True)
    assert data["successRate"] == "100.0%"
    assert data["quotaLimit"] == 10000
