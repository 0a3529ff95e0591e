"""Result assembly — fallback synthesis and conversion summary. No I/O."""

from __future__ import annotations

from typing import List, Optional, Sequence
from urllib.parse import quote

from core.models import (
    ConversionResult,
    ConversionSummary,
    MatchCandidate,
    Track,
    YouTubeMatch,
)

YOUTUBE_WATCH_URL = "https://www.youtube.com/watch?v="
YOUTUBE_SEARCH_URL = "https://www.youtube.com/results?search_query="

REASON_QUOTA = "API quota reached"
REASON_ERROR = "YouTube search failed"
REASON_NO_MATCH = "No matching videos found"


# ---------------------------------------------------------------------------
# Fallbacks
# ---------------------------------------------------------------------------

def fallback_url(name: str, artists: Sequence[str]) -> str:
    """Deterministic YouTube search-page URL for a track."""
    query = f"{name} {' '.join(artists)} official audio"
    return YOUTUBE_SEARCH_URL + quote(query, safe="")


def fallback_candidate(track: Track) -> MatchCandidate:
    return MatchCandidate(
        video_id=None,
        title=f"{track.name} - {', '.join(track.artists)}",
        channel_title="YouTube Search",
        url=fallback_url(track.name, track.artists),
        is_fallback=True,
    )


def fallback_result(
    track: Track, reason: str, error: Optional[str] = None
) -> ConversionResult:
    """Result whose sole match is the search-page placeholder."""
    candidate = fallback_candidate(track)
    return ConversionResult(
        original=track,
        youtube=YouTubeMatch(
            matches=[candidate],
            top_match=candidate,
            error=error,
            is_fallback=True,
            fallback_reason=reason,
        ),
    )


def match_result(track: Track, matches: Sequence[MatchCandidate]) -> ConversionResult:
    """Result built from real search candidates (possibly none)."""
    matches = list(matches)
    return ConversionResult(
        original=track,
        youtube=YouTubeMatch(
            matches=matches,
            top_match=matches[0] if matches else None,
            is_fallback=False if matches else None,
        ),
    )


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------

def is_genuine(result: ConversionResult) -> bool:
    top = result.youtube.top_match
    return top is not None and not top.is_fallback


def summarize(
    results: List[ConversionResult],
    quota_used: int,
    quota_limit: int,
) -> ConversionSummary:
    """Tally a finished conversion.

    ``successful`` counts every track that got *some* usable link,
    fallbacks included. ``success_rate`` only counts genuine matches.
    """
    total = len(results)
    successful = sum(1 for r in results if r.youtube.top_match is not None)
    genuine = sum(1 for r in results if is_genuine(r))
    rate = (genuine / total * 100) if total else 0.0
    return ConversionSummary(
        total=total,
        successful=successful,
        failed=total - successful,
        success_rate=f"{rate:.1f}%",
        quota_used=quota_used,
        quota_limit=quota_limit,
    )
