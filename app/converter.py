"""Spotify → YouTube conversion pipeline.

convert(tracks)
  1. Group duplicate tracks by identity (one lookup per identity)
  2. Serve what the search cache already knows
  3. Budget the remaining searches against the quota tracker
  4. Search the rest in waves of ``batch_size`` concurrent single searches,
     re-checking quota between waves
  5. Give every skipped or failed track a search-page fallback
  6. Sweep: anything still without a top match becomes a fallback too
  7. Summarize

Per-track failures never abort the run; only an empty or malformed
track list is rejected.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from app.cache import SearchCache
from app.quota import QuotaTracker
from app.youtube_client import QuotaExceeded, SearchError, YouTubeClient
from core.matching import cache_key, group_by_identity
from core.models import ConversionOutput, ConversionResult, MatchCandidate, Track, YouTubeMatch
from core.results import (
    REASON_ERROR,
    REASON_NO_MATCH,
    REASON_QUOTA,
    fallback_result,
    match_result,
    summarize,
)

logger = logging.getLogger(__name__)

REASON_CANCELLED = "Conversion cancelled"

# (matches, fallback_reason, error) — matches is None when the search failed
_Outcome = Tuple[Optional[List[MatchCandidate]], Optional[str], Optional[str]]


class InvalidInput(ValueError):
    """Raised for an empty or malformed track list, before any side effect."""


def parse_tracks(raw: Sequence[Any]) -> List[Track]:
    """Validate raw track dicts (or ``Track`` objects) into ``Track`` models."""
    if not raw:
        raise InvalidInput("Tracks array is required and must not be empty")
    tracks: List[Track] = []
    for i, item in enumerate(raw):
        if isinstance(item, Track):
            tracks.append(item)
            continue
        try:
            tracks.append(Track.model_validate(item))
        except ValidationError as exc:
            first = exc.errors()[0]
            field = ".".join(str(p) for p in first["loc"]) or "track"
            raise InvalidInput(f"Invalid track at index {i}: {field} — {first['msg']}") from exc
    return tracks


class Converter:
    """Quota-budgeted, cache-first conversion of a track list."""

    def __init__(
        self,
        youtube: YouTubeClient,
        cache: SearchCache,
        quota: QuotaTracker,
        *,
        batch_size: int = 5,
        max_results: int = 5,
        throttle: float = 0.05,
    ):
        self.youtube = youtube
        self.cache = cache
        self.quota = quota
        self.batch_size = batch_size
        self.max_results = max_results
        self.throttle = throttle

    async def convert(
        self,
        tracks: Sequence[Any],
        *,
        cancel: Optional[asyncio.Event] = None,
    ) -> ConversionOutput:
        """Convert *tracks*; ``results[i]`` always belongs to ``tracks[i]``."""
        tracks = parse_tracks(tracks)
        unique, indices = group_by_identity(tracks)
        results: List[Optional[ConversionResult]] = [None] * len(tracks)

        first_seen = dict(unique)
        ident_of = {i: ident for ident, idxs in indices.items() for i in idxs}

        def fill(ident: str, build) -> None:
            for i in indices[ident]:
                results[i] = build(tracks[i])

        def fill_fallback(ident: str, reason: str, error: Optional[str] = None) -> None:
            # one placeholder per identity, spelled like its first occurrence
            youtube = fallback_result(first_seen[ident], reason, error).youtube
            fill(ident, lambda t: ConversionResult(original=t, youtube=youtube))

        # ── Cache pass ──────────────────────────────────────────
        misses: List[Tuple[str, Track]] = []
        for ident, track in unique:
            cached = self.cache.get(cache_key(track.name, track.artists))
            if cached is None:
                misses.append((ident, track))
            else:
                fill(ident, lambda t, m=cached: match_result(t, m))

        # ── Budget pass ─────────────────────────────────────────
        self.quota.check_and_maybe_reset()
        remaining = 0 if self.quota.is_exhausted() else self.quota.remaining_searches()
        searchable = misses[:remaining]
        skipped = misses[remaining:]
        cancelled: List[Tuple[str, Track]] = []
        searched = 0
        if skipped:
            logger.warning(
                "Quota allows %d of %d searches; %d tracks get fallbacks",
                len(searchable), len(misses), len(skipped),
            )

        # ── Search waves ────────────────────────────────────────
        for start in range(0, len(searchable), self.batch_size):
            if cancel is not None and cancel.is_set():
                cancelled = searchable[start:]
                break
            self.quota.check_and_maybe_reset()
            if self.quota.is_exhausted():
                logger.warning(
                    "Quota exhausted mid-run; skipping %d remaining searches",
                    len(searchable) - start,
                )
                skipped.extend(searchable[start:])
                break

            wave = searchable[start : start + self.batch_size]
            searched += len(wave)
            outcomes = await asyncio.gather(
                *(self._search(track, slot) for slot, (_, track) in enumerate(wave))
            )
            for (ident, _), (matches, reason, error) in zip(wave, outcomes):
                if matches is not None:
                    fill(ident, lambda t, m=matches: match_result(t, m))
                else:
                    fill_fallback(ident, reason, error)

        # ── Fallbacks for unsearched tracks ─────────────────────
        for ident, _ in skipped:
            fill_fallback(ident, REASON_QUOTA)
        for ident, _ in cancelled:
            fill_fallback(ident, REASON_CANCELLED)

        # ── Completion sweep ────────────────────────────────────
        final: List[ConversionResult] = []
        swept: Dict[str, YouTubeMatch] = {}
        for i, result in enumerate(results):
            if result is None or result.youtube.top_match is None:
                ident = ident_of[i]
                if result is None:
                    logger.error("Track %d (%r) reached the sweep without a result", i, tracks[i].name)
                elif ident not in swept:
                    logger.warning("No YouTube match for %r; using search fallback", tracks[i].name)
                if ident not in swept:
                    error = result.youtube.error if result is not None else None
                    swept[ident] = fallback_result(first_seen[ident], REASON_NO_MATCH, error).youtube
                result = ConversionResult(original=tracks[i], youtube=swept[ident])
            final.append(result)

        summary = summarize(final, self.quota.units_used, self.quota.daily_limit)
        logger.info(
            "Converted %d tracks (%d unique, %d cached, %d searched): %s genuine, quota %d/%d",
            summary.total, len(unique), len(unique) - len(misses), searched,
            summary.success_rate, summary.quota_used, summary.quota_limit,
        )
        return ConversionOutput(results=final, summary=summary)

    async def _search(self, track: Track, slot: int) -> _Outcome:
        """One throttled, cached search; failures become a fallback outcome."""
        await asyncio.sleep(self.throttle * (slot + 1))
        key = cache_key(track.name, track.artists)
        try:
            matches = await self.youtube.search_single(track.name, track.artists, self.max_results)
        except QuotaExceeded as exc:
            logger.warning("Quota error searching %r: %s", track.name, exc)
            self.cache.set(key, [])
            return None, REASON_QUOTA, str(exc)
        except SearchError as exc:
            logger.warning(
                "Error searching YouTube for %r by %s: %s",
                track.name, ", ".join(track.artists), exc,
            )
            return None, REASON_ERROR, str(exc)

        self.cache.set(key, matches)
        return matches, None, None
