"""Track identity, deduplication and batch-result attribution.

Pure business logic, no I/O:
- identity / cache keys (case- and whitespace-insensitive)
- grouping of duplicate input tracks by identity
- search query construction (single and OR-combined)
- distribution of a combined result set back to its tracks
"""

from __future__ import annotations

from typing import Dict, List, Sequence, Tuple

from core.models import MatchCandidate, Track

IDENTITY_SEPARATOR = "|"


def _norm(value: str) -> str:
    return " ".join(value.split()).lower()


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------

def track_identity(track: Track) -> str:
    """Key used to fold duplicate input tracks onto a single search.

    Only name and artists take part: two tracks that differ by album or
    duration are still the same identity.
    """
    artists = ",".join(_norm(a) for a in track.artists)
    return f"{_norm(track.name)}{IDENTITY_SEPARATOR}{artists}"


def cache_key(name: str, artists: Sequence[str]) -> str:
    """Search-cache key, e.g. ``imagine_john lennon``."""
    return f"{_norm(name)}_{_norm(' '.join(artists))}"


# ---------------------------------------------------------------------------
# Deduplication
# ---------------------------------------------------------------------------

def group_by_identity(
    tracks: Sequence[Track],
) -> Tuple[List[Tuple[str, Track]], Dict[str, List[int]]]:
    """Group input tracks by identity.

    Returns
    -------
    (unique, indices)
        - unique: ``(identity, track)`` pairs in first-seen order
        - indices: identity → every input index carrying it
    """
    unique: List[Tuple[str, Track]] = []
    indices: Dict[str, List[int]] = {}
    for i, track in enumerate(tracks):
        ident = track_identity(track)
        if ident not in indices:
            indices[ident] = []
            unique.append((ident, track))
        indices[ident].append(i)
    return unique, indices


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def build_query(name: str, artists: Sequence[str]) -> str:
    """``"track name artist1 artist2"``."""
    return " ".join([name.strip(), *(a.strip() for a in artists)]).strip()


def build_batch_query(tracks: Sequence[Track]) -> str:
    """OR-combine several track queries into one provider search."""
    return " | ".join(f'"{build_query(t.name, t.artists)}"' for t in tracks)


# ---------------------------------------------------------------------------
# Attribution
# ---------------------------------------------------------------------------

def title_matches_track(title: str, track: Track) -> bool:
    """True if the track name or any artist appears in *title* (case-insensitive)."""
    haystack = title.lower()
    needles = [track.name, *track.artists]
    return any(n.strip() and n.strip().lower() in haystack for n in needles)


def attribute_batch_results(
    tracks: Sequence[Track],
    candidates: Sequence[MatchCandidate],
    max_results: int,
) -> Dict[str, List[MatchCandidate]]:
    """Hand a combined result set back to the tracks that produced it.

    Each track keeps, in relevance order, at most *max_results* candidates
    whose title mentions the track name or one of its artists. A track
    with no overlap gets an empty list.
    """
    attributed: Dict[str, List[MatchCandidate]] = {}
    for track in tracks:
        ident = track_identity(track)
        if ident in attributed:
            continue
        picked = [c for c in candidates if title_matches_track(c.title, track)]
        attributed[ident] = picked[:max_results]
    return attributed
