"""In-process search cache with per-entry expiry.

Maps a normalized (track, artists) key to the candidate list a previous
search returned. Entries expire lazily on read; ``purge_expired`` can be
called to sweep them eagerly.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, List, Optional, Tuple

from core.models import MatchCandidate

logger = logging.getLogger(__name__)


class SearchCache:
    """Key/value store of ``MatchCandidate`` lists with a fixed TTL."""

    def __init__(
        self,
        ttl: float = 86400,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, Tuple[float, List[MatchCandidate]]] = {}
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[List[MatchCandidate]]:
        """Return the cached list for *key*, or None when absent/expired."""
        entry = self._entries.get(key)
        if entry is not None:
            expires_at, value = entry
            if self._clock() < expires_at:
                self.hits += 1
                logger.debug("Cache hit for %r", key)
                return list(value)
            del self._entries[key]
        self.misses += 1
        logger.debug("Cache miss for %r", key)
        return None

    def set(self, key: str, value: List[MatchCandidate], ttl: float | None = None) -> None:
        ttl = self.ttl if ttl is None else ttl
        self._entries[key] = (self._clock() + ttl, list(value))

    def purge_expired(self) -> int:
        """Drop every expired entry; return how many were removed."""
        now = self._clock()
        stale = [k for k, (exp, _) in self._entries.items() if exp <= now]
        for k in stale:
            del self._entries[k]
        return len(stale)

    def clear(self) -> None:
        """Flush all entries and reset the hit/miss counters."""
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    def stats(self) -> dict:
        self.purge_expired()
        return {
            "hits": self.hits,
            "misses": self.misses,
            "keyCount": len(self._entries),
            "ttlSeconds": self.ttl,
        }
