"""Per-client sliding-window rate limiting for the HTTP routes.

Four named buckets mirror the cost of what they guard:
  conversion (spends YouTube quota) < fetch < shared / general.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from typing import Callable, Deque, Dict, Tuple

from fastapi import Depends, HTTPException, Request

_MESSAGES = {
    "conversion": "Too many conversion requests. Please wait 15 minutes before trying again.",
    "fetch": "Too many playlist fetch requests. Please wait before trying again.",
    "shared": "Too many requests. Please wait before accessing more playlists.",
    "general": "Too many requests. Please slow down.",
}


class RateLimiter:
    """Sliding-window counter keyed by (bucket, client)."""

    def __init__(
        self,
        limits: Dict[str, int],
        window: float = 900,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.limits = limits
        self.window = window
        self._clock = clock
        self._hits: Dict[Tuple[str, str], Deque[float]] = {}
        self._lock = asyncio.Lock()
        self._last_sweep = clock()

    async def hit(self, bucket: str, client: str) -> float:
        """Record one request. Returns 0 if allowed, else seconds until retry."""
        limit = self.limits[bucket]
        async with self._lock:
            now = self._clock()
            if now - self._last_sweep >= self.window:
                self._sweep(now)
            calls = self._hits.setdefault((bucket, client), deque())
            while calls and now - calls[0] >= self.window:
                calls.popleft()
            if limit <= 0:
                return self.window
            if len(calls) >= limit:
                return self.window - (now - calls[0])
            calls.append(now)
            return 0.0

    def _sweep(self, now: float) -> None:
        """Drop every window whose newest hit has aged out."""
        stale = [key for key, calls in self._hits.items() if not calls or now - calls[-1] >= self.window]
        for key in stale:
            del self._hits[key]
        self._last_sweep = now

    def reset(self) -> None:
        self._hits.clear()


def client_key(request: Request) -> str:
    """Client address, honouring the first hop of ``X-Forwarded-For``."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def limit(bucket: str):
    """Route dependency enforcing *bucket* for the calling client."""
    from app.services import Services, get_services

    async def _check(request: Request, services: Services = Depends(get_services)) -> None:
        wait = await services.rate_limiter.hit(bucket, client_key(request))
        if wait > 0:
            raise HTTPException(
                status_code=429,
                detail=_MESSAGES[bucket],
                headers={"Retry-After": str(max(1, int(wait)))},
            )

    return Depends(_check)
