"""YouTube Data API quota tracking.

Counts cost units consumed today against two ceilings:
  - the provider's daily unit budget
  - a per-session search cap, stricter than the raw budget
plus a sticky ``exceeded`` flag set when the provider itself refuses a
request. Counters reset when the calendar day rolls over in the
provider's reset timezone (midnight Pacific for YouTube).

The tracker is shared by concurrent conversions without locking: two
runs may both see room for a search and overshoot the cap slightly.
The provider-side ``mark_exceeded`` backstop bounds that overshoot.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from core.models import QuotaStatus

logger = logging.getLogger(__name__)


class QuotaTracker:
    """Process-wide quota state machine."""

    def __init__(
        self,
        *,
        daily_limit: int = 10000,
        search_cost: int = 100,
        max_searches_per_session: int = 90,
        timezone: str = "America/Los_Angeles",
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.daily_limit = daily_limit
        self.search_cost = search_cost
        self.max_searches_per_session = max_searches_per_session
        self._tz = ZoneInfo(timezone)
        self._now = now or (lambda: datetime.now(self._tz))

        self.units_used = 0
        self.exceeded = False
        self.last_reset_day: date = self._today()

    def _today(self) -> date:
        return self._now().astimezone(self._tz).date()

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    def check_and_maybe_reset(self) -> bool:
        """Reset counters if the calendar day changed. Returns True on reset."""
        today = self._today()
        if today == self.last_reset_day:
            return False
        logger.info(
            "Quota day rolled over (%s → %s); resetting %d used units",
            self.last_reset_day, today, self.units_used,
        )
        self.units_used = 0
        self.exceeded = False
        self.last_reset_day = today
        return True

    def record_usage(self, units: int) -> None:
        self.units_used += units

    def mark_exceeded(self) -> None:
        """Provider reported a quota/permission denial."""
        if not self.exceeded:
            logger.warning("YouTube quota marked as exceeded (%d units used)", self.units_used)
        self.exceeded = True

    def reset(self) -> int:
        """Operator override: zero everything now. Returns the previous usage."""
        previous = self.units_used
        self.units_used = 0
        self.exceeded = False
        self.last_reset_day = self._today()
        logger.info("Quota manually reset (was %d units)", previous)
        return previous

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def searches_used(self) -> int:
        return self.units_used // self.search_cost

    def remaining_searches(self) -> int:
        """Searches still allowed by both the session cap and the unit budget."""
        by_cap = self.max_searches_per_session - self.searches_used
        by_units = (self.daily_limit - self.units_used) // self.search_cost
        return max(0, min(by_cap, by_units))

    def is_exhausted(self) -> bool:
        return (
            self.exceeded
            or self.units_used >= self.daily_limit
            or self.searches_used >= self.max_searches_per_session
        )

    def status(self) -> QuotaStatus:
        self.check_and_maybe_reset()
        return QuotaStatus(
            quota_used=self.units_used,
            quota_limit=self.daily_limit,
            quota_remaining=max(0, self.daily_limit - self.units_used),
            quota_exceeded=self.is_exhausted(),
            last_reset_date=self.last_reset_day.isoformat(),
            searches_used=self.searches_used,
            searches_remaining=self.remaining_searches(),
        )
