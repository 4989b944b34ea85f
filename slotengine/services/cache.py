"""
Availability cache keyed by date and service.

Validity follows the calendar rather than a time-to-live: a day entry is
served while its date has not fully elapsed, a week entry while its last day
has not. Elapsed entries are evicted instead of recomputed.

Writes never mutate a map in place. Every store or eviction builds a new dict
and swaps the reference, so a concurrent reader sees either the old or the
new map and never a partial update.
"""

import logging
from typing import Dict, List, Optional, Tuple

from pendulum import Date

from ..domain.models import DayAvailability, WeekAvailability

logger = logging.getLogger(__name__)

ALL_SERVICES = "ALL"

CacheKey = Tuple[str, str]


class AvailabilityCache:
    """Explicit key -> value store for day and week availability."""

    def __init__(self) -> None:
        self._days: Dict[CacheKey, DayAvailability] = {}
        self._weeks: Dict[CacheKey, WeekAvailability] = {}

    @staticmethod
    def day_key(day: Date, service_id: Optional[str]) -> CacheKey:
        return day.to_date_string(), service_id or ALL_SERVICES

    @staticmethod
    def week_key(week_start: Date, service_id: Optional[str]) -> CacheKey:
        return week_start.to_date_string(), service_id or ALL_SERVICES

    # -- days ---------------------------------------------------------------

    def get_day(self, day: Date, service_id: Optional[str], today: Date) -> Optional[DayAvailability]:
        """Return a valid day entry, evicting it if its date has elapsed."""
        key = self.day_key(day, service_id)
        entry = self._days.get(key)
        if entry is None:
            return None

        if entry.date < today:
            logger.debug("Evicting stale day entry %s", key)
            self._days = {k: v for k, v in self._days.items() if k != key}
            return None

        return entry

    def store_day(self, service_id: Optional[str], availability: DayAvailability) -> None:
        key = self.day_key(availability.date, service_id)
        self._days = {**self._days, key: availability}

    # -- weeks --------------------------------------------------------------

    def get_week(self, week_start: Date, service_id: Optional[str], today: Date) -> Optional[WeekAvailability]:
        """Return a valid week entry, evicting it once the week has passed."""
        key = self.week_key(week_start, service_id)
        entry = self._weeks.get(key)
        if entry is None:
            return None

        if entry.week_end < today:
            logger.debug("Evicting stale week entry %s", key)
            self._weeks = {k: v for k, v in self._weeks.items() if k != key}
            return None

        return entry

    def store_week(self, service_id: Optional[str], availability: WeekAvailability) -> None:
        key = self.week_key(availability.week_start, service_id)
        self._weeks = {**self._weeks, key: availability}

    # -- invalidation -------------------------------------------------------

    def invalidate(self, day: Optional[Date] = None) -> int:
        """
        Drop entries referencing ``day``, or everything when no day is given.

        Week entries are dropped when their seven days include ``day``.

        Returns:
            Number of removed entries
        """
        if day is None:
            removed = len(self)
            self._days = {}
            self._weeks = {}
            logger.debug("Cleared availability cache (%d entries)", removed)
            return removed

        day_string = day.to_date_string()
        days = {k: v for k, v in self._days.items() if k[0] != day_string}
        weeks = {
            k: v for k, v in self._weeks.items()
            if not v.week_start <= day <= v.week_end
        }
        removed = (len(self._days) - len(days)) + (len(self._weeks) - len(weeks))

        self._days = days
        self._weeks = weeks
        logger.debug("Invalidated %d cache entries for %s", removed, day_string)
        return removed

    def purge_stale(self, today: Date) -> int:
        """Evict every entry whose date range has fully elapsed."""
        days = {k: v for k, v in self._days.items() if v.date >= today}
        weeks = {k: v for k, v in self._weeks.items() if v.week_end >= today}
        removed = (len(self._days) - len(days)) + (len(self._weeks) - len(weeks))

        self._days = days
        self._weeks = weeks
        return removed

    def day_keys(self) -> List[CacheKey]:
        return sorted(self._days)

    def week_keys(self) -> List[CacheKey]:
        return sorted(self._weeks)

    def __len__(self) -> int:
        return len(self._days) + len(self._weeks)
