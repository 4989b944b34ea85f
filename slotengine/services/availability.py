"""
Application service for querying appointment availability.

The service reads a fresh snapshot of rules, bookings and identity from its
collaborators, delegates slot generation to the domain-level
``SlotGenerator`` and memoizes the results in an ``AvailabilityCache``.
Every query fails soft: unknown services and missing rules degrade to
"nothing available" instead of raising.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date as _date
from typing import Callable, Dict, Iterable, List, Optional

import pendulum
from pendulum import Date, DateTime

from ..domain.models import (
    DEFAULT_SERVICE_DURATION_MINUTES,
    Booking,
    DayAvailability,
    NextSlot,
    TimeSlot,
    WeekAvailability,
    as_date,
    format_minutes,
    time_to_minutes,
)
from ..domain.slot_generator import SlotGenerator
from ..domain.validation import BookingDecision, RejectionReason, ValidationEngine
from .cache import AvailabilityCache
from .protocols import BookingRepository, BusinessRulesProvider, IdentityProvider, ServiceCatalog
from .rules import load_rules

logger = logging.getLogger(__name__)

Clock = Callable[[], DateTime]

DEFAULT_HORIZON_DAYS = 30
DAYS_PER_WEEK = 7


def merge_slots(slot_lists: Iterable[List[TimeSlot]]) -> List[TimeSlot]:
    """
    Merge per-service slot lists into one list per time.

    A time is available in the merged view if it is available for at least
    one service.
    """
    merged: Dict[str, TimeSlot] = {}

    for slots in slot_lists:
        for slot in slots:
            existing = merged.get(slot.time)
            if existing is None:
                merged[slot.time] = slot
            elif slot.available and not existing.available:
                merged[slot.time] = replace(
                    existing,
                    available=True,
                    conflicting_booking_id=None,
                    occupant_name=None,
                    notes=None,
                )

    return [merged[time] for time in sorted(merged)]


class AvailabilityService:
    """
    Facade over slot generation with calendar-aware caching.

    Args:
        rules: Business rules provider
        bookings: Booking repository supplying the current snapshot
        catalog: Service catalog
        identity: Optional identity provider for the per-user booking cap
        clock: Returns "now"; defaults to ``pendulum.now`` in ``timezone``
        timezone: Zone of the default clock
        cache: Optional cache instance, mostly useful for inspection in tests
    """

    def __init__(
        self,
        rules: BusinessRulesProvider,
        bookings: BookingRepository,
        catalog: ServiceCatalog,
        identity: Optional[IdentityProvider] = None,
        *,
        clock: Optional[Clock] = None,
        timezone: Optional[str] = None,
        cache: Optional[AvailabilityCache] = None,
    ) -> None:
        self._rules = rules
        self._bookings = bookings
        self._catalog = catalog
        self._identity = identity
        self._clock = clock or (lambda: pendulum.now(timezone))
        self._cache = cache if cache is not None else AvailabilityCache()

    @property
    def cache(self) -> AvailabilityCache:
        return self._cache

    def now(self) -> DateTime:
        return self._clock()

    # -- snapshot -----------------------------------------------------------

    def validator(self, now: Optional[DateTime] = None) -> ValidationEngine:
        """
        Build a ValidationEngine over the current rules and bookings.

        Booking flows use this to re-validate a request at write time.
        """
        business_hours, policy = load_rules(self._rules)
        bookings: List[Booking] = list(self._bookings.list_bookings() or [])

        user_id = user_email = None
        if self._identity is not None:
            user_id = self._identity.current_user_id()
            user_email = self._identity.current_user_email()

        return ValidationEngine(
            policy,
            business_hours,
            bookings,
            now if now is not None else self.now(),
            user_id=user_id,
            user_email=user_email,
            resolve_duration=self._booking_duration,
        )

    def service_duration(self, service_id: str) -> Optional[int]:
        """Duration of a queried service, or None when it cannot be resolved."""
        duration = self._catalog.get_service_duration(service_id)
        if duration is None or duration <= 0:
            return None
        return int(duration)

    def _booking_duration(self, service_id: str) -> int:
        duration = self.service_duration(service_id)
        if duration is None:
            logger.debug(
                "Unknown service %r on an existing booking, assuming %d minutes",
                service_id,
                DEFAULT_SERVICE_DURATION_MINUTES,
            )
            return DEFAULT_SERVICE_DURATION_MINUTES
        return duration

    # -- days ---------------------------------------------------------------

    def get_day(
        self,
        day: "_date | str",
        service_id: str,
        *,
        include_unavailable: bool = False,
    ) -> List[TimeSlot]:
        """
        Return the slots of a service on one day.

        Args:
            day: Calendar day
            service_id: Service to book
            include_unavailable: Also return slots taken by other bookings

        Returns:
            Slots in ascending time order
        """
        availability = self.get_day_availability(day, service_id)
        if include_unavailable:
            return list(availability.slots)
        return availability.available_only()

    def get_day_availability(
        self,
        day: "_date | str",
        service_id: Optional[str] = None,
    ) -> DayAvailability:
        """
        Return the availability of one day, cached per (day, service).

        Without a service the slots of every active service are merged.
        """
        day = as_date(day)
        now = self.now()

        cached = self._cache.get_day(day, service_id, now.date())
        if cached is not None:
            logger.debug("Cache hit for %s / %s", day.to_date_string(), service_id)
            return cached

        logger.debug("Cache miss for %s / %s, computing", day.to_date_string(), service_id)
        engine = self.validator(now)

        if service_id is None:
            availability = self._merged_day(engine, day)
        else:
            duration = self.service_duration(service_id)
            if duration is None:
                logger.info("Unknown service %r, no slots offered", service_id)
                return DayAvailability.empty(day, engine.can_book_on_date(day))

            slots = SlotGenerator(engine).generate_slots(day, duration)
            availability = DayAvailability(
                date=day,
                is_working_day=engine.can_book_on_date(day),
                slots=tuple(slots),
            )

        self._cache.store_day(service_id, availability)
        return availability

    def _merged_day(self, engine: ValidationEngine, day: Date) -> DayAvailability:
        is_working_day = engine.can_book_on_date(day)
        if not is_working_day:
            return DayAvailability.empty(day, is_working_day=False)

        generator = SlotGenerator(engine)
        per_service: List[List[TimeSlot]] = []

        for service_id in self._catalog.list_active_service_ids():
            duration = self.service_duration(service_id)
            if duration is None:
                continue
            per_service.append(generator.generate_slots(day, duration))

        return DayAvailability(
            date=day,
            is_working_day=True,
            slots=tuple(merge_slots(per_service)),
        )

    def is_time_slot_available(self, day: "_date | str", time: str, service_id: str) -> bool:
        wanted = format_minutes(time_to_minutes(time))
        for slot in self.get_day(day, service_id, include_unavailable=True):
            if slot.time == wanted:
                return slot.available
        return False

    # -- weeks --------------------------------------------------------------

    def get_week(
        self,
        week_start: "_date | str",
        service_id: Optional[str] = None,
    ) -> WeekAvailability:
        """
        Return seven days of availability starting at ``week_start``.

        Without a service, each day merges every active service.
        """
        week_start = as_date(week_start)
        now = self.now()

        cached = self._cache.get_week(week_start, service_id, now.date())
        if cached is not None:
            return cached

        days = tuple(
            self.get_day_availability(week_start.add(days=offset), service_id)
            for offset in range(DAYS_PER_WEEK)
        )
        week = WeekAvailability(week_start=week_start, days=days)

        self._cache.store_week(service_id, week)
        return week

    def get_week_time_slots(
        self,
        week_start: "_date | str",
        service_id: Optional[str] = None,
    ) -> Dict[str, List[TimeSlot]]:
        """Map each ``YYYY-MM-DD`` of the week to its full slot list."""
        week = self.get_week(week_start, service_id)
        return {day.date.to_date_string(): list(day.slots) for day in week.days}

    # -- searching and warming ---------------------------------------------

    def get_next_available_slot(
        self,
        service_id: str,
        from_date: "_date | str | None" = None,
        horizon_days: int = DEFAULT_HORIZON_DAYS,
    ) -> Optional[NextSlot]:
        """
        Scan forward day by day for the first bookable slot.

        Args:
            service_id: Service to book
            from_date: First day to inspect; defaults to today
            horizon_days: Days to scan after ``from_date`` (inclusive)

        Returns:
            NextSlot, or None if the horizon is exhausted
        """
        start = as_date(from_date) if from_date is not None else self.now().date()

        for offset in range(horizon_days + 1):
            day = start.add(days=offset)
            slots = self.get_day(day, service_id)
            if slots:
                return NextSlot(date=day, time=slots[0].time)

        return None

    def preload_range(
        self,
        start: "_date | str",
        end: "_date | str",
        service_ids: Optional[Iterable[str]] = None,
    ) -> int:
        """
        Warm the cache for every (day, service) pair in ``[start, end]``.

        Each pair is computed independently, so the order carries no meaning.

        Returns:
            Number of pairs warmed
        """
        start, end = as_date(start), as_date(end)
        if start > end:
            start, end = end, start

        services = list(service_ids) if service_ids else self._catalog.list_active_service_ids()

        warmed = 0
        day = start
        while day <= end:
            for service_id in services:
                self.get_day_availability(day, service_id)
                warmed += 1
            day = day.add(days=1)

        return warmed

    def invalidate(self, day: "_date | str | None" = None) -> int:
        """Drop cached entries for ``day``, or the whole cache."""
        return self._cache.invalidate(as_date(day) if day is not None else None)

    def purge_stale(self) -> int:
        return self._cache.purge_stale(self.now().date())

    # -- write-time checks --------------------------------------------------

    def check_booking(self, day: "_date | str", time: str, service_id: str) -> BookingDecision:
        """Run every booking rule for a request, uncached."""
        duration = self.service_duration(service_id)
        if duration is None:
            return BookingDecision(reasons=(RejectionReason.UNKNOWN_SERVICE,))
        return self.validator().check_booking(as_date(day), time, duration)

    def can_book(self, day: "_date | str", time: str, service_id: str) -> bool:
        return self.check_booking(day, time, service_id).allowed

    def can_cancel(self, booking: Booking) -> bool:
        return self.validator().can_cancel(booking.date, booking.start_time)
