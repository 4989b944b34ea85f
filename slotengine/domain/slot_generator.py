"""
Slot grid generation.

Pure domain logic: the generator only reads the snapshot held by its
ValidationEngine and never touches a store, a cache or the clock.
"""

import logging
from typing import Iterable, Iterator, List, Optional

from pendulum import Date

from .models import Booking, TimeSlot, as_date, format_minutes
from .validation import ValidationEngine

logger = logging.getLogger(__name__)


class SlotGenerator:
    """
    Enumerates the candidate slots of a day and tags each with availability.

    Algorithm:
    1. Reject the whole day if it is not a working day or lies beyond the
       advance booking window
    2. Walk the grid from opening time in steps of the slot duration
    3. Skip candidates that overrun closing time, touch the lunch break,
       have already started, or fall inside the lead time
    4. Mark the rest unavailable when a confirmed booking overlaps them
    """

    def __init__(self, engine: ValidationEngine):
        self.engine = engine

    def generate_slots(
        self,
        day: Date,
        service_duration_minutes: int,
        existing_bookings: Optional[Iterable[Booking]] = None,
    ) -> List[TimeSlot]:
        """
        Generate the ordered slot grid for a service on one day.

        Args:
            day: Calendar day to generate slots for
            service_duration_minutes: Duration of the service being booked
            existing_bookings: Bookings to test against; defaults to the
                engine's snapshot

        Returns:
            TimeSlot objects in ascending ``HH:MM`` order
        """
        engine = self.engine
        day = as_date(day)

        if not engine.can_book_on_date(day):
            return []

        if not engine.can_book_in_advance(day):
            return []

        step = engine.policy.slot_duration_minutes
        if step <= 0 or service_duration_minutes <= 0:
            logger.warning(
                "Cannot build a slot grid with step=%s and duration=%s",
                step,
                service_duration_minutes,
            )
            return []

        bookings = engine.confirmed_bookings_on(day, existing_bookings)
        slots: List[TimeSlot] = []

        for start in self._candidate_starts(step):
            if not self._is_candidate(day, start, service_duration_minutes):
                continue

            conflict = engine.find_conflict(day, start, service_duration_minutes, bookings)
            slots.append(self._build_slot(start, conflict))

        return slots

    def _candidate_starts(self, step: int) -> Iterator[int]:
        """Grid starts aligned to opening time, strictly before closing time."""
        hours = self.engine.business_hours
        return iter(range(hours.open_minute, hours.close_minute, step))

    def _is_candidate(self, day: Date, start: int, duration: int) -> bool:
        engine = self.engine

        if engine.would_extend_past_close(start, duration):
            return False

        if engine.would_overlap_blocked_hours(start, duration):
            return False

        if day == engine.today and engine.is_past(day, start):
            return False

        return engine.can_book_with_lead_time(day, start)

    @staticmethod
    def _build_slot(start: int, conflict: Optional[Booking]) -> TimeSlot:
        if conflict is None:
            return TimeSlot(time=format_minutes(start), available=True)

        return TimeSlot(
            time=format_minutes(start),
            available=False,
            conflicting_booking_id=conflict.id,
            occupant_name=conflict.client_name,
            notes=conflict.notes,
        )
