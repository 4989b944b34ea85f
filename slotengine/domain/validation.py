"""
Booking rule predicates.

Every check is evaluated against an immutable snapshot of the policy, the
business hours, the current bookings and "now". Nothing here performs I/O or
mutates state, so the same engine backs both the availability grid and the
re-validation a booking flow performs right before it writes.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional, Sequence, Tuple, Union

from pendulum import Date, DateTime

from .models import (
    DEFAULT_SERVICE_DURATION_MINUTES,
    Booking,
    BookingPolicy,
    BusinessHours,
    as_date,
    time_to_minutes,
    weekday_index,
)


# "HH:MM" or minutes since midnight
SlotTime = Union[str, int]
DurationResolver = Callable[[str], int]


def intervals_overlap(a_start: int, a_duration: int, b_start: int, b_duration: int) -> bool:
    """
    Half-open overlap test on minute offsets.

    ``[a_start, a_start + a_duration)`` and ``[b_start, b_start + b_duration)``
    overlap only if each starts before the other ends. Touching endpoints
    never overlap.
    """
    return a_start < b_start + b_duration and b_start < a_start + a_duration


def _default_duration(service_id: str) -> int:
    return DEFAULT_SERVICE_DURATION_MINUTES


class RejectionReason(str, Enum):
    """Why a booking request was refused."""
    UNKNOWN_SERVICE = "unknown_service"
    INVALID_DURATION = "invalid_duration"
    BOOKING_LIMIT_REACHED = "booking_limit_reached"
    NOT_WORKING_DAY = "not_working_day"
    BEYOND_ADVANCE_WINDOW = "beyond_advance_window"
    IN_THE_PAST = "in_the_past"
    INSIDE_LEAD_TIME = "inside_lead_time"
    OUTSIDE_BUSINESS_HOURS = "outside_business_hours"
    EXTENDS_PAST_CLOSE = "extends_past_close"
    OVERLAPS_BLOCKED_HOURS = "overlaps_blocked_hours"
    CONFLICTS_WITH_BOOKING = "conflicts_with_booking"


@dataclass(frozen=True)
class BookingDecision:
    """Outcome of a full booking check."""
    reasons: Tuple[RejectionReason, ...] = ()
    conflicting_booking_id: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return not self.reasons

    def __bool__(self) -> bool:
        return self.allowed


class ValidationEngine:
    """
    Decides bookability of an instant or interval.

    Args:
        policy: Booking policy (working days, windows, caps)
        business_hours: Opening and lunch hours
        bookings: Snapshot of existing bookings
        now: The instant all relative rules are measured from
        user_id: Current user id, used by the per-user booking cap
        user_email: Current user email, fallback match for the cap
        resolve_duration: Maps a service id to its duration in minutes
    """

    def __init__(
        self,
        policy: BookingPolicy,
        business_hours: BusinessHours,
        bookings: Sequence[Booking],
        now: DateTime,
        *,
        user_id: Optional[str] = None,
        user_email: Optional[str] = None,
        resolve_duration: Optional[DurationResolver] = None,
    ) -> None:
        self.policy = policy
        self.business_hours = business_hours
        self.bookings: Tuple[Booking, ...] = tuple(bookings or ())
        self.now = now
        self.user_id = user_id
        self.user_email = user_email
        self._resolve_duration = resolve_duration or _default_duration

    @property
    def today(self) -> Date:
        return self.now.date()

    # -- time helpers ---------------------------------------------------

    @staticmethod
    def _minutes(time: SlotTime) -> int:
        return time if isinstance(time, int) else time_to_minutes(time)

    def slot_datetime(self, day: Date, time: SlotTime) -> DateTime:
        """Combine a calendar day and a start time in the zone of ``now``."""
        day = as_date(day)
        minutes = self._minutes(time)
        return self.now.set(
            year=day.year,
            month=day.month,
            day=day.day,
            hour=minutes // 60,
            minute=minutes % 60,
            second=0,
            microsecond=0,
        )

    # -- calendar rules -------------------------------------------------

    def can_book_on_date(self, day: Date) -> bool:
        return weekday_index(as_date(day)) in self.policy.working_days

    def can_book_at_hour(self, hour: int) -> bool:
        hours = self.business_hours
        if not hours.start <= hour < hours.end:
            return False
        return not hours.lunch_start <= hour < hours.lunch_end

    def can_book_in_advance(self, day: Date) -> bool:
        return as_date(day) <= self.maximum_booking_date()

    def can_book_with_lead_time(self, day: Date, time: SlotTime) -> bool:
        return self.slot_datetime(day, time) >= self.minimum_booking_time()

    def is_past(self, day: Date, time: SlotTime) -> bool:
        return self.slot_datetime(day, time) <= self.now

    def minimum_booking_time(self) -> DateTime:
        """Earliest bookable instant (now plus the lead time)."""
        return self.now.add(minutes=self.policy.min_lead_time_minutes)

    def maximum_booking_date(self) -> Date:
        """Last bookable day (today plus the advance window)."""
        return self.today.add(days=self.policy.advance_booking_days)

    # -- cancellation ---------------------------------------------------

    def cancellation_deadline(self, day: Date, time: SlotTime) -> Optional[DateTime]:
        """Last instant a booking may be cancelled, or None when unrestricted."""
        if not self.policy.cancellation_enabled:
            return None
        return self.slot_datetime(day, time).subtract(hours=self.policy.cancellation_lead_hours)

    def can_cancel(self, day: Date, time: SlotTime) -> bool:
        deadline = self.cancellation_deadline(day, time)
        if deadline is None:
            return True
        return self.now <= deadline

    # -- interval rules -------------------------------------------------

    def would_extend_past_close(self, start: SlotTime, duration_minutes: int) -> bool:
        """Ending exactly at closing time is allowed; any overrun is not."""
        return self._minutes(start) + duration_minutes > self.business_hours.close_minute

    def would_overlap_blocked_hours(self, start: SlotTime, duration_minutes: int) -> bool:
        hours = self.business_hours
        if not hours.has_lunch_break:
            return False
        return intervals_overlap(
            self._minutes(start),
            duration_minutes,
            hours.lunch_start_minute,
            hours.lunch_duration_minutes,
        )

    def booking_duration(self, booking: Booking) -> int:
        return self._resolve_duration(booking.service_id)

    def confirmed_bookings_on(
        self,
        day: Date,
        bookings: Optional[Iterable[Booking]] = None,
    ) -> List[Booking]:
        """Confirmed bookings on ``day``, in snapshot order."""
        day = as_date(day)
        source = self.bookings if bookings is None else bookings
        return [b for b in source if b.is_confirmed and b.date == day]

    def find_conflict(
        self,
        day: Date,
        start: SlotTime,
        duration_minutes: int,
        bookings: Optional[Iterable[Booking]] = None,
    ) -> Optional[Booking]:
        """
        Return the first confirmed booking whose own interval intersects
        ``[start, start + duration)`` on ``day``, or None.
        """
        start_minutes = self._minutes(start)
        for booking in self.confirmed_bookings_on(day, bookings):
            if intervals_overlap(
                booking.start_minutes,
                self.booking_duration(booking),
                start_minutes,
                duration_minutes,
            ):
                return booking
        return None

    # -- per-user cap ---------------------------------------------------

    @property
    def has_identity(self) -> bool:
        return bool(self.user_id or self.user_email)

    def is_own_booking(self, booking: Booking) -> bool:
        """Match by user id, falling back to a case-insensitive email match."""
        if self.user_id and booking.owner_id == self.user_id:
            return True
        if self.user_email and booking.owner_email:
            return booking.owner_email.lower() == self.user_email.lower()
        return False

    def active_booking_count(self) -> int:
        """Confirmed bookings of the current user that have not started yet."""
        if not self.has_identity:
            return 0
        return sum(
            1
            for booking in self.bookings
            if booking.is_confirmed
            and self.is_own_booking(booking)
            and self.slot_datetime(booking.date, booking.start_minutes) >= self.now
        )

    def can_user_book_more(self) -> bool:
        if not self.has_identity:
            return True
        return self.active_booking_count() < self.policy.max_active_bookings_per_user

    # -- combined check -------------------------------------------------

    def check_booking(self, day: Date, time: SlotTime, duration_minutes: int) -> BookingDecision:
        """
        Evaluate every rule for booking a service of ``duration_minutes``
        at ``time`` on ``day``.
        """
        day = as_date(day)
        start = self._minutes(time)
        reasons: List[RejectionReason] = []

        if duration_minutes <= 0:
            return BookingDecision(reasons=(RejectionReason.INVALID_DURATION,))

        if not self.can_user_book_more():
            reasons.append(RejectionReason.BOOKING_LIMIT_REACHED)
        if not self.can_book_on_date(day):
            reasons.append(RejectionReason.NOT_WORKING_DAY)
        if not self.can_book_in_advance(day):
            reasons.append(RejectionReason.BEYOND_ADVANCE_WINDOW)

        if self.is_past(day, start):
            reasons.append(RejectionReason.IN_THE_PAST)
        elif not self.can_book_with_lead_time(day, start):
            reasons.append(RejectionReason.INSIDE_LEAD_TIME)

        if not self.can_book_at_hour(start // 60):
            reasons.append(RejectionReason.OUTSIDE_BUSINESS_HOURS)
        if self.would_extend_past_close(start, duration_minutes):
            reasons.append(RejectionReason.EXTENDS_PAST_CLOSE)
        if self.would_overlap_blocked_hours(start, duration_minutes):
            reasons.append(RejectionReason.OVERLAPS_BLOCKED_HOURS)

        conflict = self.find_conflict(day, start, duration_minutes)
        if conflict is not None:
            reasons.append(RejectionReason.CONFLICTS_WITH_BOOKING)

        return BookingDecision(
            reasons=tuple(reasons),
            conflicting_booking_id=conflict.id if conflict is not None else None,
        )

    def can_book_service_at_time(self, day: Date, time: SlotTime, duration_minutes: int) -> bool:
        return self.check_booking(day, time, duration_minutes).allowed
