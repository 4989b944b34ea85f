"""
Domain models for business rules, bookings and slot availability.
"""

from dataclasses import dataclass, field
from datetime import date as _date
from enum import Enum
from typing import FrozenSet, List, Optional, Tuple

import pendulum
from pendulum import Date

from .exceptions import InvalidTimeError

DEFAULT_SERVICE_DURATION_MINUTES = 60
MINUTES_PER_HOUR = 60


def parse_time(value: str) -> Tuple[int, int]:
    """
    Parse an ``HH:MM`` string into an (hour, minute) tuple.

    Args:
        value: Time string in 24h format, e.g. "09:30"

    Returns:
        Tuple of (hour, minute)

    Raises:
        InvalidTimeError: If the value is not a valid 24h time
    """
    if not isinstance(value, str):
        raise InvalidTimeError(f"Time must be a string in HH:MM format, got {value!r}")

    parts = value.strip().split(":")
    if len(parts) != 2 or not all(part.isdigit() for part in parts):
        raise InvalidTimeError(f"Invalid time {value!r}, expected HH:MM")

    hour, minute = int(parts[0]), int(parts[1])
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise InvalidTimeError(f"Time out of range: {value!r}")

    return hour, minute


def time_to_minutes(value: str) -> int:
    """Convert an ``HH:MM`` string to minutes since midnight."""
    hour, minute = parse_time(value)
    return hour * MINUTES_PER_HOUR + minute


def format_minutes(minutes: int) -> str:
    """Format minutes since midnight as a zero-padded ``HH:MM`` string."""
    return f"{minutes // MINUTES_PER_HOUR:02d}:{minutes % MINUTES_PER_HOUR:02d}"


def as_date(value: "_date | str") -> Date:
    """
    Coerce a date, datetime or ``YYYY-MM-DD`` string to a pendulum Date.

    Raises:
        InvalidTimeError: If a string cannot be parsed
    """
    if isinstance(value, str):
        try:
            return pendulum.from_format(value.strip(), "YYYY-MM-DD").date()
        except ValueError as exc:
            raise InvalidTimeError(f"Invalid date {value!r}, expected YYYY-MM-DD") from exc

    return pendulum.date(value.year, value.month, value.day)


def weekday_index(day: _date) -> int:
    """Return the weekday with 0=Sunday through 6=Saturday."""
    return day.isoweekday() % 7


@dataclass(frozen=True)
class BusinessHours:
    """
    Daily opening window ``[start, end)`` with a blocked ``[lunch_start, lunch_end)``.

    All values are whole hours between 0 and 23. A lunch window that is empty
    or inverted blocks nothing.
    """
    start: int = 8
    end: int = 20
    lunch_start: int = 13
    lunch_end: int = 14

    def __post_init__(self):
        for name in ("start", "end", "lunch_start", "lunch_end"):
            value = getattr(self, name)
            if not 0 <= value <= 23:
                raise ValueError(f"{name} must be between 0 and 23, got {value}")
        if self.start >= self.end:
            raise ValueError(f"Opening hour {self.start} must be before closing hour {self.end}")

    @property
    def open_minute(self) -> int:
        return self.start * MINUTES_PER_HOUR

    @property
    def close_minute(self) -> int:
        return self.end * MINUTES_PER_HOUR

    @property
    def has_lunch_break(self) -> bool:
        return self.lunch_start < self.lunch_end

    @property
    def lunch_start_minute(self) -> int:
        return self.lunch_start * MINUTES_PER_HOUR

    @property
    def lunch_duration_minutes(self) -> int:
        return max(0, self.lunch_end - self.lunch_start) * MINUTES_PER_HOUR


@dataclass(frozen=True)
class CancellationPolicy:
    """Whether cancellations must respect a lead time, and how long it is."""
    enabled: bool = False
    lead_hours: int = 1


@dataclass(frozen=True)
class BookingPolicy:
    """
    Booking rules applied on top of the business hours.

    ``working_days`` uses 0=Sunday through 6=Saturday.
    """
    working_days: FrozenSet[int] = frozenset({2, 3, 4, 5, 6})
    slot_duration_minutes: int = 30
    advance_booking_days: int = 30
    min_lead_time_minutes: int = 30
    cancellation_enabled: bool = False
    cancellation_lead_hours: int = 1
    max_active_bookings_per_user: int = 1

    def __post_init__(self):
        object.__setattr__(self, "working_days", frozenset(self.working_days))

    @property
    def cancellation_policy(self) -> CancellationPolicy:
        return CancellationPolicy(
            enabled=self.cancellation_enabled,
            lead_hours=self.cancellation_lead_hours,
        )


class BookingStatus(str, Enum):
    """Lifecycle states of a booking."""
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    DRAFT = "draft"


@dataclass(frozen=True)
class Booking:
    """
    An existing booking as read from the booking store.

    The start time is validated on construction; a malformed value never
    reaches the validation engine.
    """
    id: str
    date: Date
    start_time: str
    service_id: str
    status: BookingStatus = BookingStatus.CONFIRMED
    owner_id: Optional[str] = None
    owner_email: Optional[str] = None
    client_name: Optional[str] = None
    notes: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "date", as_date(self.date))
        object.__setattr__(self, "start_time", format_minutes(time_to_minutes(self.start_time)))
        object.__setattr__(self, "status", BookingStatus(self.status))

    @property
    def start_minutes(self) -> int:
        return time_to_minutes(self.start_time)

    @property
    def is_confirmed(self) -> bool:
        return self.status is BookingStatus.CONFIRMED


@dataclass(frozen=True)
class TimeSlot:
    """
    A candidate start time for a service on a given day.

    Unavailable slots carry the conflicting booking's identity for display.
    """
    time: str
    available: bool
    conflicting_booking_id: Optional[str] = None
    occupant_name: Optional[str] = None
    notes: Optional[str] = None

    @property
    def start_minutes(self) -> int:
        return time_to_minutes(self.time)


@dataclass(frozen=True)
class DayAvailability:
    """All generated slots of a single day."""
    date: Date
    is_working_day: bool
    slots: Tuple[TimeSlot, ...] = field(default_factory=tuple)

    @property
    def total_slots(self) -> int:
        return len(self.slots)

    @property
    def available_slots(self) -> int:
        return sum(1 for slot in self.slots if slot.available)

    @property
    def is_available(self) -> bool:
        return self.available_slots > 0

    def available_only(self) -> List[TimeSlot]:
        """Return only the bookable slots."""
        return [slot for slot in self.slots if slot.available]

    @classmethod
    def empty(cls, date: Date, is_working_day: bool) -> "DayAvailability":
        return cls(date=date, is_working_day=is_working_day, slots=())


@dataclass(frozen=True)
class WeekAvailability:
    """Seven consecutive days of availability starting at ``week_start``."""
    week_start: Date
    days: Tuple[DayAvailability, ...]

    @property
    def week_end(self) -> Date:
        return self.week_start.add(days=6)

    @property
    def available_slots(self) -> int:
        return sum(day.available_slots for day in self.days)


@dataclass(frozen=True)
class NextSlot:
    """The first bookable (date, time) found by a forward search."""
    date: Date
    time: str

    def format_display(self) -> str:
        """
        Format the slot for display.
        Format: Weekday, DD.MM.YYYY | HH:MM
        """
        return f"{self.date.format('dddd, DD.MM.YYYY')} | {self.time}"
