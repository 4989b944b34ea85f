"""
Domain layer - Pure business logic without external dependencies.
"""

from .models import (
    Booking,
    BookingPolicy,
    BookingStatus,
    BusinessHours,
    CancellationPolicy,
    DayAvailability,
    NextSlot,
    TimeSlot,
    WeekAvailability,
)
from .slot_generator import SlotGenerator
from .validation import BookingDecision, RejectionReason, ValidationEngine, intervals_overlap

__all__ = [
    "Booking",
    "BookingDecision",
    "BookingPolicy",
    "BookingStatus",
    "BusinessHours",
    "CancellationPolicy",
    "DayAvailability",
    "NextSlot",
    "RejectionReason",
    "SlotGenerator",
    "TimeSlot",
    "ValidationEngine",
    "WeekAvailability",
    "intervals_overlap",
]
