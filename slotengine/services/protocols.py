"""
Collaborator protocols consumed by the availability service.

Rules, bookings, services and identity are owned by the host application;
the engine only reads them through these protocols, which keeps the real
stores swappable with the in-memory adapters in tests.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Protocol

from ..domain.models import Booking, BusinessHours, CancellationPolicy


class BusinessRulesProvider(Protocol):
    """Supplies business hours and booking policy. Any getter may return None."""

    def get_business_hours(self) -> Optional[BusinessHours]:
        """Return the opening and lunch hours."""

    def get_working_days(self) -> Optional[Iterable[int]]:
        """Return working weekdays, 0=Sunday through 6=Saturday."""

    def get_slot_duration_minutes(self) -> Optional[int]:
        """Return the slot grid step in minutes."""

    def get_advance_booking_days(self) -> Optional[int]:
        """Return how many days ahead a booking may be placed."""

    def get_min_lead_time_minutes(self) -> Optional[int]:
        """Return the minimum notice before a bookable slot."""

    def get_cancellation_policy(self) -> Optional[CancellationPolicy]:
        """Return the cancellation lead-time policy."""

    def get_max_active_bookings_per_user(self) -> Optional[int]:
        """Return the per-user cap on confirmed upcoming bookings."""


class BookingRepository(Protocol):
    """Supplies the current snapshot of bookings."""

    def list_bookings(self) -> List[Booking]:
        """Return every known booking."""


class ServiceCatalog(Protocol):
    """Maps service identifiers to durations."""

    def get_service_duration(self, service_id: str) -> Optional[int]:
        """Return the service duration in minutes, or None if unknown."""

    def list_active_service_ids(self) -> List[str]:
        """Return identifiers of services currently offered."""


class IdentityProvider(Protocol):
    """Identifies the current user for the per-user booking cap."""

    def current_user_id(self) -> Optional[str]:
        """Return the current user id."""

    def current_user_email(self) -> Optional[str]:
        """Return the current user email."""
