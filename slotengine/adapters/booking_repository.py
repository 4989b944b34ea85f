"""
Booking repositories: an in-memory store and a JSON file snapshot.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from ..domain.models import Booking

logger = logging.getLogger(__name__)


class InMemoryBookingRepository:
    """Holds bookings in a list owned by the caller."""

    def __init__(self, bookings: Optional[Iterable[Booking]] = None):
        self._bookings: List[Booking] = list(bookings or [])

    def list_bookings(self) -> List[Booking]:
        return list(self._bookings)

    def add(self, booking: Booking) -> None:
        self._bookings = [*self._bookings, booking]

    def replace_all(self, bookings: Iterable[Booking]) -> None:
        self._bookings = list(bookings)


def booking_from_dict(record: Dict[str, Any]) -> Booking:
    """
    Build a Booking from a JSON record.

    Raises:
        KeyError: If a required field is missing
        ValueError: If a date, time or status is invalid
    """
    return Booking(
        id=str(record["id"]),
        date=record["date"],
        start_time=record["start_time"],
        service_id=str(record["service_id"]),
        status=record.get("status", "confirmed"),
        owner_id=record.get("owner_id"),
        owner_email=record.get("owner_email"),
        client_name=record.get("client_name"),
        notes=record.get("notes"),
    )


class JsonBookingRepository:
    """
    Reads a booking snapshot from a JSON file.

    The file holds a list of booking records. Records that cannot be parsed
    are skipped with a warning so a single bad entry does not hide every
    other booking.
    """

    def __init__(self, path: Path):
        self.path = path
        self._bookings: List[Booking] = []
        self.reload()

    def reload(self) -> None:
        """Re-read the JSON file."""
        if not self.path.exists():
            logger.warning("Bookings file %s not found, starting with no bookings", self.path)
            self._bookings = []
            return

        with open(self.path, "r", encoding="utf-8") as f:
            records = json.load(f)

        if not isinstance(records, list):
            raise ValueError(f"Bookings file {self.path} must contain a JSON list")

        bookings: List[Booking] = []
        for index, record in enumerate(records):
            try:
                bookings.append(booking_from_dict(record))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping invalid booking #%d in %s: %s", index, self.path, exc)

        self._bookings = bookings

    def list_bookings(self) -> List[Booking]:
        return list(self._bookings)
