"""
Rules provider and service catalog backed by the YAML application config.
"""

from typing import List, Optional

from ..config import AppConfig
from ..domain.models import BusinessHours, CancellationPolicy


class ConfigRulesProvider:
    """
    Serves business rules straight from an ``AppConfig``.

    The config already fills in defaults for anything missing in the YAML
    file, so every getter returns a concrete value.
    """

    def __init__(self, config: AppConfig):
        self.config = config

    def get_business_hours(self) -> BusinessHours:
        return self.config.get_business_hours()

    def get_working_days(self) -> List[int]:
        return list(self.config.working_days)

    def get_slot_duration_minutes(self) -> int:
        return self.config.slot_duration_minutes

    def get_advance_booking_days(self) -> int:
        return self.config.advance_booking_days

    def get_min_lead_time_minutes(self) -> int:
        return self.config.min_lead_time_minutes

    def get_cancellation_policy(self) -> CancellationPolicy:
        return self.config.cancellation.to_domain()

    def get_max_active_bookings_per_user(self) -> int:
        return self.config.max_active_bookings_per_user


class ConfigServiceCatalog:
    """Service catalog over the ``services`` section of the config."""

    def __init__(self, config: AppConfig):
        self.config = config

    def get_service_duration(self, service_id: str) -> Optional[int]:
        """Return the duration of an active service, or None."""
        service = self.config.find_service(service_id)
        if service is None or not service.active:
            return None
        return service.duration_minutes

    def list_active_service_ids(self) -> List[str]:
        return [service.id for service in self.config.active_services()]
