"""
Service layer helpers that orchestrate collaborators and domain logic.
"""

from .availability import AvailabilityService, merge_slots
from .cache import ALL_SERVICES, AvailabilityCache
from .protocols import BookingRepository, BusinessRulesProvider, IdentityProvider, ServiceCatalog
from .rules import load_rules

__all__ = [
    "ALL_SERVICES",
    "AvailabilityCache",
    "AvailabilityService",
    "BookingRepository",
    "BusinessRulesProvider",
    "IdentityProvider",
    "ServiceCatalog",
    "load_rules",
    "merge_slots",
]
