"""
Adapters layer - Reference implementations of the external collaborators.
"""

from .booking_repository import InMemoryBookingRepository, JsonBookingRepository
from .config_rules import ConfigRulesProvider, ConfigServiceCatalog
from .identity import StaticIdentityProvider

__all__ = [
    "ConfigRulesProvider",
    "ConfigServiceCatalog",
    "InMemoryBookingRepository",
    "JsonBookingRepository",
    "StaticIdentityProvider",
]
