"""
Reading business rules from a provider.

Missing values never fail: whatever the provider does not supply is taken
from the built-in defaults.
"""

import logging
from dataclasses import fields, replace
from typing import Any, Mapping, Optional, Tuple

from ..domain.models import BookingPolicy, BusinessHours, CancellationPolicy
from .protocols import BusinessRulesProvider

logger = logging.getLogger(__name__)

DEFAULT_BUSINESS_HOURS = BusinessHours()
DEFAULT_POLICY = BookingPolicy()


def _read(provider: BusinessRulesProvider, getter_name: str) -> Any:
    getter = getattr(provider, getter_name, None)
    if getter is None:
        logger.debug("Rules provider has no %s(), using default", getter_name)
        return None

    value = getter()
    if value is None:
        logger.debug("Rules provider returned nothing for %s(), using default", getter_name)
    return value


def _merge_over(default: Any, value: Any, label: str) -> Any:
    """
    Accept an instance of the default's type or a partial mapping of its fields.

    Anything that cannot be merged into a consistent value is logged and
    replaced by the default.
    """
    if value is None:
        return default
    if isinstance(value, type(default)):
        return value
    if not isinstance(value, Mapping):
        logger.warning("Unsupported %s value %r, using defaults", label, value)
        return default

    known = {f.name for f in fields(default)}
    try:
        return replace(
            default,
            **{key: item for key, item in value.items() if key in known and item is not None},
        )
    except (TypeError, ValueError) as exc:
        logger.warning("Invalid %s %r (%s), using defaults", label, value, exc)
        return default


def _merge_business_hours(value: Any) -> BusinessHours:
    hours = _merge_over(DEFAULT_BUSINESS_HOURS, value, "business hours")
    if not all(isinstance(getattr(hours, f.name), int) for f in fields(BusinessHours)):
        logger.warning("Non-integer business hours %r, using defaults", value)
        return DEFAULT_BUSINESS_HOURS
    return hours


def _merge_cancellation(value: Any) -> CancellationPolicy:
    return _merge_over(DEFAULT_POLICY.cancellation_policy, value, "cancellation policy")


def _or_default(value: Optional[int], default: int) -> int:
    return default if value is None else int(value)


def load_rules(provider: Optional[BusinessRulesProvider]) -> Tuple[BusinessHours, BookingPolicy]:
    """
    Build business hours and booking policy from a provider.

    Args:
        provider: Rules provider, or None to use defaults only

    Returns:
        Tuple of (BusinessHours, BookingPolicy)
    """
    if provider is None:
        return DEFAULT_BUSINESS_HOURS, DEFAULT_POLICY

    business_hours = _merge_business_hours(_read(provider, "get_business_hours"))

    working_days = _read(provider, "get_working_days")
    cancellation = _merge_cancellation(_read(provider, "get_cancellation_policy"))

    policy = BookingPolicy(
        working_days=DEFAULT_POLICY.working_days if working_days is None else frozenset(working_days),
        slot_duration_minutes=_or_default(
            _read(provider, "get_slot_duration_minutes"),
            DEFAULT_POLICY.slot_duration_minutes,
        ),
        advance_booking_days=_or_default(
            _read(provider, "get_advance_booking_days"),
            DEFAULT_POLICY.advance_booking_days,
        ),
        min_lead_time_minutes=_or_default(
            _read(provider, "get_min_lead_time_minutes"),
            DEFAULT_POLICY.min_lead_time_minutes,
        ),
        cancellation_enabled=cancellation.enabled,
        cancellation_lead_hours=cancellation.lead_hours,
        max_active_bookings_per_user=_or_default(
            _read(provider, "get_max_active_bookings_per_user"),
            DEFAULT_POLICY.max_active_bookings_per_user,
        ),
    )

    return business_hours, policy
