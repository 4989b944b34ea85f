"""
Tests for the AvailabilityService facade.
"""

import logging
from typing import Dict, List, Optional

import pendulum
import pytest

from slotengine.adapters.booking_repository import InMemoryBookingRepository
from slotengine.adapters.identity import StaticIdentityProvider
from slotengine.domain.models import Booking, BusinessHours, CancellationPolicy, TimeSlot
from slotengine.domain.slot_generator import SlotGenerator
from slotengine.domain.validation import RejectionReason
from slotengine.services.availability import AvailabilityService, merge_slots
from slotengine.services.rules import DEFAULT_POLICY, load_rules

TZ = "Europe/Madrid"
NOW = pendulum.datetime(2024, 11, 25, 12, 0, tz=TZ)  # Monday
MONDAY = pendulum.date(2024, 11, 25)
TUESDAY = pendulum.date(2024, 11, 26)
WEDNESDAY = pendulum.date(2024, 11, 27)


class StubRules:
    """Rules provider returning whatever it was given, None for the rest."""

    def __init__(self, **values):
        self._values = values

    def _get(self, name):
        return self._values.get(name)

    def get_business_hours(self):
        return self._get("business_hours")

    def get_working_days(self):
        return self._get("working_days")

    def get_slot_duration_minutes(self):
        return self._get("slot_duration_minutes")

    def get_advance_booking_days(self):
        return self._get("advance_booking_days")

    def get_min_lead_time_minutes(self):
        return self._get("min_lead_time_minutes")

    def get_cancellation_policy(self):
        return self._get("cancellation")

    def get_max_active_bookings_per_user(self):
        return self._get("max_active_bookings_per_user")


class StubCatalog:
    """Service catalog over an ordered id -> duration mapping."""

    def __init__(self, durations: Dict[str, int]):
        self._durations = durations

    def get_service_duration(self, service_id: str) -> Optional[int]:
        return self._durations.get(service_id)

    def list_active_service_ids(self) -> List[str]:
        return list(self._durations)


class CountingRepository(InMemoryBookingRepository):
    """In-memory repository that counts snapshot reads."""

    def __init__(self, bookings=None):
        super().__init__(bookings)
        self.calls = 0

    def list_bookings(self):
        self.calls += 1
        return super().list_bookings()


class MutableClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


def _build_service(
    bookings=(),
    durations=None,
    rules=None,
    identity=None,
    clock=None,
) -> AvailabilityService:
    return AvailabilityService(
        rules=rules or StubRules(),
        bookings=CountingRepository(bookings),
        catalog=StubCatalog(durations if durations is not None else {"haircut": 30}),
        identity=identity,
        clock=clock or (lambda: NOW),
    )


class TestLoadRules:
    """Tests for merging provider values over defaults."""

    def test_missing_values_use_defaults(self):
        """A provider that returns nothing yields the built-in rules."""
        business_hours, policy = load_rules(StubRules())

        assert business_hours == BusinessHours(start=8, end=20, lunch_start=13, lunch_end=14)
        assert policy == DEFAULT_POLICY

    def test_no_provider_uses_defaults(self):
        assert load_rules(None) == (BusinessHours(), DEFAULT_POLICY)

    def test_partial_business_hours_are_merged(self):
        """Only the supplied business hour fields override the defaults."""
        business_hours, _ = load_rules(StubRules(business_hours={"end": 18}))

        assert business_hours == BusinessHours(start=8, end=18, lunch_start=13, lunch_end=14)

    def test_inconsistent_business_hours_fall_back_to_defaults(self, caplog):
        """A partial mapping that closes before opening is ignored with a warning."""
        with caplog.at_level(logging.WARNING):
            business_hours, _ = load_rules(StubRules(business_hours={"end": 7}))

        assert business_hours == BusinessHours()
        assert "Invalid business hours" in caplog.text

    @pytest.mark.parametrize("value", ["8-20", {"start": "eight"}, {"start": 8.5}])
    def test_unusable_business_hours_fall_back_to_defaults(self, value):
        business_hours, _ = load_rules(StubRules(business_hours=value))

        assert business_hours == BusinessHours()

    def test_partial_cancellation_mapping_is_merged(self):
        """A cancellation mapping only overrides the keys it carries."""
        _, policy = load_rules(StubRules(cancellation={"enabled": True}))

        assert policy.cancellation_enabled
        assert policy.cancellation_lead_hours == 1

    def test_unusable_cancellation_falls_back_to_defaults(self):
        _, policy = load_rules(StubRules(cancellation="strict"))

        assert not policy.cancellation_enabled

    def test_facade_survives_inconsistent_rules(self):
        """Queries and checks keep working on top of broken business hours."""
        service = _build_service(rules=StubRules(business_hours={"end": 7}))

        assert len(service.get_day("2024-11-26", "haircut")) == 22
        assert service.can_book("2024-11-26", "10:00", "haircut")
        assert len(service.get_week(MONDAY, "haircut").days) == 7

    def test_supplied_values_win(self):
        rules = StubRules(
            working_days=[1, 2],
            slot_duration_minutes=15,
            cancellation=CancellationPolicy(enabled=True, lead_hours=24),
        )

        _, policy = load_rules(rules)

        assert policy.working_days == frozenset({1, 2})
        assert policy.slot_duration_minutes == 15
        assert policy.advance_booking_days == 30
        assert policy.cancellation_enabled
        assert policy.cancellation_lead_hours == 24


class TestMergeSlots:
    """Tests for merging per-service grids."""

    def test_available_in_any_service_wins(self):
        """A time taken for one service but free for another is free."""
        first = [TimeSlot(time="09:00", available=False, conflicting_booking_id="b1", occupant_name="Anna")]
        second = [TimeSlot(time="09:00", available=True), TimeSlot(time="08:30", available=True)]

        merged = merge_slots([first, second])

        assert [slot.time for slot in merged] == ["08:30", "09:00"]
        assert merged[1] == TimeSlot(time="09:00", available=True)

    def test_first_unavailable_slot_is_kept(self):
        """When no service frees a time the first annotation is kept."""
        first = [TimeSlot(time="09:00", available=False, conflicting_booking_id="b1")]
        second = [TimeSlot(time="09:00", available=False, conflicting_booking_id="b2")]

        assert merge_slots([first, second])[0].conflicting_booking_id == "b1"


class TestDayQueries:
    """Tests for day level queries."""

    def test_get_day_for_service(self):
        """Available slots of a service, in order."""
        slots = _build_service().get_day(TUESDAY, "haircut")

        assert len(slots) == 22
        assert slots[0].time == "08:00"

    def test_get_day_hides_taken_slots_by_default(self):
        booking = Booking(id="b1", date=TUESDAY, start_time="10:00", service_id="haircut")
        service = _build_service([booking])

        free = [slot.time for slot in service.get_day(TUESDAY, "haircut")]
        every = [slot.time for slot in service.get_day(TUESDAY, "haircut", include_unavailable=True)]

        assert "10:00" not in free
        assert "10:00" in every
        assert len(every) == 22

    def test_unknown_service_returns_empty_and_is_not_cached(self):
        """An unknown service degrades to no slots."""
        service = _build_service()

        assert service.get_day(TUESDAY, "massage") == []
        assert len(service.cache) == 0

    def test_result_is_cached(self):
        """A second query is answered without reading bookings again."""
        service = _build_service()
        repository = service._bookings

        first = service.get_day_availability(TUESDAY, "haircut")
        second = service.get_day_availability(TUESDAY, "haircut")

        assert first is second
        assert repository.calls == 1
        assert service.cache.day_keys() == [("2024-11-26", "haircut")]

    def test_cached_result_matches_fresh_generation(self):
        """A cached day equals an uncached generation over the same snapshot."""
        bookings = [
            Booking(id="b1", date=TUESDAY, start_time="10:00", service_id="haircut"),
            Booking(id="b2", date=TUESDAY, start_time="16:30", service_id="haircut", client_name="Marc"),
        ]
        service = _build_service(bookings)

        service.get_day(TUESDAY, "haircut")
        cached = service.get_day(TUESDAY, "haircut", include_unavailable=True)
        fresh = SlotGenerator(service.validator(NOW)).generate_slots(TUESDAY, 30)

        assert service.cache.day_keys() == [("2024-11-26", "haircut")]
        assert cached == fresh

    def test_invalidate_recomputes(self):
        """After invalidation new bookings are picked up."""
        service = _build_service()
        assert service.is_time_slot_available(TUESDAY, "10:00", "haircut")

        service._bookings.add(Booking(id="b1", date=TUESDAY, start_time="10:00", service_id="haircut"))
        assert service.is_time_slot_available(TUESDAY, "10:00", "haircut")

        assert service.invalidate("2024-11-26") == 1
        assert not service.is_time_slot_available(TUESDAY, "10:00", "haircut")

    def test_is_time_slot_available_normalises_time(self):
        service = _build_service()

        assert service.is_time_slot_available("2024-11-26", "9:30", "haircut")
        assert not service.is_time_slot_available("2024-11-26", "13:00", "haircut")

    def test_stale_day_is_not_served(self):
        """Once the date has passed the cached grid is evicted and recomputed."""
        clock = MutableClock(NOW)
        service = _build_service(clock=clock)
        assert len(service.get_day(TUESDAY, "haircut")) == 22

        clock.now = pendulum.datetime(2024, 11, 27, 9, 0, tz=TZ)

        assert service.get_day(TUESDAY, "haircut") == []

    def test_merged_day_without_service(self):
        """Without a service, a time is free if any active service has it free."""
        booking = Booking(id="b1", date=TUESDAY, start_time="12:00", service_id="haircut")
        service = _build_service([booking], durations={"colour": 90, "haircut": 30})

        availability = service.get_day_availability(TUESDAY)
        slots = {slot.time: slot for slot in availability.slots}

        assert slots["11:00"].available
        assert slots["11:00"].conflicting_booking_id is None
        assert not slots["12:00"].available
        assert slots["12:00"].conflicting_booking_id == "b1"
        assert service.cache.day_keys() == [("2024-11-26", "ALL")]

    def test_merged_non_working_day(self):
        availability = _build_service().get_day_availability(MONDAY)

        assert not availability.is_working_day
        assert availability.slots == ()


class TestWeekQueries:
    """Tests for week level queries."""

    def test_week_has_seven_days(self):
        week = _build_service().get_week(MONDAY, "haircut")

        assert [day.date for day in week.days] == [MONDAY.add(days=i) for i in range(7)]
        assert not week.days[0].is_working_day
        assert week.days[1].total_slots == 22

    def test_week_is_cached(self):
        service = _build_service()

        first = service.get_week(MONDAY, "haircut")

        assert service.get_week("2024-11-25", "haircut") is first
        assert service.cache.week_keys() == [("2024-11-25", "haircut")]

    def test_week_time_slots_by_date(self):
        slots = _build_service().get_week_time_slots(MONDAY, "haircut")

        assert list(slots) == [MONDAY.add(days=i).to_date_string() for i in range(7)]
        assert slots["2024-11-25"] == []
        assert len(slots["2024-11-26"]) == 22


class TestSearchAndPreload:
    """Tests for forward search and cache warming."""

    def test_next_slot_within_horizon(self):
        """The horizon is inclusive of its last day."""
        service = _build_service(rules=StubRules(working_days=[2]))
        saturday = pendulum.date(2024, 11, 30)

        assert service.get_next_available_slot("haircut", saturday, horizon_days=2) is None

        found = service.get_next_available_slot("haircut", saturday, horizon_days=3)
        assert found.date == pendulum.date(2024, 12, 3)
        assert found.time == "08:00"

    def test_next_slot_defaults_to_today(self):
        """Today (a Monday) is skipped and Tuesday morning is found."""
        found = _build_service().get_next_available_slot("haircut")

        assert found.date == TUESDAY
        assert found.time == "08:00"

    def test_next_slot_unknown_service(self):
        assert _build_service().get_next_available_slot("massage", horizon_days=5) is None

    def test_preload_range(self):
        """Every (day, service) pair is warmed, even for a reversed range."""
        service = _build_service(durations={"colour": 90, "haircut": 30})

        warmed = service.preload_range(WEDNESDAY, MONDAY)

        assert warmed == 6
        assert len(service.cache.day_keys()) == 6

    def test_preload_selected_services(self):
        service = _build_service(durations={"colour": 90, "haircut": 30})

        assert service.preload_range(TUESDAY, TUESDAY, ["haircut"]) == 1
        assert service.cache.day_keys() == [("2024-11-26", "haircut")]

    def test_purge_stale(self):
        clock = MutableClock(NOW)
        service = _build_service(clock=clock)
        service.preload_range(TUESDAY, WEDNESDAY)

        clock.now = pendulum.datetime(2024, 11, 27, 8, 0, tz=TZ)

        assert service.purge_stale() == 1
        assert service.cache.day_keys() == [("2024-11-27", "haircut")]


class TestBookingChecks:
    """Tests for write-time checks."""

    def test_can_book_free_slot(self):
        assert _build_service().can_book(TUESDAY, "10:00", "haircut")

    def test_unknown_service_is_rejected(self):
        decision = _build_service().check_booking(TUESDAY, "10:00", "massage")

        assert decision.reasons == (RejectionReason.UNKNOWN_SERVICE,)

    def test_booking_cap_uses_identity(self):
        """A user at the cap is refused, another user is not."""
        held = Booking(
            id="b1",
            date=WEDNESDAY,
            start_time="09:00",
            service_id="haircut",
            owner_email="anna@example.com",
        )
        capped = _build_service([held], identity=StaticIdentityProvider(email="ANNA@example.com"))
        other = _build_service([held], identity=StaticIdentityProvider(user_id="user-2"))

        decision = capped.check_booking(TUESDAY, "10:00", "haircut")

        assert decision.reasons == (RejectionReason.BOOKING_LIMIT_REACHED,)
        assert other.can_book(TUESDAY, "10:00", "haircut")

    def test_check_is_not_cached(self):
        """Write-time checks always read a fresh snapshot."""
        service = _build_service()
        service.can_book(TUESDAY, "10:00", "haircut")
        service.can_book(TUESDAY, "10:00", "haircut")

        assert service._bookings.calls == 2
        assert len(service.cache) == 0

    @pytest.mark.parametrize(
        "now, expected",
        [
            (pendulum.datetime(2024, 11, 26, 8, 30, tz=TZ), True),
            (pendulum.datetime(2024, 11, 26, 9, 0, tz=TZ), True),
            (pendulum.datetime(2024, 11, 26, 9, 30, tz=TZ), False),
        ],
    )
    def test_can_cancel(self, now, expected):
        """Cancellation closes one hour before a 10:00 booking."""
        booking = Booking(id="b1", date=TUESDAY, start_time="10:00", service_id="haircut")
        service = _build_service(
            [booking],
            rules=StubRules(cancellation=CancellationPolicy(enabled=True, lead_hours=1)),
            clock=lambda: now,
        )

        assert service.can_cancel(booking) is expected
