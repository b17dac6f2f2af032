"""
Tests for slot calculator.
"""

from datetime import date, datetime, time

import pendulum
import pytest

from salonbooking.domain.exceptions import (
    ConfigurationError,
    InvalidRequestError,
    InvalidServiceError,
)
from salonbooking.domain.models import (
    Appointment,
    AppointmentStatus,
    AvailabilityStatus,
    Service,
    WeekdayRestriction,
    WorkingHours,
)
from salonbooking.domain.slot_calculator import SlotCalculator, compute_available_slots

TZ = "America/Sao_Paulo"
MONDAY = date(2024, 11, 25)
SUNDAY = date(2024, 11, 24)
EARLIER = pendulum.datetime(2024, 11, 20, 8, 0, tz=TZ)


def _service(duration: int = 60, weekdays: WeekdayRestriction | None = None, **kwargs) -> Service:
    return Service(
        id="srv-1",
        name="Corte",
        duration_minutes=duration,
        weekdays=weekdays or WeekdayRestriction.unrestricted(),
        **kwargs,
    )


def _hours(weekday: int = 1, start: time = time(9, 0), end: time = time(12, 0)) -> WorkingHours:
    return WorkingHours(professional_id="prof-1", weekday=weekday, start_time=start, end_time=end)


def _appointment(start: str, end: str, status=AppointmentStatus.CONFIRMED, professional_id="prof-1") -> Appointment:
    return Appointment(
        id=f"ag-{start}",
        professional_id=professional_id,
        service_id="srv-1",
        start=pendulum.parse(f"2024-11-25 {start}", tz=TZ),
        end=pendulum.parse(f"2024-11-25 {end}", tz=TZ),
        status=status,
    )


def _starts(slots) -> list[str]:
    return [slot.start.format("HH:mm") for slot in slots]


class TestScenarios:
    """Reference scenarios for a 09:00-12:00 window."""

    def setup_method(self):
        self.calculator = SlotCalculator(timezone=TZ)

    def test_free_window_yields_hourly_slots(self):
        """Scenario A: no appointments, 60 minute service."""
        slots = self.calculator.compute_available_slots(MONDAY, _service(60), _hours(), [], EARLIER)

        assert _starts(slots) == ["09:00", "10:00", "11:00"]
        assert all(slot.end == slot.start.add(minutes=60) for slot in slots)

    def test_appointment_removes_overlapping_slot(self):
        """Scenario B: an appointment at 10:00-11:00 blocks only that slot."""
        appointments = [_appointment("10:00", "11:00")]

        slots = self.calculator.compute_available_slots(MONDAY, _service(60), _hours(), appointments, EARLIER)

        assert _starts(slots) == ["09:00", "11:00"]

    def test_slot_may_end_exactly_at_window_end(self):
        """Scenario C: 45 minute steps, last slot ends at 12:00."""
        slots = self.calculator.compute_available_slots(MONDAY, _service(45), _hours(), [], EARLIER)

        assert _starts(slots) == ["09:00", "09:45", "10:30", "11:15"]
        assert slots[-1].end == pendulum.datetime(2024, 11, 25, 12, 0, tz=TZ)

    def test_past_slots_are_dropped_today(self):
        """Scenario D: at 10:30 only the 11:00 slot remains."""
        now = pendulum.datetime(2024, 11, 25, 10, 30, tz=TZ)

        slots = self.calculator.compute_available_slots(MONDAY, _service(60), _hours(), [], now)

        assert _starts(slots) == ["11:00"]

    def test_weekday_restriction_excludes_sunday(self):
        """Scenario E: Monday-Friday service is never offered on Sunday."""
        service = _service(60, WeekdayRestriction.restricted_to({1, 2, 3, 4, 5}))

        slots = self.calculator.compute_available_slots(SUNDAY, service, _hours(weekday=0), [], EARLIER)

        assert slots == []


class TestAvailabilityStatus:
    """The search result tells closed days apart from fully booked ones."""

    def setup_method(self):
        self.calculator = SlotCalculator(timezone=TZ)

    def test_service_not_offered(self):
        service = _service(60, WeekdayRestriction.restricted_to({2}))

        result = self.calculator.search(MONDAY, service, _hours(), [], EARLIER)

        assert result.status is AvailabilityStatus.SERVICE_NOT_OFFERED
        assert not result

    def test_professional_off(self):
        result = self.calculator.search(MONDAY, _service(), None, [], EARLIER)

        assert result.status is AvailabilityStatus.PROFESSIONAL_OFF
        assert result.slots == []

    def test_fully_booked(self):
        appointments = [_appointment("09:00", "12:00")]

        result = self.calculator.search(MONDAY, _service(), _hours(), appointments, EARLIER)

        assert result.status is AvailabilityStatus.FULLY_BOOKED

    def test_available(self):
        result = self.calculator.search(MONDAY, _service(), _hours(), [], EARLIER)

        assert result.status is AvailabilityStatus.AVAILABLE
        assert len(result.slots) == 3


class TestConflicts:
    """Conflict detection against existing appointments."""

    def setup_method(self):
        self.calculator = SlotCalculator(timezone=TZ)

    def test_appointment_inside_slot_blocks_it(self):
        """A short appointment strictly inside a slot still conflicts."""
        appointments = [_appointment("10:15", "10:30")]

        slots = self.calculator.compute_available_slots(MONDAY, _service(60), _hours(), appointments, EARLIER)

        assert _starts(slots) == ["09:00", "11:00"]

    def test_appointment_spanning_two_slots_blocks_both(self):
        appointments = [_appointment("09:30", "10:30")]

        slots = self.calculator.compute_available_slots(MONDAY, _service(60), _hours(), appointments, EARLIER)

        assert _starts(slots) == ["11:00"]

    def test_touching_appointment_does_not_conflict(self):
        """Half-open intervals: an appointment ending at 10:00 leaves 10:00 free."""
        appointments = [_appointment("08:00", "10:00")]

        slots = self.calculator.compute_available_slots(MONDAY, _service(60), _hours(), appointments, EARLIER)

        assert _starts(slots) == ["10:00", "11:00"]

    def test_cancelled_appointments_are_ignored(self):
        appointments = [_appointment("10:00", "11:00", status=AppointmentStatus.CANCELLED)]

        slots = self.calculator.compute_available_slots(MONDAY, _service(60), _hours(), appointments, EARLIER)

        assert _starts(slots) == ["09:00", "10:00", "11:00"]

    def test_finalized_appointments_still_block(self):
        appointments = [_appointment("10:00", "11:00", status=AppointmentStatus.FINALIZED)]

        slots = self.calculator.compute_available_slots(MONDAY, _service(60), _hours(), appointments, EARLIER)

        assert _starts(slots) == ["09:00", "11:00"]

    def test_other_professionals_appointments_are_ignored(self):
        appointments = [_appointment("10:00", "11:00", professional_id="prof-2")]

        slots = self.calculator.compute_available_slots(MONDAY, _service(60), _hours(), appointments, EARLIER)

        assert _starts(slots) == ["09:00", "10:00", "11:00"]

    def test_appointments_on_other_days_are_tolerated(self):
        """A superset of appointments does not change the result."""
        other_day = Appointment(
            id="ag-x",
            professional_id="prof-1",
            service_id="srv-1",
            start=pendulum.datetime(2024, 11, 26, 10, 0, tz=TZ),
            end=pendulum.datetime(2024, 11, 26, 11, 0, tz=TZ),
        )

        slots = self.calculator.compute_available_slots(MONDAY, _service(60), _hours(), [other_day], EARLIER)

        assert _starts(slots) == ["09:00", "10:00", "11:00"]

    def test_appointment_in_other_timezone_is_compared_by_instant(self):
        """10:00 in São Paulo is 13:00 UTC."""
        appointment = Appointment(
            id="ag-utc",
            professional_id="prof-1",
            service_id="srv-1",
            start=pendulum.datetime(2024, 11, 25, 13, 0, tz="UTC"),
            end=pendulum.datetime(2024, 11, 25, 14, 0, tz="UTC"),
        )

        slots = self.calculator.compute_available_slots(MONDAY, _service(60), _hours(), [appointment], EARLIER)

        assert _starts(slots) == ["09:00", "11:00"]


class TestEdgeCases:
    """Input validation and window policy."""

    def setup_method(self):
        self.calculator = SlotCalculator(timezone=TZ)

    def test_non_positive_duration_raises(self):
        with pytest.raises(InvalidServiceError):
            self.calculator.compute_available_slots(MONDAY, _service(0), _hours(), [], EARLIER)

    def test_inverted_window_raises(self):
        hours = _hours(start=time(18, 0), end=time(9, 0))

        with pytest.raises(ConfigurationError):
            self.calculator.compute_available_slots(MONDAY, _service(), hours, [], EARLIER)

    def test_empty_window_raises(self):
        hours = _hours(start=time(9, 0), end=time(9, 0))

        with pytest.raises(ConfigurationError):
            self.calculator.compute_available_slots(MONDAY, _service(), hours, [], EARLIER)

    def test_window_ending_at_midnight_runs_to_end_of_day(self):
        hours = _hours(start=time(21, 0), end=time(0, 0))

        slots = self.calculator.compute_available_slots(MONDAY, _service(60), hours, [], EARLIER)

        assert _starts(slots) == ["21:00", "22:00", "23:00"]
        assert slots[-1].end == pendulum.datetime(2024, 11, 26, 0, 0, tz=TZ)

    def test_missing_date_raises(self):
        with pytest.raises(InvalidRequestError):
            self.calculator.compute_available_slots(None, _service(), _hours(), [], EARLIER)

    def test_missing_service_raises(self):
        with pytest.raises(InvalidRequestError):
            self.calculator.compute_available_slots(MONDAY, None, _hours(), [], EARLIER)

    def test_missing_now_raises(self):
        with pytest.raises(InvalidRequestError):
            self.calculator.compute_available_slots(MONDAY, _service(), _hours(), [], None)

    def test_working_hours_for_another_weekday_raise(self):
        with pytest.raises(InvalidRequestError):
            self.calculator.compute_available_slots(MONDAY, _service(), _hours(weekday=3), [], EARLIER)

    def test_datetime_input_ignores_time_component(self):
        day = pendulum.datetime(2024, 11, 25, 17, 45, tz=TZ)

        slots = self.calculator.compute_available_slots(day, _service(60), _hours(), [], EARLIER)

        assert _starts(slots) == ["09:00", "10:00", "11:00"]

    def test_naive_now_is_read_in_calculator_timezone(self):
        now = datetime(2024, 11, 25, 10, 30)

        slots = self.calculator.compute_available_slots(MONDAY, _service(60), _hours(), [], now)

        assert _starts(slots) == ["11:00"]

    def test_slot_starting_exactly_now_is_kept(self):
        now = pendulum.datetime(2024, 11, 25, 10, 0, tz=TZ)

        slots = self.calculator.compute_available_slots(MONDAY, _service(60), _hours(), [], now)

        assert _starts(slots) == ["10:00", "11:00"]

    def test_past_day_has_no_slots(self):
        now = pendulum.datetime(2024, 11, 26, 8, 0, tz=TZ)

        slots = self.calculator.compute_available_slots(MONDAY, _service(60), _hours(), [], now)

        assert slots == []

    def test_alignment_follows_window_start(self):
        """Slots start at the window start, not on round clock times."""
        hours = _hours(start=time(9, 10), end=time(11, 0))

        slots = self.calculator.compute_available_slots(MONDAY, _service(50), hours, [], EARLIER)

        assert _starts(slots) == ["09:10", "10:00"]

    def test_specific_dates_override_weekdays(self):
        service = _service(
            60,
            WeekdayRestriction.restricted_to({2}),
            specific_dates=frozenset({MONDAY}),
        )

        slots = self.calculator.compute_available_slots(MONDAY, service, _hours(), [], EARLIER)

        assert len(slots) == 3

    def test_date_outside_specific_dates_has_no_slots(self):
        service = _service(60, specific_dates=frozenset({date(2024, 12, 2)}))

        slots = self.calculator.compute_available_slots(MONDAY, service, _hours(), [], EARLIER)

        assert slots == []

    def test_slots_carry_professional_and_service(self):
        slots = self.calculator.compute_available_slots(MONDAY, _service(60), _hours(), [], EARLIER)

        assert {slot.professional_id for slot in slots} == {"prof-1"}
        assert {slot.service_id for slot in slots} == {"srv-1"}


class TestProperties:
    """Invariants checked over a grid of durations and appointment layouts."""

    LAYOUTS = [
        [],
        [("09:20", "09:50")],
        [("10:00", "11:00"), ("13:30", "14:10")],
        [("08:00", "09:30"), ("12:00", "12:05"), ("16:00", "19:00")],
    ]

    @pytest.mark.parametrize("duration", [15, 25, 30, 45, 60, 90, 120])
    @pytest.mark.parametrize("layout", LAYOUTS)
    def test_invariants(self, duration, layout):
        hours = _hours(start=time(9, 0), end=time(17, 0))
        appointments = [_appointment(start, end) for start, end in layout]
        now = pendulum.datetime(2024, 11, 25, 11, 40, tz=TZ)
        window_minutes = 8 * 60

        slots = compute_available_slots(MONDAY, _service(duration), hours, appointments, now, timezone=TZ)

        assert len(slots) <= window_minutes // duration
        assert [slot.start for slot in slots] == sorted(slot.start for slot in slots)

        window_start = pendulum.datetime(2024, 11, 25, 9, 0, tz=TZ)
        window_end = pendulum.datetime(2024, 11, 25, 17, 0, tz=TZ)
        for slot in slots:
            assert slot.start >= now
            assert window_start <= slot.start and slot.end <= window_end
            assert (slot.start - window_start).in_minutes() % duration == 0
            for appointment in appointments:
                assert not (slot.start < appointment.end and slot.end > appointment.start)

    def test_idempotent(self):
        appointments = [_appointment("10:00", "11:00")]
        now = pendulum.datetime(2024, 11, 25, 9, 30, tz=TZ)

        first = compute_available_slots(MONDAY, _service(30), _hours(), appointments, now, timezone=TZ)
        second = compute_available_slots(MONDAY, _service(30), _hours(), appointments, now, timezone=TZ)

        assert first == second

    def test_no_working_hours_always_empty(self):
        appointments = [_appointment("10:00", "11:00")]

        for duration in (15, 60, 240):
            assert compute_available_slots(MONDAY, _service(duration), None, appointments, EARLIER, timezone=TZ) == []
