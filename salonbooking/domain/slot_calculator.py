"""
Core business logic for calculating bookable appointment slots.

Pure domain logic without any external dependencies (no API calls, no
database, no I/O). The current time is always passed in explicitly.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Iterable, List, Optional

import pendulum
from pendulum import DateTime

from .exceptions import ConfigurationError, InvalidRequestError, InvalidServiceError
from .models import (
    Appointment,
    AvailabilityResult,
    AvailabilityStatus,
    Service,
    Slot,
    TimeRange,
    WorkingHours,
    as_plain_date,
    weekday_index,
)

DEFAULT_TIMEZONE = "America/Sao_Paulo"


class SlotCalculator:
    """
    Calculates the bookable start times of one service with one professional
    on one calendar day.

    Algorithm:
    1. Reject the day if the service is not offered on it
    2. Reject the day if the professional has no working hours for the weekday
    3. Anchor the working window on the date
    4. Walk the window in steps of the service duration, dropping slots that
       start in the past or overlap a non-cancelled appointment
    5. Return the remaining start times, already in ascending order
    """

    def __init__(self, timezone: str = DEFAULT_TIMEZONE):
        self.timezone = timezone

    def compute_available_slots(
        self,
        day: date,
        service: Service,
        working_hours: Optional[WorkingHours],
        existing_appointments: Iterable[Appointment],
        now: datetime,
    ) -> List[Slot]:
        """
        Compute the ordered list of bookable slots for a day.

        Args:
            day: Target calendar date (a time component is ignored)
            service: Service being booked
            working_hours: The professional's hours for the date's weekday, or None
            existing_appointments: Appointments of the professional around that day
            now: Current instant; slots starting before it are dropped

        Returns:
            List of Slot objects in ascending start order

        Raises:
            InvalidRequestError: If day, service or now are missing
            InvalidServiceError: If the service duration is not positive
            ConfigurationError: If the working window is empty or inverted
        """
        return self.search(day, service, working_hours, existing_appointments, now).slots

    def search(
        self,
        day: date,
        service: Service,
        working_hours: Optional[WorkingHours],
        existing_appointments: Iterable[Appointment],
        now: datetime,
    ) -> AvailabilityResult:
        """
        Same as ``compute_available_slots`` but also reports why a day has no slots.
        """
        target = self._normalize_date(day)
        current = self._normalize_now(now)
        self.validate_service(service)

        if not service.is_offered_on(target):
            return AvailabilityResult(status=AvailabilityStatus.SERVICE_NOT_OFFERED)

        if working_hours is None:
            return AvailabilityResult(status=AvailabilityStatus.PROFESSIONAL_OFF)

        if not isinstance(working_hours, WorkingHours):
            raise InvalidRequestError(f"Expected WorkingHours, got {type(working_hours).__name__}")
        if working_hours.weekday != weekday_index(target):
            raise InvalidRequestError(
                f"Working hours are for weekday {working_hours.weekday}, "
                f"but {target.isoformat()} is weekday {weekday_index(target)}"
            )

        window = self.build_window(target, working_hours)
        blocking = self._blocking_appointments(existing_appointments, working_hours.professional_id)

        slots = [
            Slot(
                start=candidate.start,
                end=candidate.end,
                professional_id=working_hours.professional_id,
                service_id=service.id,
            )
            for candidate in self._walk_window(window, service.duration_minutes)
            if candidate.start >= current
            and find_conflict(candidate, blocking) is None
        ]

        status = AvailabilityStatus.AVAILABLE if slots else AvailabilityStatus.FULLY_BOOKED
        return AvailabilityResult(status=status, slots=slots)

    def _normalize_date(self, day: date) -> date:
        if day is None:
            raise InvalidRequestError("A date is required to search for slots")
        if isinstance(day, date):
            return as_plain_date(day)
        raise InvalidRequestError(f"Invalid date: {day!r}")

    def _normalize_now(self, now: datetime) -> DateTime:
        """Interpret a naive ``now`` in the calculator's timezone."""
        if now is None:
            raise InvalidRequestError("The current time must be supplied")
        if not isinstance(now, datetime):
            raise InvalidRequestError(f"Invalid current time: {now!r}")
        if now.tzinfo is None:
            return pendulum.instance(now, tz=self.timezone)
        return pendulum.instance(now)

    @staticmethod
    def validate_service(service: Service) -> None:
        if service is None:
            raise InvalidRequestError("A service is required to search for slots")
        if not isinstance(service.duration_minutes, int) or service.duration_minutes <= 0:
            raise InvalidServiceError(
                f"Service {service.id} has a non-positive duration: {service.duration_minutes}"
            )

    def build_window(self, day: date, working_hours: WorkingHours) -> TimeRange:
        start, end = working_hours.window_for(day, self.timezone)
        if end <= start:
            raise ConfigurationError(
                f"Working hours for professional {working_hours.professional_id} on weekday "
                f"{working_hours.weekday} end at {working_hours.end_time} "
                f"before they start at {working_hours.start_time}"
            )
        return TimeRange(start=start, end=end)

    @staticmethod
    def _blocking_appointments(
        appointments: Iterable[Appointment],
        professional_id: str,
    ) -> List[Appointment]:
        """
        Keep active appointments of the professional.

        Appointments without a professional id are kept; the caller already
        scoped the query.
        """
        return [
            appointment for appointment in appointments or []
            if appointment.is_active
            and (not appointment.professional_id or appointment.professional_id == professional_id)
        ]

    @staticmethod
    def _walk_window(window: TimeRange, duration_minutes: int) -> Iterable[TimeRange]:
        """
        Yield consecutive candidate slots aligned on the window start.

        A candidate whose end would pass the window end stops the walk.
        """
        cursor = window.start
        while True:
            slot_end = cursor.add(minutes=duration_minutes)
            if slot_end > window.end:
                return
            yield TimeRange(start=cursor, end=slot_end)
            cursor = slot_end


def find_conflict(slot: TimeRange, appointments: Iterable[Appointment]) -> Optional[Appointment]:
    """Return the first appointment overlapping the slot, or None."""
    for appointment in appointments:
        if appointment.blocks(slot):
            return appointment
    return None


def compute_available_slots(
    day: date,
    service: Service,
    working_hours: Optional[WorkingHours],
    existing_appointments: Iterable[Appointment],
    now: datetime,
    timezone: str = DEFAULT_TIMEZONE,
) -> List[Slot]:
    """Functional shortcut for ``SlotCalculator(timezone).compute_available_slots``."""
    return SlotCalculator(timezone=timezone).compute_available_slots(
        day, service, working_hours, existing_appointments, now
    )
