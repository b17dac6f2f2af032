"""
Application services for searching and booking salon appointments.

The service fetches the inputs of a slot search through a store adapter and
delegates the availability calculation to the domain-level
``SlotCalculator``. The store dependency is a simple protocol so the
Supabase adapter and the in-memory store are interchangeable.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional, Protocol, Sequence, Tuple

import pendulum
from pendulum import DateTime

from ..domain.exceptions import BookingError, ConflictError, InvalidRequestError
from ..domain.models import (
    Appointment,
    AppointmentStatus,
    AvailabilityResult,
    Category,
    ClientInfo,
    Professional,
    Service,
    SlotRequest,
    TimeRange,
    WorkingHours,
    as_plain_date,
    weekday_index,
)
from ..domain.slot_calculator import SlotCalculator, find_conflict

logger = logging.getLogger(__name__)

DEFAULT_CANCEL_REASON = "Outro motivo"
CART_ROLLBACK_REASON = "Sistema: carrinho não concluído"


class SalonStoreProtocol(Protocol):
    """Reads and writes the booking flow needs from the data store."""

    def list_categories(self) -> List[Category]: ...

    def list_services(self, category_id: str | None = None) -> List[Service]: ...

    def list_professionals(self, service_id: str) -> List[Professional]: ...

    def get_service(self, service_id: str) -> Service: ...

    def get_working_hours(self, professional_id: str, weekday: int) -> Optional[WorkingHours]: ...

    def list_appointments(
        self,
        professional_id: str,
        day_start: DateTime,
        day_end: DateTime,
    ) -> List[Appointment]: ...

    def insert_appointment(
        self,
        professional_id: str,
        service_id: str,
        client: ClientInfo,
        start: DateTime,
        end: DateTime,
    ) -> Appointment: ...

    def get_appointment(self, appointment_id: str) -> Optional[Appointment]: ...

    def find_client_appointment(self, appointment_id: str, phone: str) -> Optional[Appointment]: ...

    def cancel_appointment(self, appointment_id: str, reason: str) -> Appointment: ...

    def update_status(self, appointment_id: str, status: AppointmentStatus) -> Appointment: ...

    def upsert_client(self, client: ClientInfo) -> None: ...


@dataclass(frozen=True)
class CartItem:
    """One selection in the booking cart."""
    professional_id: str
    service_id: str
    start: DateTime


class BookingService:
    """
    Orchestrates slot searches and bookings against a salon store.
    """

    def __init__(
        self,
        store: SalonStoreProtocol,
        slot_calculator: SlotCalculator,
        booking_horizon_months: int = 3,
        max_cart_items: int = 3,
    ) -> None:
        self._store = store
        self._slot_calculator = slot_calculator
        self._booking_horizon_months = booking_horizon_months
        self._max_cart_items = max_cart_items

    @property
    def timezone(self) -> str:
        return self._slot_calculator.timezone

    # Catalogue

    def list_categories(self) -> List[Category]:
        return self._store.list_categories()

    def list_services(self, category_id: str | None = None) -> List[Service]:
        return self._store.list_services(category_id)

    def list_professionals(self, service_id: str) -> List[Professional]:
        return self._store.list_professionals(service_id)

    # Availability

    def find_slots(
        self,
        *,
        professional_id: str,
        service_id: str,
        day: date,
        now: datetime,
    ) -> AvailabilityResult:
        """
        Fetch the service, working hours and appointments for a day and compute its slots.
        """
        request = SlotRequest(
            professional_id=professional_id,
            service_id=service_id,
            date=day,
            now=now,
        )
        target = as_plain_date(request.date)
        self._check_horizon(target, request.now)

        service = self._store.get_service(request.service_id)

        # Short-circuit before reading working hours or appointments.
        if not service.is_offered_on(target):
            return self._slot_calculator.search(target, service, None, [], request.now)

        working_hours = self._store.get_working_hours(request.professional_id, weekday_index(target))
        if working_hours is None:
            return self._slot_calculator.search(target, service, None, [], request.now)

        appointments = self._appointments_for_day(request.professional_id, target)

        return self._slot_calculator.search(
            target,
            service,
            working_hours,
            appointments,
            request.now,
        )

    # Booking

    def book(
        self,
        *,
        professional_id: str,
        service_id: str,
        start: datetime,
        client: ClientInfo,
        now: datetime,
    ) -> Appointment:
        """
        Re-check that a slot is still free and write the appointment.

        This is a check-then-write without a transaction. A store-level unique
        index on (professional, start) turns the remaining race into a
        ConflictError at write time.

        Raises:
            InvalidRequestError: If the slot is in the past or beyond the booking horizon
            ConflictError: If another appointment now overlaps the slot
        """
        item = CartItem(professional_id=professional_id, service_id=service_id, start=start)
        slot = self._check_item(item, self._as_local(now), planned=[])
        return self._write(item, slot, client)

    def book_cart(
        self,
        items: Sequence[CartItem],
        client: ClientInfo,
        now: datetime,
    ) -> List[Appointment]:
        """
        Book several selections for one client.

        Every item is checked against the store and against the items before it
        in the cart before anything is written. If a write still fails, the
        appointments already written for this cart are cancelled again.
        """
        if not items:
            raise InvalidRequestError("The cart is empty")
        if len(items) > self._max_cart_items:
            raise InvalidRequestError(
                f"At most {self._max_cart_items} services can be booked at once"
            )

        current = self._as_local(now)
        planned: List[Tuple[CartItem, TimeRange]] = []
        for item in items:
            planned.append((item, self._check_item(item, current, planned)))

        self._store.upsert_client(client)

        booked: List[Appointment] = []
        for item, slot in planned:
            try:
                booked.append(self._write(item, slot, client))
            except BookingError:
                self._roll_back(booked)
                raise
        return booked

    # Changes to existing appointments

    def lookup(self, appointment_id: str, phone: str) -> Appointment:
        """
        Find a client's appointment by id and the phone number it was booked with.

        Raises:
            InvalidRequestError: If no appointment matches both
        """
        digits = re.sub(r"[^0-9]", "", phone or "")
        appointment = self._store.find_client_appointment(appointment_id, digits) if digits else None
        if appointment is None:
            raise InvalidRequestError("Appointment not found. Check the id and the phone number.")
        return appointment

    def cancel(
        self,
        appointment_id: str,
        reason: str = DEFAULT_CANCEL_REASON,
        *,
        phone: str | None = None,
        cancelled_by: str = "Cliente",
    ) -> Appointment:
        """
        Cancel an appointment, freeing its slot.

        With ``phone`` the appointment must have been booked with that number,
        as in the client self-service lookup. The stored reason is prefixed
        with who cancelled.

        Raises:
            InvalidRequestError: If the appointment is unknown or already cancelled
        """
        if phone is not None:
            appointment = self.lookup(appointment_id, phone)
        else:
            appointment = self._get_appointment(appointment_id)

        if not appointment.is_active:
            raise InvalidRequestError(f"Appointment {appointment_id} is already cancelled")

        cancelled = self._store.cancel_appointment(
            appointment.id, f"{cancelled_by}: {reason or DEFAULT_CANCEL_REASON}"
        )
        logger.info("Cancelled appointment %s (%s)", appointment.id, cancelled.cancellation_reason)
        return cancelled

    def update_status(self, appointment_id: str, status: AppointmentStatus | str) -> Appointment:
        """
        Change the status of an appointment from the staff agenda.

        Cancelled appointments cannot be reopened; the client books again instead.

        Raises:
            InvalidRequestError: If the status is unknown or the appointment is cancelled
        """
        try:
            status = AppointmentStatus(status)
        except ValueError as exc:
            choices = ", ".join(s.value for s in AppointmentStatus)
            raise InvalidRequestError(f"Unknown status '{status}', expected one of {choices}") from exc

        if status is AppointmentStatus.CANCELLED:
            return self.cancel(appointment_id, cancelled_by="Admin")

        appointment = self._get_appointment(appointment_id)
        if not appointment.is_active:
            raise InvalidRequestError(f"Appointment {appointment_id} is cancelled and cannot be changed")

        updated = self._store.update_status(appointment.id, status)
        logger.info("Appointment %s is now %s", appointment.id, status.value)
        return updated

    # Helpers

    def _check_item(
        self,
        item: CartItem,
        current: DateTime,
        planned: Sequence[Tuple[CartItem, TimeRange]],
    ) -> TimeRange:
        """Run every check that must pass before an item is written and return its slot."""
        slot_start = self._as_local(item.start)

        if slot_start < current:
            raise InvalidRequestError(
                f"Cannot book a slot in the past: {slot_start.format('DD/MM/YYYY HH:mm')}"
            )
        self._check_horizon(as_plain_date(slot_start), current)

        service = self._store.get_service(item.service_id)
        self._slot_calculator.validate_service(service)

        slot = TimeRange(start=slot_start, end=slot_start.add(minutes=service.duration_minutes))
        self._check_within_working_hours(item.professional_id, service, slot)

        appointments = self._store.list_appointments(item.professional_id, slot.start, slot.end)
        conflict = find_conflict(slot, appointments)
        if conflict is not None:
            logger.info(
                "Slot %s for professional %s taken by appointment %s",
                slot, item.professional_id, conflict.id,
            )
            raise ConflictError(
                f"The slot {slot} is no longer available. Please choose another time."
            )

        for other, other_slot in planned:
            if other.professional_id == item.professional_id and other_slot.overlaps(slot):
                raise ConflictError(f"The slot {slot} overlaps another item in the cart ({other_slot})")

        return slot

    def _write(self, item: CartItem, slot: TimeRange, client: ClientInfo) -> Appointment:
        appointment = self._store.insert_appointment(
            item.professional_id,
            item.service_id,
            client,
            slot.start,
            slot.end,
        )
        logger.info("Booked appointment %s for professional %s at %s", appointment.id, item.professional_id, slot)
        return appointment

    def _roll_back(self, booked: Sequence[Appointment]) -> None:
        for appointment in booked:
            try:
                self._store.cancel_appointment(appointment.id, CART_ROLLBACK_REASON)
            except BookingError as exc:
                logger.error("Could not cancel appointment %s of a failed cart: %s", appointment.id, exc)
            else:
                logger.warning("Cancelled appointment %s of a failed cart", appointment.id)

    def _get_appointment(self, appointment_id: str) -> Appointment:
        appointment = self._store.get_appointment(appointment_id)
        if appointment is None:
            raise InvalidRequestError(f"Unknown appointment: {appointment_id}")
        return appointment

    def _check_within_working_hours(self, professional_id: str, service: Service, slot: TimeRange) -> None:
        day = as_plain_date(slot.start)
        if not service.is_offered_on(day):
            raise InvalidRequestError(f"{service.name} is not offered on {day.strftime('%d/%m/%Y')}")

        working_hours = self._store.get_working_hours(professional_id, weekday_index(day))
        if working_hours is None:
            raise InvalidRequestError(f"The professional does not work on {day.strftime('%d/%m/%Y')}")

        window = self._slot_calculator.build_window(day, working_hours)
        if not window.contains(slot):
            raise InvalidRequestError(f"The slot {slot} is outside working hours ({window})")

    def _appointments_for_day(self, professional_id: str, day: date) -> List[Appointment]:
        day_start = pendulum.datetime(day.year, day.month, day.day, tz=self.timezone)
        day_end = day_start.end_of("day")
        return self._store.list_appointments(professional_id, day_start, day_end)

    def _as_local(self, value: datetime) -> DateTime:
        if value is None:
            raise InvalidRequestError("A date and time are required")
        if value.tzinfo is None:
            return pendulum.instance(value, tz=self.timezone)
        return pendulum.instance(value).in_timezone(self.timezone)

    def _check_horizon(self, target: date, now: datetime) -> None:
        """Reject dates further out than the booking horizon."""
        today = self._as_local(now).date()
        limit = today.add(months=self._booking_horizon_months)
        if target > as_plain_date(limit):
            raise InvalidRequestError(
                f"Bookings are only accepted up to {limit.format('DD/MM/YYYY')}"
            )
