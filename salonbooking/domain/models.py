"""
Domain models for salon services, working hours, appointments and slots.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, time
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

import pendulum
from pendulum import DateTime

from .exceptions import ConfigurationError, InvalidRequestError

WEEKDAY_NAMES = {
    0: "Domingo",
    1: "Segunda-feira",
    2: "Terça-feira",
    3: "Quarta-feira",
    4: "Quinta-feira",
    5: "Sexta-feira",
    6: "Sábado",
}

MIDNIGHT = time(0, 0)
END_OF_DAY = ("24:00", "24:00:00")


def weekday_index(day: date) -> int:
    """
    Return the weekday of a date with 0=Sunday ... 6=Saturday.

    Uses ``isoweekday`` so the result does not depend on locale or on the
    pendulum version's own week numbering.
    """
    return day.isoweekday() % 7


def as_plain_date(value: date) -> date:
    """Drop any time component and subclass so dates compare and hash uniformly."""
    return date(value.year, value.month, value.day)


def parse_time_of_day(value: Any, allow_end_of_day: bool = False) -> time:
    """
    Parse an ``HH:MM`` or ``HH:MM:SS`` string as stored in the working-hours table.

    ``24:00`` is accepted only when ``allow_end_of_day`` is set and comes back
    as midnight, which ``WorkingHours`` reads as the end of the day.

    Raises:
        ConfigurationError: If the value is not a valid time of day
    """
    if isinstance(value, time):
        return value

    if not isinstance(value, str) or ":" not in value:
        raise ConfigurationError(f"Invalid time of day: {value!r}")

    text = value.strip()
    if text in END_OF_DAY:
        if allow_end_of_day:
            return MIDNIGHT
        raise ConfigurationError(f"24:00 is only valid as an end time: {value!r}")

    try:
        parsed = pendulum.parse(text, exact=True)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid time of day: {value!r}") from exc

    if not isinstance(parsed, time):
        raise ConfigurationError(f"Invalid time of day: {value!r}")

    return time(hour=parsed.hour, minute=parsed.minute, second=parsed.second)


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable time range with start and end datetime.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, other: "TimeRange") -> bool:
        """Half-open overlap: touching ranges do not overlap."""
        return self.start < other.end and self.end > other.start

    def contains(self, other: "TimeRange") -> bool:
        """Check if another range lies entirely within this one."""
        return self.start <= other.start and other.end <= self.end

    def __str__(self) -> str:
        return f"{self.start.format('DD/MM/YYYY HH:mm')} - {self.end.format('HH:mm')}"


@dataclass(frozen=True)
class WeekdayRestriction:
    """
    Which weekdays a service may be booked on.

    Either unrestricted or restricted to an explicit set of weekday indices
    (0=Sunday ... 6=Saturday). A stored ``null`` or empty list is read as
    unrestricted.
    """
    days: Optional[FrozenSet[int]] = None

    @classmethod
    def unrestricted(cls) -> "WeekdayRestriction":
        return cls(days=None)

    @classmethod
    def restricted_to(cls, days: Iterable[int]) -> "WeekdayRestriction":
        normalized = frozenset(int(day) for day in days)
        invalid = sorted(day for day in normalized if day not in range(7))
        if invalid:
            raise InvalidRequestError(f"Weekdays must be between 0 and 6, got {invalid}")
        return cls(days=normalized)

    @classmethod
    def from_stored(cls, value: Optional[Iterable[int]]) -> "WeekdayRestriction":
        """Map the stored column (null, [] or a list of days) to a restriction."""
        if not value:
            return cls.unrestricted()
        return cls.restricted_to(value)

    @property
    def is_restricted(self) -> bool:
        return self.days is not None

    def allows(self, weekday: int) -> bool:
        if self.days is None:
            return True
        return weekday in self.days


@dataclass(frozen=True)
class Category:
    id: str
    name: str

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Category":
        return cls(id=str(record["id"]), name=record.get("nome", ""))


@dataclass(frozen=True)
class Service:
    """
    A bookable salon service.

    ``specific_dates``, when non-empty, replaces the weekday rule: the service
    is then offered only on those calendar dates.
    """
    id: str
    name: str
    duration_minutes: int
    price: Decimal = Decimal("0")
    weekdays: WeekdayRestriction = field(default_factory=WeekdayRestriction.unrestricted)
    specific_dates: FrozenSet[date] = frozenset()
    category_id: Optional[str] = None

    def is_offered_on(self, day: date) -> bool:
        """Check the service's date and weekday restrictions for a calendar day."""
        if self.specific_dates:
            return as_plain_date(day) in self.specific_dates
        return self.weekdays.allows(weekday_index(day))

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Service":
        """
        Build a service from a ``servicos`` row.

        Raises:
            InvalidRequestError: If the row has a malformed duration, price or date list
        """
        try:
            duration = int(record["duracao_minutos"])
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidRequestError(f"Service {record.get('id')} has no valid duration") from exc

        try:
            price = Decimal(str(record.get("preco") or "0"))
        except InvalidOperation as exc:
            raise InvalidRequestError(f"Service {record.get('id')} has an invalid price") from exc

        try:
            specific_dates = frozenset(
                as_plain_date(pendulum.parse(value, exact=True) if isinstance(value, str) else value)
                for value in record.get("datas_especificas") or []
            )
        except ValueError as exc:
            raise InvalidRequestError(f"Service {record.get('id')} has an invalid date list") from exc

        category_id = record.get("categoria_id")

        return cls(
            id=str(record["id"]),
            name=record.get("nome", ""),
            duration_minutes=duration,
            price=price,
            weekdays=WeekdayRestriction.from_stored(record.get("dias_disponiveis")),
            specific_dates=specific_dates,
            category_id=str(category_id) if category_id is not None else None,
        )


@dataclass(frozen=True)
class Professional:
    id: str
    name: str
    email: str = ""
    role: str = "profissional"
    user_id: Optional[str] = None

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Professional":
        return cls(
            id=str(record["id"]),
            name=record.get("nome", ""),
            email=record.get("email") or "",
            role=record.get("role") or "profissional",
            user_id=record.get("user_id"),
        )


@dataclass(frozen=True)
class WorkingHours:
    """A professional's working window on one weekday (0=Sunday ... 6=Saturday)."""
    professional_id: str
    weekday: int
    start_time: time
    end_time: time

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "WorkingHours":
        """
        Build working hours from a ``horarios_trabalho`` row.

        Raises:
            ConfigurationError: If a time of day cannot be parsed
        """
        return cls(
            professional_id=str(record.get("profissional_id", "")),
            weekday=int(record.get("dia_semana", 0)),
            start_time=parse_time_of_day(record.get("hora_inicio")),
            end_time=parse_time_of_day(record.get("hora_fim"), allow_end_of_day=True),
        )

    def window_for(self, day: date, timezone: str) -> tuple[DateTime, DateTime]:
        """
        Anchor the working hours on a calendar day in the given timezone.

        An end time of midnight closes the window at the end of the day.
        """
        start = pendulum.datetime(
            day.year, day.month, day.day,
            self.start_time.hour, self.start_time.minute, self.start_time.second,
            tz=timezone,
        )
        if self.end_time == MIDNIGHT:
            return start, pendulum.datetime(day.year, day.month, day.day, tz=timezone).add(days=1)

        end = pendulum.datetime(
            day.year, day.month, day.day,
            self.end_time.hour, self.end_time.minute, self.end_time.second,
            tz=timezone,
        )
        return start, end


class AppointmentStatus(str, Enum):
    CONFIRMED = "confirmado"
    FINALIZED = "finalizado"
    CANCELLED = "cancelado"


@dataclass(frozen=True)
class Appointment:
    """A stored appointment. Only non-cancelled ones block availability."""
    id: Optional[str]
    professional_id: str
    service_id: Optional[str]
    start: DateTime
    end: DateTime
    status: AppointmentStatus = AppointmentStatus.CONFIRMED
    client_name: str = ""
    client_phone: str = ""
    cancellation_reason: str = ""

    @property
    def is_active(self) -> bool:
        return self.status is not AppointmentStatus.CANCELLED

    def blocks(self, slot: TimeRange) -> bool:
        """Check whether this appointment conflicts with a candidate slot."""
        return self.is_active and slot.start < self.end and slot.end > self.start

    @classmethod
    def from_record(cls, record: Dict[str, Any], timezone: str) -> "Appointment":
        """
        Build an appointment from an ``agendamentos`` row.

        Raises:
            ValueError: If the timestamps or status cannot be parsed
        """
        start = pendulum.parse(record["data_hora_inicio"]).in_timezone(timezone)
        end = pendulum.parse(record["data_hora_fim"]).in_timezone(timezone)
        service_id = record.get("servico_id")

        return cls(
            id=str(record["id"]) if record.get("id") is not None else None,
            professional_id=str(record.get("profissional_id", "")),
            service_id=str(service_id) if service_id is not None else None,
            start=start,
            end=end,
            status=AppointmentStatus(record.get("status") or AppointmentStatus.CONFIRMED.value),
            client_name=record.get("nome_cliente") or "",
            client_phone=record.get("telefone_cliente") or "",
            cancellation_reason=record.get("cancelamento_motivo") or "",
        )


@dataclass(frozen=True)
class ClientInfo:
    """
    Contact details collected at the end of the booking wizard.

    The phone number is stored as digits only and must include the area code.
    """
    name: str
    phone: str
    birth_date: Optional[date] = None

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise InvalidRequestError("Client name is required")

        digits = re.sub(r"[^0-9]", "", self.phone or "")
        if len(digits) < 10:
            raise InvalidRequestError("Client phone must have at least 10 digits, area code included")

        object.__setattr__(self, "name", self.name.strip())
        object.__setattr__(self, "phone", digits)


@dataclass(frozen=True)
class SlotRequest:
    professional_id: str
    service_id: str
    date: date
    now: DateTime

    def __post_init__(self):
        missing = [
            name for name in ("professional_id", "service_id", "date", "now")
            if getattr(self, name) in (None, "")
        ]
        if missing:
            raise InvalidRequestError(f"Slot request is missing: {', '.join(missing)}")


@dataclass(frozen=True)
class Slot:
    """A bookable start time; the slot lasts exactly the service's duration."""
    start: DateTime
    end: DateTime
    professional_id: str = ""
    service_id: str = ""

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(start=self.start, end=self.end)

    def format_display(self) -> str:
        """
        Format the slot for display.
        Format: Weekday, DD/MM/YYYY | HH:mm – HH:mm
        """
        weekday = WEEKDAY_NAMES[weekday_index(self.start.date())]
        return (
            f"{weekday}, {self.start.format('DD/MM/YYYY')} | "
            f"{self.start.format('HH:mm')} – {self.end.format('HH:mm')}"
        )


class AvailabilityStatus(str, Enum):
    AVAILABLE = "available"
    FULLY_BOOKED = "fully_booked"
    SERVICE_NOT_OFFERED = "service_not_offered"
    PROFESSIONAL_OFF = "professional_off"


@dataclass(frozen=True)
class AvailabilityResult:
    """Slots for one day plus the reason when there are none."""
    status: AvailabilityStatus
    slots: List[Slot] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.slots)
