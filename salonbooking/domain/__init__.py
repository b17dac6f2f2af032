"""
Domain layer - Pure business logic without external dependencies.
"""

from .models import (
    Appointment,
    AppointmentStatus,
    AvailabilityResult,
    AvailabilityStatus,
    Category,
    ClientInfo,
    Professional,
    Service,
    Slot,
    SlotRequest,
    TimeRange,
    WeekdayRestriction,
    WorkingHours,
)
from .slot_calculator import SlotCalculator, compute_available_slots, find_conflict

__all__ = [
    "Appointment",
    "AppointmentStatus",
    "AvailabilityResult",
    "AvailabilityStatus",
    "Category",
    "ClientInfo",
    "Professional",
    "Service",
    "Slot",
    "SlotRequest",
    "TimeRange",
    "WeekdayRestriction",
    "WorkingHours",
    "SlotCalculator",
    "compute_available_slots",
    "find_conflict",
]
