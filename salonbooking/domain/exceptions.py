"""
Domain-specific exception hierarchy for the salon booking application.
"""


class BookingError(Exception):
    """Base class for all application-level errors."""


class InvalidRequestError(BookingError):
    """Raised when a slot search or booking request is missing or malformed."""


class InvalidServiceError(BookingError):
    """Raised when a service cannot be scheduled (non-positive duration)."""


class ConfigurationError(BookingError):
    """Raised when working hours are unparseable or describe an empty window."""


class ConflictError(BookingError):
    """Raised when the chosen slot was taken between read and write."""


class DataStoreError(BookingError):
    """Raised when the remote data store cannot be reached or answers badly."""


class ProvisioningError(BookingError):
    """Raised when a professional account could not be created."""
