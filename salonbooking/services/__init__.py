"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .booking import BookingService, CartItem, SalonStoreProtocol
from .provisioning import AccountStoreProtocol, ProfessionalProvisioner

__all__ = [
    "AccountStoreProtocol",
    "BookingService",
    "CartItem",
    "ProfessionalProvisioner",
    "SalonStoreProtocol",
]
