"""
Creation of professional accounts: a login principal plus a profile row.
"""

from __future__ import annotations

import logging
from typing import Protocol

from ..domain.exceptions import BookingError, InvalidRequestError, ProvisioningError
from ..domain.models import Professional

logger = logging.getLogger(__name__)

ROLES = ("admin", "profissional")
MIN_PASSWORD_LENGTH = 6


class AccountStoreProtocol(Protocol):
    """Admin operations needed to provision a professional."""

    def create_auth_user(self, email: str, password: str) -> str: ...

    def delete_auth_user(self, user_id: str) -> None: ...

    def insert_professional(self, user_id: str, name: str, email: str, role: str) -> Professional: ...


class ProfessionalProvisioner:
    """
    Two-step account creation with a compensating delete.

    1. Create the login principal
    2. Create the profile row referencing it
    3. If step 2 fails, delete the principal so no orphan login is left behind
    """

    def __init__(self, store: AccountStoreProtocol) -> None:
        self._store = store

    def create_professional(self, name: str, email: str, password: str, role: str = "profissional") -> str:
        """
        Provision a professional and return a success message.

        Raises:
            InvalidRequestError: If the input is incomplete or invalid
            ProvisioningError: If either step fails (after compensation)
        """
        name, email = self._validate(name, email, password, role)

        logger.info("Creating login for %s", email)
        try:
            user_id = self._store.create_auth_user(email, password)
        except BookingError as exc:
            raise ProvisioningError(f"Auth error: {exc}") from exc

        logger.info("Creating profile for %s (user %s)", name, user_id)
        try:
            self._store.insert_professional(user_id, name, email, role)
        except BookingError as exc:
            logger.warning("Profile creation failed for %s, deleting login %s: %s", email, user_id, exc)
            self._compensate(user_id)
            raise ProvisioningError(f"Profile error: {exc}") from exc

        return f"Professional {name} created successfully!"

    def _compensate(self, user_id: str) -> None:
        try:
            self._store.delete_auth_user(user_id)
        except BookingError as exc:
            logger.error("Could not delete orphan login %s: %s", user_id, exc)

    @staticmethod
    def _validate(name: str, email: str, password: str, role: str) -> tuple[str, str]:
        name = (name or "").strip()
        email = (email or "").strip().lower()

        if not name:
            raise InvalidRequestError("Name is required")
        if "@" not in email:
            raise InvalidRequestError(f"Invalid email address: '{email}'")
        if not password or len(password) < MIN_PASSWORD_LENGTH:
            raise InvalidRequestError(f"Password must have at least {MIN_PASSWORD_LENGTH} characters")
        if role not in ROLES:
            raise InvalidRequestError(f"Role must be one of {', '.join(ROLES)}, got '{role}'")

        return name, email
