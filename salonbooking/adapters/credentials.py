"""
Secure storage of the Supabase service-role key using the system keyring.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from ..config import AppConfig

logger = logging.getLogger(__name__)

KEYRING_SERVICE_NAME = "salonbooking"
SERVICE_ROLE_ENV_VAR = "SALON_SERVICE_ROLE_KEY"


def resolve_service_role_key(config: AppConfig) -> Optional[str]:
    """
    Find the service-role key for admin operations.

    Lookup order: environment variable, system keyring (keyed by project URL),
    then the plaintext value in the config file.
    """
    from_env = os.environ.get(SERVICE_ROLE_ENV_VAR)
    if from_env:
        return from_env

    try:
        stored = keyring.get_password(KEYRING_SERVICE_NAME, config.supabase_url)
    except KeyringError as exc:  # pragma: no cover - environment dependent
        logger.warning("Secure credential storage unavailable: %s", exc)
        stored = None

    if stored:
        return stored

    if config.service_role_key:
        logger.warning("Using the plaintext service-role key from the config file")
        return config.service_role_key

    return None


def store_service_role_key(config: AppConfig, key: str) -> None:
    """Save the service-role key in the system keyring."""
    keyring.set_password(KEYRING_SERVICE_NAME, config.supabase_url, key)


def clear_service_role_key(config: AppConfig) -> bool:
    """Remove the stored key. Returns False when nothing was stored."""
    try:
        keyring.delete_password(KEYRING_SERVICE_NAME, config.supabase_url)
    except PasswordDeleteError:
        return False
    return True
