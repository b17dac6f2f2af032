"""
Tests for service-role key lookup.
"""

import pytest
from keyring.errors import PasswordDeleteError

from salonbooking.adapters import credentials
from salonbooking.config import AppConfig


class FakeKeyring:
    """In-memory replacement for the keyring functions used by the module."""

    def __init__(self):
        self.passwords = {}

    def get_password(self, service, username):
        return self.passwords.get((service, username))

    def set_password(self, service, username, password):
        self.passwords[(service, username)] = password

    def delete_password(self, service, username):
        if (service, username) not in self.passwords:
            raise PasswordDeleteError("not found")
        del self.passwords[(service, username)]


@pytest.fixture
def fake_keyring(monkeypatch):
    fake = FakeKeyring()
    monkeypatch.setattr(credentials.keyring, "get_password", fake.get_password)
    monkeypatch.setattr(credentials.keyring, "set_password", fake.set_password)
    monkeypatch.setattr(credentials.keyring, "delete_password", fake.delete_password)
    monkeypatch.delenv(credentials.SERVICE_ROLE_ENV_VAR, raising=False)
    return fake


def _config(**kwargs) -> AppConfig:
    return AppConfig(supabase_url="https://demo.supabase.co", **kwargs)


def test_environment_variable_wins(fake_keyring, monkeypatch):
    fake_keyring.set_password("salonbooking", "https://demo.supabase.co", "from-keyring")
    monkeypatch.setenv(credentials.SERVICE_ROLE_ENV_VAR, "from-env")

    assert credentials.resolve_service_role_key(_config(service_role_key="from-file")) == "from-env"


def test_keyring_before_config_file(fake_keyring):
    credentials.store_service_role_key(_config(), "from-keyring")

    assert credentials.resolve_service_role_key(_config(service_role_key="from-file")) == "from-keyring"


def test_config_file_is_last_resort(fake_keyring):
    assert credentials.resolve_service_role_key(_config(service_role_key="from-file")) == "from-file"
    assert credentials.resolve_service_role_key(_config()) is None


def test_clear_key(fake_keyring):
    config = _config()
    credentials.store_service_role_key(config, "secret")

    assert credentials.clear_service_role_key(config) is True
    assert credentials.clear_service_role_key(config) is False
