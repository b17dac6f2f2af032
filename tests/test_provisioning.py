"""
Tests for professional account provisioning.
"""

from typing import List

import pytest

from salonbooking.adapters.mock_store import InMemoryStore
from salonbooking.domain.exceptions import DataStoreError, InvalidRequestError, ProvisioningError
from salonbooking.services.provisioning import ProfessionalProvisioner


class StubAccountStore:
    """Minimal stub matching AccountStoreProtocol."""

    def __init__(self, fail_auth=False, fail_profile=False, fail_delete=False):
        self.fail_auth = fail_auth
        self.fail_profile = fail_profile
        self.fail_delete = fail_delete
        self.users: List[str] = []
        self.deleted: List[str] = []
        self.profiles: List[dict] = []

    def create_auth_user(self, email, password):
        if self.fail_auth:
            raise DataStoreError("email already registered")
        user_id = f"user-{len(self.users) + 1}"
        self.users.append(user_id)
        return user_id

    def delete_auth_user(self, user_id):
        if self.fail_delete:
            raise DataStoreError("delete failed")
        self.deleted.append(user_id)

    def insert_professional(self, user_id, name, email, role):
        if self.fail_profile:
            raise DataStoreError("permission denied")
        self.profiles.append({"user_id": user_id, "name": name, "email": email, "role": role})


def test_creates_login_and_profile():
    store = StubAccountStore()

    message = ProfessionalProvisioner(store).create_professional(
        name=" Ana Souza ", email="Ana@Salao.com", password="segredo", role="admin"
    )

    assert message == "Professional Ana Souza created successfully!"
    assert store.profiles == [
        {"user_id": "user-1", "name": "Ana Souza", "email": "ana@salao.com", "role": "admin"}
    ]
    assert store.deleted == []


def test_profile_failure_deletes_login():
    """A failed profile insert must not leave an orphan login behind."""
    store = StubAccountStore(fail_profile=True)

    with pytest.raises(ProvisioningError, match="Profile error: permission denied"):
        ProfessionalProvisioner(store).create_professional("Ana", "ana@salao.com", "segredo")

    assert store.deleted == ["user-1"]


def test_failed_compensation_still_reports_profile_error():
    store = StubAccountStore(fail_profile=True, fail_delete=True)

    with pytest.raises(ProvisioningError, match="Profile error"):
        ProfessionalProvisioner(store).create_professional("Ana", "ana@salao.com", "segredo")


def test_auth_failure_skips_profile():
    store = StubAccountStore(fail_auth=True)

    with pytest.raises(ProvisioningError, match="Auth error: email already registered"):
        ProfessionalProvisioner(store).create_professional("Ana", "ana@salao.com", "segredo")

    assert store.profiles == []
    assert store.deleted == []


@pytest.mark.parametrize(
    "name, email, password, role",
    [
        ("", "ana@salao.com", "segredo", "profissional"),
        ("Ana", "ana.salao.com", "segredo", "profissional"),
        ("Ana", "ana@salao.com", "12345", "profissional"),
        ("Ana", "ana@salao.com", "segredo", "gerente"),
    ],
)
def test_invalid_input_is_rejected_before_any_call(name, email, password, role):
    store = StubAccountStore()

    with pytest.raises(InvalidRequestError):
        ProfessionalProvisioner(store).create_professional(name, email, password, role)

    assert store.users == []


def test_in_memory_store_compensates_duplicate_profile():
    store = InMemoryStore(data={"profissionais": [{"id": "p1", "nome": "Ana", "email": "ana@salao.com"}]})

    with pytest.raises(ProvisioningError, match="Profile error"):
        ProfessionalProvisioner(store).create_professional("Ana B", "ana@salao.com", "segredo")

    assert store.tables["auth_users"] == []
