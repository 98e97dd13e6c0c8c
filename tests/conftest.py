# mypy: ignore-errors
# tests/conftest.py
from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import Any

import pytest
from argon2 import PasswordHasher
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi import FastAPI
from fastapi.testclient import TestClient

from retro_messenger.core.container import MessengerCore
from retro_messenger.main import create_app
from retro_messenger.services.identity import IdentityDirectory
from retro_messenger.services.keys import KeyManager, KeyPair
from retro_messenger.services.ledger import DeliveryLedger
from retro_messenger.services.presence import PresenceTransport

TEST_PBKDF2_ITERATIONS = 1_000


def _generate_key_pair() -> KeyPair:
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return KeyPair.from_private_key(private_key)


@pytest.fixture(scope="session")
def alice_keys() -> KeyPair:
    """RSA identity shared across tests to avoid repeated 2048-bit generation."""
    return _generate_key_pair()


@pytest.fixture(scope="session")
def bob_keys() -> KeyPair:
    return _generate_key_pair()


@pytest.fixture(scope="session")
def password_hasher() -> PasswordHasher:
    """Cheap argon2 parameters; production defaults come from settings."""
    return PasswordHasher(time_cost=1, memory_cost=8, parallelism=1)


@pytest.fixture()
def key_manager() -> KeyManager:
    return KeyManager(pbkdf2_iterations=TEST_PBKDF2_ITERATIONS)


@pytest.fixture()
def public_key_b64(alice_keys: KeyPair) -> str:
    return KeyManager().export_public_key(alice_keys.public_key)


@pytest.fixture()
def bob_public_key_b64(bob_keys: KeyPair) -> str:
    return KeyManager().export_public_key(bob_keys.public_key)


@pytest.fixture()
def directory(password_hasher: PasswordHasher) -> IdentityDirectory:
    return IdentityDirectory(password_hasher=password_hasher)


@pytest.fixture()
def ledger(directory: IdentityDirectory) -> DeliveryLedger:
    return DeliveryLedger(directory)


@pytest.fixture()
def presence(directory: IdentityDirectory) -> PresenceTransport:
    return PresenceTransport(directory)


@pytest.fixture()
def core(password_hasher: PasswordHasher) -> Iterator[MessengerCore]:
    messenger_core = MessengerCore.build(password_hasher=password_hasher)
    try:
        yield messenger_core
    finally:
        messenger_core.reset()


@pytest.fixture()
def app(core: MessengerCore) -> FastAPI:
    return create_app(core)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def register_user(client: TestClient) -> Callable[..., dict[str, Any]]:
    """Register through the API; the returned body carries ready auth headers."""

    def _register(username: str, public_key: str, password: str = "secret1") -> dict[str, Any]:
        response = client.post(
            "/api/v1/auth/register",
            json={"username": username, "password": password, "publicKey": public_key},
        )
        assert response.status_code == 201, response.text
        body = response.json()
        body["headers"] = {"Authorization": f"Bearer {body['sessionToken']}"}
        return body

    return _register
