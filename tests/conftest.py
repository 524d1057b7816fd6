"""
Shared test fixtures.

Handlers are exercised through the real FastAPI app; collaborators are
swapped in with ``app.dependency_overrides``.
"""


import pytest
import pytest_asyncio
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from httpx import ASGITransport, AsyncClient

from mobile_backend.main import app


@pytest_asyncio.fixture
async def client():
    """HTTP client bound to the app, with overrides reset afterwards."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture(scope="session")
def ec_private_key():
    """Throwaway P-256 key, the curve Sign in with Apple keys use."""
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture(scope="session")
def ec_private_key_pem(ec_private_key) -> str:
    return ec_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


@pytest.fixture(scope="session")
def ec_public_key_pem(ec_private_key) -> str:
    return ec_private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()
