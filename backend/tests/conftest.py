"""Shared test configuration and fixtures.

Remote calls go through the in-memory gateway in ``fakes.py``, so tests
need neither a Supabase project nor network access.
"""

import os

# Must be set before promptvault.config is imported.
os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_ANON_KEY", "test-anon-key")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret")

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from fakes import FakeGateway, make_token
from httpx import ASGITransport, AsyncClient

from promptvault.api.deps import get_gateway, get_public_gateway
from promptvault.main import app
from promptvault.models.user import AuthUser
from promptvault.notifications import Notifier
from promptvault.realtime import ChannelRegistry, TableInvalidator

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def notifier() -> Notifier:
    return Notifier()


@pytest.fixture
def invalidator() -> TableInvalidator:
    return TableInvalidator()


@pytest.fixture
def registry(gateway: FakeGateway) -> ChannelRegistry:
    return ChannelRegistry(gateway)


@pytest.fixture
def test_user() -> AuthUser:
    return AuthUser(id="user-123", email="test@example.com", access_token="token-123")


@pytest.fixture
def auth_headers(test_user: AuthUser) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(test_user.id, test_user.email)}"}


@pytest_asyncio.fixture
async def client(gateway: FakeGateway) -> AsyncGenerator[AsyncClient, None]:
    """Provide an httpx AsyncClient whose routes talk to the fake gateway."""

    async def override_gateway() -> AsyncGenerator[FakeGateway, None]:
        yield gateway

    app.dependency_overrides[get_gateway] = override_gateway
    app.dependency_overrides[get_public_gateway] = override_gateway

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()
