"""Shared test fixtures for the Congregation Hub API.

Every test gets a fresh application over an in-memory document store, so
tests never share data. REST tests use httpx over ASGITransport; WebSocket
view tests use Starlette's TestClient (see test_views.py).
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from congregation.application import create_app
from congregation.config import Settings
from congregation.services.document_store import DocumentStore

from tests.factories import ADMIN_EMAIL, sign_up


# =============================================================================
# Application Fixtures
# =============================================================================

@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        database_path=":memory:",
        admin_email=ADMIN_EMAIL,
        secret_key="test-secret-key-for-testing-only",
        default_service_roles=["Worship Leader", "Keys", "Drums", "Media/ProPresenter", "Sound"],
    )


@pytest.fixture
def app(settings):
    """FastAPI application with its own in-memory store"""
    fastapi_app = create_app(settings)
    yield fastapi_app
    fastapi_app.state.store.close()


@pytest.fixture
def store(app) -> DocumentStore:
    return app.state.store


@pytest.fixture
def memory_store():
    """A bare document store for unit tests"""
    db = DocumentStore(":memory:")
    db.initialize()
    yield db
    db.close()


# =============================================================================
# Test Client Fixture
# =============================================================================

@pytest_asyncio.fixture
async def test_client(app):
    """Async HTTP client calling the app in-process"""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


# =============================================================================
# Signed-in Users
# =============================================================================

@pytest_asyncio.fixture
async def admin(test_client) -> dict:
    """The configured administrator, signed up through the API"""
    return await sign_up(test_client, ADMIN_EMAIL, "Pastor Admin")


@pytest_asyncio.fixture
async def member(test_client) -> dict:
    return await sign_up(test_client, "alice@example.com", "Alice")


@pytest_asyncio.fixture
async def other_member(test_client) -> dict:
    return await sign_up(test_client, "bob@example.com", "Bob")


@pytest_asyncio.fixture
async def team(test_client, admin) -> dict:
    """A team created by the admin"""
    response = await test_client.post("/teams", json={"name": "Worship"}, headers=admin["headers"])
    assert response.status_code == 201, response.text
    return response.json()
