"""Shared test infrastructure for the AgriMarket test suite.

Provides:
- engine / session_factory / db_session: fresh in-memory SQLite per test, seeded
- app / client: isolated FastAPI app over httpx ASGITransport
- register / login: helpers that drive the auth endpoints
- farmer / buyer: registered users with access tokens
- make_listing: factory that creates a listing through the farmer API
"""

import itertools
import os

# Must be set before agrimarket is imported: settings are read once
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["ENVIRONMENT"] = "test"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ.pop("LOG_FILE", None)

from dataclasses import dataclass  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402

from agrimarket.app.config import Settings  # noqa: E402
from agrimarket.app.main import create_app  # noqa: E402
from agrimarket.infra.database import build_engine, get_db, get_session_factory, init_db  # noqa: E402

_counter = itertools.count(1)

PASSWORD = "p"


@dataclass
class Actor:
    """A registered user as seen by the tests."""

    id: str
    email: str
    role: str
    access_token: str
    refresh_token: str
    password: str = PASSWORD

    @property
    def headers(self) -> dict:
        return {"Authorization": f"Bearer {self.access_token}"}


def unique_email(prefix: str = "user") -> str:
    return f"{prefix}{next(_counter)}@example.com"


def unique_phone() -> str:
    return f"+2547{next(_counter):08d}"


def assert_envelope(response, status_code: int | None = None) -> dict:
    """Check the response envelope and return the parsed body."""
    body = response.json()
    if status_code is not None:
        assert response.status_code == status_code, body
    assert body["success"] is (200 <= response.status_code < 300)
    assert body["timestamp"].endswith("Z")
    if body["success"]:
        assert "data" in body
    else:
        assert set(body["error"]) >= {"code", "message"}
    return body


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
async def engine():
    """In-memory SQLite engine with all tables created and catalogs seeded."""
    engine = build_engine("sqlite+aiosqlite://")
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await init_db(target_engine=engine, session_factory=factory)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session
        await session.rollback()


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

@pytest.fixture
def settings():
    return Settings(rate_limit_enabled=False, request_timeout_seconds=10)


@pytest.fixture
def app(settings, session_factory):
    app = create_app(settings)

    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    return app


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        yield ac


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

@pytest.fixture
def register(client):
    """Register through the API. Returns the raw response.

    Usage:
        resp = await register(role="FARMER", location="Kiambu")
    """
    async def _register(**overrides):
        role = overrides.pop("role", "BUYER")
        payload = {
            "email": unique_email(role.lower()),
            "password": PASSWORD,
            "fullName": f"Test {role.title()}",
            "phoneNumber": unique_phone(),
            "role": role,
        }
        if role == "FARMER":
            payload["location"] = "Kiambu"
        payload.update(overrides)
        return await client.post("/api/auth/register", json=payload)

    return _register


@pytest.fixture
def make_actor(register):
    """Register a user and wrap it as an Actor with tokens."""
    async def _factory(role: str = "BUYER", **overrides) -> Actor:
        resp = await register(role=role, **overrides)
        assert resp.status_code == 201, resp.json()
        data = resp.json()["data"]
        return Actor(
            id=data["user"]["id"],
            email=data["user"]["email"],
            role=role,
            access_token=data["tokens"]["accessToken"],
            refresh_token=data["tokens"]["refreshToken"],
            password=overrides.get("password", PASSWORD),
        )

    return _factory


@pytest.fixture
async def farmer(make_actor) -> Actor:
    return await make_actor("FARMER")


@pytest.fixture
async def buyer(make_actor) -> Actor:
    return await make_actor("BUYER")


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------

def listing_payload(**overrides) -> dict:
    payload = {
        "cropType": "Tomatoes",
        "quantity": 200,
        "unit": "kg",
        "pricePerUnit": 80,
        "harvestDate": "2024-02-20T00:00:00Z",
        "location": "Kiambu",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def make_listing(client):
    """Create a listing as the given farmer. Returns the serialized listing.

    Usage:
        listing = await make_listing(farmer, cropType="Maize")
    """
    async def _factory(owner: Actor, **overrides) -> dict:
        resp = await client.post(
            "/api/farmer/listings", json=listing_payload(**overrides), headers=owner.headers
        )
        assert resp.status_code == 201, resp.json()
        return resp.json()["data"]

    return _factory
