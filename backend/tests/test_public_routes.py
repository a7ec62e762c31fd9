"""Public reference data, landing-page listings, probes and the API index."""

from sqlalchemy import update

from agrimarket.domain.models import Category
from agrimarket.services.reference_service import DEFAULT_CATEGORIES, DEFAULT_LOCATIONS

from conftest import assert_envelope


class TestReferenceData:
    async def test_categories_sorted_and_active_only(self, client, db_session):
        await db_session.execute(update(Category).where(Category.name == "Fruits").values(is_active=False))
        await db_session.commit()

        resp = await client.get("/api/public/categories")
        data = assert_envelope(resp, 200)["data"]
        names = [c["name"] for c in data]
        assert names == sorted(name for name, _ in DEFAULT_CATEGORIES if name != "Fruits")
        assert set(data[0]) == {"id", "name", "description", "createdAt"}

    async def test_locations_sorted_by_county(self, client):
        resp = await client.get("/api/public/locations")
        data = assert_envelope(resp, 200)["data"]
        assert [loc["county"] for loc in data] == sorted(county for county, _ in DEFAULT_LOCATIONS)
        assert set(data[0]) == {"id", "county", "region"}


class TestPublicListings:
    async def test_capped_at_twenty_and_active_only(self, client, farmer, make_listing):
        created = [await make_listing(farmer) for _ in range(22)]
        await client.delete(f"/api/farmer/listings/{created[-1]['id']}", headers=farmer.headers)

        resp = await client.get("/api/public/listings", params={"limit": 50})
        rows = assert_envelope(resp, 200)["data"]
        assert len(rows) == 20
        assert created[-1]["id"] not in [r["id"] for r in rows]
        assert rows[0]["id"] == created[-2]["id"]

    async def test_default_limit_is_ten(self, client, farmer, make_listing):
        for _ in range(12):
            await make_listing(farmer)
        resp = await client.get("/api/public/listings")
        assert len(assert_envelope(resp, 200)["data"]) == 10

    async def test_no_auth_required(self, client):
        assert assert_envelope(await client.get("/api/public/listings"), 200)["data"] == []


class TestProbes:
    async def test_health(self, client):
        data = assert_envelope(await client.get("/health"), 200)["data"]
        assert data["status"] == "healthy"
        assert data["database"] == "connected"

    async def test_ready_and_live(self, client):
        assert assert_envelope(await client.get("/ready"), 200)["data"]["status"] == "ready"
        assert assert_envelope(await client.get("/live"), 200)["data"]["status"] == "alive"

    async def test_health_reports_disconnected_database(self, app, client):
        class BrokenSession:
            async def execute(self, *args, **kwargs):
                raise ConnectionError("database is gone")

        async def _broken_db():
            yield BrokenSession()

        from agrimarket.infra.database import get_db

        app.dependency_overrides[get_db] = _broken_db
        resp = await client.get("/health")
        body = assert_envelope(resp, 500)
        assert body["error"]["code"] == "INTERNAL_ERROR"
        assert body["error"]["details"]["database"] == "disconnected"


class TestApiSurface:
    async def test_index(self, client):
        data = assert_envelope(await client.get("/api"), 200)["data"]
        assert data["endpoints"]["farmer"] == "/api/farmer"

    async def test_unknown_route(self, client):
        body = assert_envelope(await client.get("/api/nope"), 404)
        assert body["error"]["code"] == "NOT_FOUND"

    async def test_request_id_echoed(self, client):
        resp = await client.get("/live", headers={"X-Request-ID": "abc123"})
        assert resp.headers["X-Request-ID"] == "abc123"
