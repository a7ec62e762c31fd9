"""Farmer listing lifecycle and buyer-side listing queries."""

import pytest
from sqlalchemy import select

from agrimarket.domain.models import Category

from conftest import assert_envelope, listing_payload


# ===========================================================================
# Farmer: create
# ===========================================================================


class TestCreateListing:
    async def test_create_returns_listing_with_refs(self, client, farmer):
        resp = await client.post(
            "/api/farmer/listings", json=listing_payload(farmerId=farmer.id), headers=farmer.headers
        )
        listing = assert_envelope(resp, 201)["data"]
        assert listing["farmerId"] == farmer.id
        assert listing["cropType"] == "Tomatoes"
        assert listing["quantity"] == 200
        assert listing["pricePerUnit"] == 80
        assert listing["isActive"] is True
        assert listing["harvestDate"] == "2024-02-20T00:00:00Z"
        assert listing["farmer"]["id"] == farmer.id
        assert listing["farmer"]["phoneNumber"].startswith("+254")
        assert listing["category"] is None

    async def test_create_with_category(self, client, farmer, db_session):
        category = (await db_session.execute(select(Category).where(Category.name == "Vegetables"))).scalar_one()
        resp = await client.post(
            "/api/farmer/listings", json=listing_payload(categoryId=category.id), headers=farmer.headers
        )
        listing = assert_envelope(resp, 201)["data"]
        assert listing["category"] == {"id": category.id, "name": "Vegetables"}

    async def test_unknown_category_rejected(self, client, farmer):
        resp = await client.post(
            "/api/farmer/listings", json=listing_payload(categoryId="missing"), headers=farmer.headers
        )
        assert assert_envelope(resp, 400)["error"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.parametrize("overrides", [
        {"quantity": 0},
        {"quantity": -5},
        {"pricePerUnit": 0},
        {"harvestDate": "not-a-date"},
        {"cropType": "T"},
        {"location": ""},
        {"description": "x" * 501},
    ])
    async def test_invalid_payload_rejected(self, client, farmer, overrides):
        resp = await client.post(
            "/api/farmer/listings", json=listing_payload(**overrides), headers=farmer.headers
        )
        assert assert_envelope(resp, 400)["error"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.parametrize("overrides", [
        {"quantity": "inf", "pricePerUnit": "1e400"},
        {"quantity": "nan"},
        {"pricePerUnit": "Infinity"},
    ])
    async def test_non_finite_numbers_rejected(self, client, farmer, buyer, overrides):
        resp = await client.post(
            "/api/farmer/listings", json=listing_payload(**overrides), headers=farmer.headers
        )
        assert assert_envelope(resp, 400)["error"]["code"] == "VALIDATION_ERROR"

        # Nothing was stored, so listing reads keep rendering
        assert_envelope(await client.get("/api/buyer/listings", headers=buyer.headers), 200)
        assert assert_envelope(await client.get("/api/public/listings"), 200)["data"] == []

    async def test_numeric_strings_coerced(self, client, farmer):
        resp = await client.post(
            "/api/farmer/listings", json=listing_payload(quantity="12.5", pricePerUnit="40"), headers=farmer.headers
        )
        listing = assert_envelope(resp, 201)["data"]
        assert listing["quantity"] == 12.5

    async def test_other_farmer_id_forbidden(self, client, farmer, make_actor):
        other = await make_actor("FARMER")
        resp = await client.post(
            "/api/farmer/listings", json=listing_payload(farmerId=other.id), headers=farmer.headers
        )
        assert assert_envelope(resp, 403)["error"]["code"] == "FORBIDDEN"

    async def test_buyer_cannot_create(self, client, buyer):
        resp = await client.post("/api/farmer/listings", json=listing_payload(), headers=buyer.headers)
        assert assert_envelope(resp, 403)["error"]["code"] == "FORBIDDEN"

    async def test_anonymous_cannot_create(self, client):
        resp = await client.post("/api/farmer/listings", json=listing_payload())
        assert assert_envelope(resp, 401)["error"]["code"] == "UNAUTHENTICATED"


# ===========================================================================
# Farmer: update / delete / own listings
# ===========================================================================


class TestOwnership:
    async def test_owner_can_update(self, client, farmer, make_listing):
        listing = await make_listing(farmer)
        resp = await client.put(
            f"/api/farmer/listings/{listing['id']}",
            json={"pricePerUnit": 95, "description": "Fresh"},
            headers=farmer.headers,
        )
        updated = assert_envelope(resp, 200)["data"]
        assert updated["pricePerUnit"] == 95
        assert updated["description"] == "Fresh"
        assert updated["quantity"] == 200

    async def test_non_owner_update_indistinguishable_from_missing(self, client, farmer, make_actor, make_listing):
        listing = await make_listing(farmer)
        other = await make_actor("FARMER")

        foreign = await client.put(
            f"/api/farmer/listings/{listing['id']}",
            json={"farmerId": other.id, "pricePerUnit": 1},
            headers=other.headers,
        )
        missing = await client.put(
            "/api/farmer/listings/does-not-exist", json={"pricePerUnit": 1}, headers=other.headers
        )
        a = assert_envelope(foreign, 404)["error"]
        b = assert_envelope(missing, 404)["error"]
        assert a == b
        assert a["code"] == "NOT_FOUND"

        # The listing itself is untouched
        own = await client.get("/api/farmer/listings", headers=farmer.headers)
        assert own.json()["data"][0]["pricePerUnit"] == 80

    async def test_non_owner_delete_indistinguishable_from_missing(self, client, farmer, make_actor, make_listing):
        listing = await make_listing(farmer)
        other = await make_actor("FARMER")
        foreign = await client.delete(f"/api/farmer/listings/{listing['id']}", headers=other.headers)
        missing = await client.delete("/api/farmer/listings/nope", headers=other.headers)
        assert assert_envelope(foreign, 404)["error"] == assert_envelope(missing, 404)["error"]

    async def test_farmer_id_hint_of_someone_else_is_not_found(self, client, farmer, make_actor, make_listing):
        listing = await make_listing(farmer)
        other = await make_actor("FARMER")
        resp = await client.put(
            f"/api/farmer/listings/{listing['id']}",
            json={"farmerId": other.id, "quantity": 3},
            headers=farmer.headers,
        )
        assert assert_envelope(resp, 404)["error"]["code"] == "NOT_FOUND"

    @pytest.mark.parametrize("patch", [{"quantity": 0}, {"pricePerUnit": -1}, {"cropType": None}, {"harvestDate": None}])
    async def test_invalid_patch_rejected(self, client, farmer, make_listing, patch):
        listing = await make_listing(farmer)
        resp = await client.put(f"/api/farmer/listings/{listing['id']}", json=patch, headers=farmer.headers)
        assert assert_envelope(resp, 400)["error"]["code"] == "VALIDATION_ERROR"

    async def test_soft_delete_hides_from_buyers_but_not_owner(self, client, farmer, buyer, make_listing):
        listing = await make_listing(farmer)

        resp = await client.delete(f"/api/farmer/listings/{listing['id']}", headers=farmer.headers)
        assert assert_envelope(resp, 200)["data"]["message"] == "Listing deleted successfully"

        browse = await client.get("/api/buyer/listings", headers=buyer.headers)
        assert listing["id"] not in [row["id"] for row in browse.json()["data"]["listings"]]

        public = await client.get("/api/public/listings")
        assert listing["id"] not in [row["id"] for row in public.json()["data"]]

        own = await client.get("/api/farmer/listings", headers=farmer.headers)
        rows = {row["id"]: row for row in assert_envelope(own, 200)["data"]}
        assert rows[listing["id"]]["isActive"] is False

    async def test_own_listings_newest_first_with_recent_interactions(self, client, farmer, buyer, make_listing):
        older = await make_listing(farmer, cropType="Maize")
        newer = await make_listing(farmer, cropType="Beans")
        for _ in range(7):
            await client.post(
                "/api/buyer/interactions", json={"listingId": older["id"], "type": "VIEW"}, headers=buyer.headers
            )

        resp = await client.get("/api/farmer/listings", headers=farmer.headers)
        rows = assert_envelope(resp, 200)["data"]
        assert [r["id"] for r in rows] == [newer["id"], older["id"]]
        assert rows[0]["interactions"] == []
        assert len(rows[1]["interactions"]) == 5
        assert rows[1]["interactions"][0]["buyer"]["id"] == buyer.id

    async def test_own_listings_exclude_other_farmers(self, client, farmer, make_actor, make_listing):
        other = await make_actor("FARMER")
        await make_listing(other)
        resp = await client.get("/api/farmer/listings", headers=farmer.headers)
        assert assert_envelope(resp, 200)["data"] == []


# ===========================================================================
# Buyer queries
# ===========================================================================


class TestBuyerListings:
    async def test_farmer_listing_found_by_crop(self, client, farmer, buyer, make_listing):
        listing = await make_listing(farmer, farmerId=farmer.id)
        resp = await client.get("/api/buyer/listings", params={"crop": "Tomatoes"}, headers=buyer.headers)
        data = assert_envelope(resp, 200)["data"]
        assert data["pagination"]["total"] >= 1
        assert listing["id"] in [row["id"] for row in data["listings"]]

    async def test_pagination_metadata(self, client, farmer, buyer, make_listing):
        for _ in range(5):
            await make_listing(farmer)
        resp = await client.get("/api/buyer/listings", params={"page": 2, "limit": 2}, headers=buyer.headers)
        data = assert_envelope(resp, 200)["data"]
        assert data["pagination"] == {
            "page": 2, "limit": 2, "total": 5, "totalPages": 3, "hasNext": True, "hasPrev": True,
        }
        assert len(data["listings"]) == 2

    async def test_limit_capped_at_fifty(self, client, buyer):
        resp = await client.get("/api/buyer/listings", params={"limit": 100}, headers=buyer.headers)
        assert assert_envelope(resp, 200)["data"]["pagination"]["limit"] == 50

    @pytest.mark.parametrize("params", [
        {"limit": 0}, {"limit": 101}, {"page": 0}, {"page": "x"},
        {"minPrice": "cheap"}, {"maxPrice": "inf"}, {"minPrice": "nan"},
    ])
    async def test_bad_pagination_or_filters_rejected(self, client, buyer, params):
        resp = await client.get("/api/buyer/listings", params=params, headers=buyer.headers)
        assert assert_envelope(resp, 400)["error"]["code"] == "VALIDATION_ERROR"

    async def test_inverted_price_bounds_rejected(self, client, buyer):
        resp = await client.get(
            "/api/buyer/listings", params={"minPrice": 100, "maxPrice": 10}, headers=buyer.headers
        )
        assert_envelope(resp, 400)

    async def test_search_and_location_filters(self, client, farmer, buyer, make_listing):
        await make_listing(farmer, cropType="Maize", location="Nakuru", description="Dry yellow maize")
        await make_listing(farmer, cropType="Kale", location="Kiambu")

        by_text = await client.get("/api/buyer/listings", params={"search": "YELLOW"}, headers=buyer.headers)
        assert [r["cropType"] for r in by_text.json()["data"]["listings"]] == ["Maize"]

        by_county = await client.get("/api/buyer/listings", params={"location": "Kiambu"}, headers=buyer.headers)
        assert [r["cropType"] for r in by_county.json()["data"]["listings"]] == ["Kale"]

        everything = await client.get(
            "/api/buyer/listings", params={"location": "all-counties", "crop": "all-crops"}, headers=buyer.headers
        )
        assert everything.json()["data"]["pagination"]["total"] == 2

    async def test_newest_first(self, client, farmer, buyer, make_listing):
        first = await make_listing(farmer)
        second = await make_listing(farmer)
        resp = await client.get("/api/buyer/listings", headers=buyer.headers)
        assert [r["id"] for r in resp.json()["data"]["listings"]] == [second["id"], first["id"]]

    async def test_farmer_cannot_browse_buyer_listings(self, client, farmer):
        resp = await client.get("/api/buyer/listings", headers=farmer.headers)
        assert_envelope(resp, 403)


class TestBuyerSearch:
    async def test_advanced_filters(self, client, farmer, buyer, make_listing):
        await make_listing(farmer, cropType="Irish Potatoes", pricePerUnit=30, harvestDate="2024-03-01T00:00:00Z",
                           location="Nyandarua")
        await make_listing(farmer, cropType="Sweet Potatoes", pricePerUnit=55, harvestDate="2024-06-01T00:00:00Z",
                           location="Kisumu")
        await make_listing(farmer, cropType="Maize", pricePerUnit=45, location="Nyeri")

        resp = await client.get(
            "/api/buyer/listings/search",
            params={"cropType": "potato", "maxPrice": 50},
            headers=buyer.headers,
        )
        data = assert_envelope(resp, 200)["data"]
        assert [r["cropType"] for r in data["listings"]] == ["Irish Potatoes"]
        assert data["total"] == 1

        resp = await client.get(
            "/api/buyer/listings/search",
            params={"harvestDateFrom": "2024-05-01T00:00:00Z"},
            headers=buyer.headers,
        )
        assert [r["cropType"] for r in resp.json()["data"]["listings"]] == ["Sweet Potatoes"]

        resp = await client.get("/api/buyer/listings/search", params={"location": "nya"}, headers=buyer.headers)
        assert [r["location"] for r in resp.json()["data"]["listings"]] == ["Nyandarua"]

    async def test_invalid_date_rejected(self, client, buyer):
        resp = await client.get(
            "/api/buyer/listings/search", params={"harvestDateFrom": "yesterday"}, headers=buyer.headers
        )
        assert assert_envelope(resp, 400)["error"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.parametrize("term", ["%", "_", "T_m%"])
    async def test_wildcards_match_literally(self, client, farmer, buyer, make_listing, term):
        await make_listing(farmer, cropType="Tomatoes", description="Ripe", location="Kiambu")
        for params in ({"query": term}, {"cropType": term}, {"location": term}):
            resp = await client.get("/api/buyer/listings/search", params=params, headers=buyer.headers)
            assert assert_envelope(resp, 200)["data"]["total"] == 0

    async def test_literal_percent_found(self, client, farmer, buyer, make_listing):
        target = await make_listing(farmer, description="Grade A, 100% organic")
        await make_listing(farmer, description="Grade A, 100 crates")
        resp = await client.get("/api/buyer/listings/search", params={"query": "100%"}, headers=buyer.headers)
        data = assert_envelope(resp, 200)["data"]
        assert [r["id"] for r in data["listings"]] == [target["id"]]

        browse = await client.get("/api/buyer/listings", params={"search": "0% o"}, headers=buyer.headers)
        assert [r["id"] for r in browse.json()["data"]["listings"]] == [target["id"]]
