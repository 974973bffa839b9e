"""
HTTP tests for the extranet and catalog routers.
"""

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from conftest import fail_nth_insert, make_partner, make_room
from extranet.models.ledger import RoomInventory, RoomPrice
from extranet.models.room import RatePlan
from extranet.seed import seed
from extranet.services.pricing_rules import utc_today

ROOMS = "/extranet/property/rooms"


def _range(offset=5, nights=3):
    start = utc_today() + timedelta(days=offset)
    return start.isoformat(), (start + timedelta(days=nights)).isoformat()


class TestHealth:

    async def test_health(self, client):
        resp = await client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"


class TestRooms:

    async def test_list_requires_partner(self, client):
        resp = await client.get(ROOMS)
        assert resp.status_code == 401

    async def test_list_and_create(self, client, hotel, auth_headers):
        headers = {"X-Partner-Id": str(hotel["partner_id"])}

        resp = await client.post(
            ROOMS,
            json={"name": "Garden Twin", "base_price": "85.00", "max_guests": 3},
            headers={**headers, **auth_headers},
        )
        assert resp.status_code == 201
        created = resp.json()
        assert created["name"] == "Garden Twin"
        assert created["base_price"] == 85.0

        resp = await client.get(ROOMS, headers=headers)
        assert resp.status_code == 200
        assert resp.headers["cache-control"] == "no-store"
        assert [r["name"] for r in resp.json()] == ["Deluxe King", "Garden Twin"]

        plans = await client.get(f"{ROOMS}/{created['id']}/rate-plans")
        assert plans.json()["stdPlanId"] is not None
        assert plans.json()["derivedPlans"] == []

    async def test_duplicate_name_conflicts(self, client, hotel, auth_headers):
        headers = {"X-Partner-Id": str(hotel["partner_id"]), **auth_headers}
        resp = await client.post(ROOMS, json={"name": "Deluxe King"}, headers=headers)
        assert resp.status_code == 409

    async def test_rate_plans(self, client, hotel):
        resp = await client.get(f"{ROOMS}/{hotel['room_id']}/rate-plans")
        assert resp.status_code == 200
        body = resp.json()
        assert body["stdPlanId"] == hotel["std_id"]
        assert [p["code"] for p in body["derivedPlans"]] == ["BRKF", "NRF"]

    async def test_unknown_room_404(self, client):
        start, end = _range()
        resp = await client.get(f"{ROOMS}/777/inventory", params={"start": start, "end": end})
        assert resp.status_code == 404


class TestWriteToken:

    @pytest.mark.parametrize("headers", [
        {},
        {"Authorization": "Bearer wrong"},
        {"Authorization": "Basic test-write-token"},
    ])
    async def test_bulk_requires_token(self, client, hotel, headers):
        resp = await client.post(
            f"{ROOMS}/{hotel['room_id']}/inventory/bulk",
            json={"items": [{"date": "2025-06-01", "roomsOpen": 1}]},
            headers=headers,
        )
        assert resp.status_code == 401

    async def test_unset_token_blocks_writes(self, client, hotel, auth_headers, monkeypatch):
        from extranet.config import settings

        monkeypatch.setattr(settings, "extranet_write_token", "")
        resp = await client.post(
            f"{ROOMS}/{hotel['room_id']}/prices/bulk",
            json={"items": []},
            headers=auth_headers,
        )
        assert resp.status_code == 401


class TestLedgerEndpoints:

    async def test_inventory_bulk_then_read(self, client, hotel, auth_headers):
        room_id = hotel["room_id"]
        resp = await client.post(
            f"{ROOMS}/{room_id}/inventory/bulk",
            json={"items": [
                {"date": "2025-06-01", "roomsOpen": 5},
                {"date": "2025-06-31", "roomsOpen": 5},
            ]},
            headers=auth_headers,
        )
        assert resp.status_code == 200
        assert resp.json() == {"ok": True, "upserted": 1}

        await client.post(
            f"{ROOMS}/{room_id}/inventory/bulk",
            json={"items": [{"date": "2025-06-01", "isClosed": True}]},
            headers=auth_headers,
        )

        resp = await client.get(
            f"{ROOMS}/{room_id}/inventory", params={"start": "2025-06-01", "end": "2025-06-03"}
        )
        assert resp.json() == [
            {"date": "2025-06-01", "roomsOpen": 5, "minStay": None, "isClosed": True},
            {"date": "2025-06-02", "roomsOpen": None, "minStay": None, "isClosed": None},
        ]

    async def test_prices_bulk_then_snapshot(self, client, hotel, auth_headers):
        room_id = hotel["room_id"]
        resp = await client.post(
            f"{ROOMS}/{room_id}/prices/bulk",
            json={"items": [{"date": "2025-06-01", "price": 120, "ratePlanId": hotel["std_id"]}]},
            headers=auth_headers,
        )
        assert resp.json() == {"ok": True, "upserted": 1}

        resp = await client.get(
            f"{ROOMS}/{room_id}/snapshot", params={"start": "2025-06-01", "end": "2025-06-03"}
        )
        body = resp.json()
        assert body["prices"][0] == {"date": "2025-06-01", "ratePlanId": hotel["std_id"], "price": 120.0}
        assert body["prices"][1]["price"] is None
        assert len(body["inventory"]) == 2

    async def test_prices_for_named_plan(self, client, hotel):
        resp = await client.get(
            f"{ROOMS}/{hotel['room_id']}/prices",
            params={"start": "2025-06-01", "end": "2025-06-02", "planId": hotel["nrf_id"]},
        )
        assert resp.json() == [{"date": "2025-06-01", "ratePlanId": hotel["nrf_id"], "price": None}]

    @pytest.mark.parametrize("params", [
        {"start": "2025-6-1", "end": "2025-06-05"},
        {"start": "2025-06-01", "end": "2025-02-30"},
        {"start": "2025-06-01"},
    ])
    async def test_bad_dates_400(self, client, hotel, params):
        resp = await client.get(f"{ROOMS}/{hotel['room_id']}/inventory", params=params)
        assert resp.status_code == 400

    async def test_bulk_storage_error_500(self, client, db, hotel, auth_headers, monkeypatch):
        fail_nth_insert(monkeypatch, 2)
        resp = await client.post(
            f"{ROOMS}/{hotel['room_id']}/inventory/bulk",
            json={"items": [
                {"date": "2025-06-01", "roomsOpen": 5},
                {"date": "2025-06-02", "roomsOpen": 5},
            ]},
            headers=auth_headers,
        )
        assert resp.status_code == 500
        assert resp.json() == {"detail": "Inventory upsert failed"}

        count = await db.execute(select(func.count()).select_from(RoomInventory))
        assert count.scalar_one() == 0

    async def test_bulk_unknown_room_404(self, client, auth_headers):
        resp = await client.post(f"{ROOMS}/4040/prices/bulk", json={"items": []}, headers=auth_headers)
        assert resp.status_code == 404


class TestCalendarEndpoint:

    async def test_calendar_with_plan(self, client, hotel):
        start, end = _range()
        resp = await client.get(
            f"{ROOMS}/{hotel['room_id']}/calendar",
            params={"start": start, "end": end, "ratePlanId": hotel["brkf_id"]},
        )
        assert resp.status_code == 200
        (room,) = resp.json()["rooms"]
        assert room["roomId"] == hotel["room_id"]
        assert [d["price"] for d in room["daily"]] == [115.0, 115.0, 115.0]
        assert all(d["closed"] and d["inventory"] == 0 for d in room["daily"])
        assert set(room["dailyByPlanId"]) == {
            str(hotel["std_id"]), str(hotel["brkf_id"]), str(hotel["nrf_id"])
        }

        # Materialized rows are now visible through the raw price read
        prices = await client.get(
            f"{ROOMS}/{hotel['room_id']}/prices",
            params={"start": start, "end": end, "planId": hotel["nrf_id"]},
        )
        assert [p["price"] for p in prices.json()] == [90.0, 90.0, 90.0]


class TestCatalog:

    async def test_search_filters_by_availability(self, client, db, hotel, auth_headers):
        start, end = _range(nights=2)

        # Nothing open yet
        resp = await client.get("/catalog/search", params={"start": start, "end": end})
        assert resp.json() == {"properties": []}

        await client.post(
            f"{ROOMS}/{hotel['room_id']}/inventory/bulk",
            json={"items": [{"date": start, "roomsOpen": 2}]},
            headers=auth_headers,
        )

        resp = await client.get(
            "/catalog/search", params={"start": start, "end": end, "ratePlanId": hotel["nrf_id"]}
        )
        assert resp.headers["cache-control"] == "no-store"
        (prop,) = resp.json()["properties"]
        assert prop["propertyId"] == hotel["partner_id"]
        assert prop["availableNights"] == 1
        assert prop["nightsTotal"] == 2
        assert prop["fromPrice"] == 90.0

        # Party bigger than rooms open
        resp = await client.get("/catalog/search", params={"start": start, "end": end, "guests": 3})
        assert resp.json() == {"properties": []}

    async def test_search_persists_nothing(self, client, db, hotel):
        start, end = _range(nights=3)
        resp = await client.get("/catalog/search", params={"start": start, "end": end})
        assert resp.status_code == 200

        count = await db.execute(select(func.count()).select_from(RoomPrice))
        assert count.scalar_one() == 0

    async def test_search_prices_without_writing(self, client, db, hotel, auth_headers):
        start, end = _range(nights=1)
        await client.post(
            f"{ROOMS}/{hotel['room_id']}/inventory/bulk",
            json={"items": [{"date": start, "roomsOpen": 3}]},
            headers=auth_headers,
        )

        resp = await client.get(
            "/catalog/search", params={"start": start, "end": end, "ratePlanId": hotel["brkf_id"]}
        )
        (prop,) = resp.json()["properties"]
        assert prop["fromPrice"] == 115.0

        count = await db.execute(select(func.count()).select_from(RoomPrice))
        assert count.scalar_one() == 0

    async def test_details(self, client, db, hotel):
        other = await make_partner(db, "Dune Hotel")
        await make_room(db, other, base_price="60.00")
        await db.commit()

        start, end = _range(nights=1)
        resp = await client.get(
            "/catalog/details", params={"propertyId": hotel["partner_id"], "start": start, "end": end}
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["name"] == "Seaside Inn"
        assert body["currency"] == "USD"
        assert body["fromPrice"] == 100.0
        assert body["availableNights"] == 0
        assert [r["roomId"] for r in body["rooms"]] == [hotel["room_id"]]

    async def test_details_unknown_property(self, client):
        start, end = _range()
        resp = await client.get("/catalog/details", params={"propertyId": 999, "start": start, "end": end})
        assert resp.status_code == 404

    async def test_search_bad_dates(self, client):
        resp = await client.get("/catalog/search", params={"start": "tomorrow", "end": "2025-06-01"})
        assert resp.status_code == 400


class TestSeed:

    async def test_seed_is_idempotent(self, db, session_factory):
        await seed(session_factory)
        await seed(session_factory)

        count = await db.execute(select(func.count()).select_from(RatePlan))
        assert count.scalar_one() == 6
