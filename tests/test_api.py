"""
Integration tests for the REST API endpoints.

Runs the real application against the in-memory SQLite database.  The DB
session and change feed dependencies are overridden; the rate limiter is
switched off so the whole suite can share one client address.
"""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from ridehail.api.app import create_app
from ridehail.api.dependencies import get_db, get_feed
from ridehail.api.middleware import limiter
from ridehail.infrastructure.database import Base
from ridehail.infrastructure.realtime import ChangeFeed

from tests.conftest import DROPOFF, PICKUP, TestSessionFactory, add_driver, test_engine

BOOKING = {
    "pickup_lat": PICKUP.latitude,
    "pickup_lng": PICKUP.longitude,
    "dropoff_lat": DROPOFF.latitude,
    "dropoff_lng": DROPOFF.longitude,
    "pickup_address": "Alexanderplatz",
    "dropoff_address": "Pankow",
}


def as_customer(user_id: str) -> dict:
    return {"X-Actor-Id": user_id, "X-Actor-Role": "customer"}


def as_driver(driver) -> dict:
    return {"X-Actor-Id": driver.user_id, "X-Actor-Role": "driver"}


@pytest_asyncio.fixture
async def client():
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async def _get_db():
        async with TestSessionFactory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    feed = ChangeFeed(AsyncMock(), channel="test:changes")

    async def _get_feed():
        return feed

    app = create_app()
    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_feed] = _get_feed
    limiter.enabled = False

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        ac.feed = feed
        yield ac

    limiter.enabled = True
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def _driver(**kwargs):
    async with TestSessionFactory() as session:
        return await add_driver(session, **kwargs)


async def _book(client, user_id: str, **overrides) -> dict:
    resp = await client.post(
        "/api/v1/rides", json={**BOOKING, **overrides}, headers=as_customer(user_id)
    )
    assert resp.status_code == 202, resp.text
    return resp.json()


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client):
        resp = await client.get("/api/v1/admin/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"


class TestActorHeaders:
    @pytest.mark.asyncio
    async def test_missing_headers(self, client):
        resp = await client.post("/api/v1/rides", json=BOOKING)
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_unknown_role(self, client):
        resp = await client.get(
            "/api/v1/rides", headers={"X-Actor-Id": "u1", "X-Actor-Role": "admin"}
        )
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_driver_without_record(self, client):
        resp = await client.get(
            "/api/v1/rides", headers={"X-Actor-Id": "ghost", "X-Actor-Role": "driver"}
        )
        assert resp.status_code == 403


class TestBooking:
    @pytest.mark.asyncio
    async def test_first_ride_is_free(self, client):
        body = await _book(client, "cust-1")
        assert body["status"] == "pending"
        assert body["price"] == 18.5
        assert body["charged_price"] == 0.0
        assert body["first_ride_discount"] is True
        assert body["distance_km"] == 10.0
        client.feed.redis.publish.assert_awaited()

    @pytest.mark.asyncio
    async def test_invalid_coordinates(self, client):
        resp = await client.post(
            "/api/v1/rides", json={**BOOKING, "pickup_lat": 123}, headers=as_customer("c")
        )
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_idempotent_booking(self, client):
        key = str(uuid.uuid4())
        first = await _book(client, "cust-1", idempotency_key=key)
        second = await _book(client, "cust-1", idempotency_key=key)
        assert first["id"] == second["id"]

        resp = await client.get("/api/v1/rides", headers=as_customer("cust-1"))
        assert len(resp.json()) == 1

    @pytest.mark.asyncio
    async def test_past_schedule_rejected(self, client):
        resp = await client.post(
            "/api/v1/rides",
            json={**BOOKING, "scheduled_time": "2020-01-01T10:00:00Z"},
            headers=as_customer("c"),
        )
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_driver_cannot_book(self, client):
        driver = await _driver()
        resp = await client.post("/api/v1/rides", json=BOOKING, headers=as_driver(driver))
        assert resp.status_code == 403


class TestRideQueries:
    @pytest.mark.asyncio
    async def test_get_own_ride(self, client):
        ride = await _book(client, "cust-1")
        resp = await client.get(f"/api/v1/rides/{ride['id']}", headers=as_customer("cust-1"))
        assert resp.status_code == 200
        assert resp.json()["id"] == ride["id"]

    @pytest.mark.asyncio
    async def test_unknown_ride(self, client):
        resp = await client.get("/api/v1/rides/nope", headers=as_customer("cust-1"))
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_stranger_sees_404(self, client):
        ride = await _book(client, "cust-1")
        resp = await client.get(f"/api/v1/rides/{ride['id']}", headers=as_customer("cust-2"))
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_list_filters_by_status(self, client):
        ride = await _book(client, "cust-1")
        await _book(client, "cust-1")
        await client.post(f"/api/v1/rides/{ride['id']}/cancel", headers=as_customer("cust-1"))

        resp = await client.get(
            "/api/v1/rides", params={"status": "cancelled"}, headers=as_customer("cust-1")
        )
        assert [r["id"] for r in resp.json()] == [ride["id"]]


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_claim_then_second_claim_conflicts(self, client):
        ride = await _book(client, "cust-1")
        first, second = await _driver(at=PICKUP), await _driver(at=PICKUP)

        resp = await client.post(f"/api/v1/rides/{ride['id']}/claim", headers=as_driver(first))
        assert resp.status_code == 200
        assert resp.json()["status"] == "accepted"
        assert resp.json()["driver_id"] == first.id

        resp = await client.post(f"/api/v1/rides/{ride['id']}/claim", headers=as_driver(second))
        assert resp.status_code == 409

    @pytest.mark.asyncio
    async def test_offline_driver_cannot_claim(self, client):
        ride = await _book(client, "cust-1")
        driver = await _driver(online=False)
        resp = await client.post(f"/api/v1/rides/{ride['id']}/claim", headers=as_driver(driver))
        assert resp.status_code == 409

    @pytest.mark.asyncio
    async def test_full_lifecycle(self, client):
        ride = await _book(client, "cust-1")
        driver = await _driver(at=PICKUP)
        url = f"/api/v1/rides/{ride['id']}"

        await client.post(f"{url}/claim", headers=as_driver(driver))
        for status in ("arriving", "in_progress", "completed"):
            resp = await client.post(
                f"{url}/advance", json={"status": status}, headers=as_driver(driver)
            )
            assert resp.status_code == 200, resp.text
            assert resp.json()["status"] == status

        body = resp.json()
        assert body["loyalty_points_earned"] == 185
        assert body["completed_at"] is not None

        resp = await client.get("/api/v1/drivers/me/earnings", headers=as_driver(driver))
        assert resp.json()["total"] == 18.5
        assert resp.json()["rides"] == 1

    @pytest.mark.asyncio
    async def test_skipping_a_state_conflicts(self, client):
        ride = await _book(client, "cust-1")
        driver = await _driver(at=PICKUP)
        await client.post(f"/api/v1/rides/{ride['id']}/claim", headers=as_driver(driver))
        resp = await client.post(
            f"/api/v1/rides/{ride['id']}/advance",
            json={"status": "completed"},
            headers=as_driver(driver),
        )
        assert resp.status_code == 409

    @pytest.mark.asyncio
    async def test_customer_cannot_advance(self, client):
        ride = await _book(client, "cust-1")
        driver = await _driver(at=PICKUP)
        await client.post(f"/api/v1/rides/{ride['id']}/claim", headers=as_driver(driver))
        resp = await client.post(
            f"/api/v1/rides/{ride['id']}/advance",
            json={"status": "arriving"},
            headers=as_customer("cust-1"),
        )
        assert resp.status_code == 403


class TestCancellation:
    @pytest.mark.asyncio
    async def test_pending_cancel_is_free(self, client):
        ride = await _book(client, "cust-1")
        resp = await client.post(f"/api/v1/rides/{ride['id']}/cancel", headers=as_customer("cust-1"))
        assert resp.status_code == 200
        assert resp.json()["status"] == "cancelled"
        assert resp.json()["cancellation_fee"] == 0.0

    @pytest.mark.asyncio
    async def test_double_cancel_conflicts(self, client):
        ride = await _book(client, "cust-1")
        url = f"/api/v1/rides/{ride['id']}/cancel"
        await client.post(url, headers=as_customer("cust-1"))
        resp = await client.post(url, headers=as_customer("cust-1"))
        assert resp.status_code == 409

    @pytest.mark.asyncio
    async def test_fee_preview_matches_cancel(self, client):
        ride = await _book(client, "cust-1")
        driver = await _driver(at=PICKUP)
        await client.post(f"/api/v1/rides/{ride['id']}/claim", headers=as_driver(driver))

        preview = await client.get(
            f"/api/v1/rides/{ride['id']}/cancellation-fee", headers=as_customer("cust-1")
        )
        assert preview.status_code == 200
        assert preview.json()["status"] == "accepted"

        resp = await client.post(f"/api/v1/rides/{ride['id']}/cancel", headers=as_driver(driver))
        assert resp.status_code == 200
        assert resp.json()["cancellation_fee"] == preview.json()["fee"]


class TestDriverEndpoints:
    @pytest.mark.asyncio
    async def test_toggle_online(self, client):
        driver = await _driver(online=False)
        resp = await client.post(
            "/api/v1/drivers/me/online", json={"is_online": True}, headers=as_driver(driver)
        )
        assert resp.status_code == 200
        assert resp.json()["is_online"] is True

    @pytest.mark.asyncio
    async def test_customer_has_no_driver_endpoints(self, client):
        resp = await client.post(
            "/api/v1/drivers/me/online", json={"is_online": True}, headers=as_customer("c")
        )
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_location_upload(self, client):
        driver = await _driver()
        resp = await client.post(
            "/api/v1/drivers/me/location",
            json={"latitude": 52.52, "longitude": 13.405, "recorded_at": "2026-10-18T12:00:00Z"},
            headers=as_driver(driver),
        )
        assert resp.status_code == 200
        assert resp.json()["accepted"] is True

        # older than the last accepted sample
        resp = await client.post(
            "/api/v1/drivers/me/location",
            json={"latitude": 52.53, "longitude": 13.405, "recorded_at": "2026-10-18T11:59:00Z"},
            headers=as_driver(driver),
        )
        assert resp.json()["accepted"] is False

    @pytest.mark.asyncio
    async def test_pending_rides_and_active_ride(self, client):
        near = await _book(client, "cust-1")
        far = await _book(
            client, "cust-2", pickup_lat=DROPOFF.latitude, pickup_lng=DROPOFF.longitude,
            dropoff_lat=PICKUP.latitude, dropoff_lng=PICKUP.longitude,
        )
        driver = await _driver(at=PICKUP)

        resp = await client.get("/api/v1/drivers/me/pending-rides", headers=as_driver(driver))
        assert [p["ride"]["id"] for p in resp.json()] == [near["id"], far["id"]]

        resp = await client.get(
            "/api/v1/drivers/me/pending-rides",
            params={"declined": near["id"]},
            headers=as_driver(driver),
        )
        assert [p["ride"]["id"] for p in resp.json()] == [far["id"]]

        resp = await client.get("/api/v1/drivers/me/active-ride", headers=as_driver(driver))
        assert resp.json() is None

        await client.post(f"/api/v1/rides/{far['id']}/claim", headers=as_driver(driver))
        resp = await client.get("/api/v1/drivers/me/active-ride", headers=as_driver(driver))
        assert resp.json()["id"] == far["id"]


class TestDispatchAndPricing:
    @pytest.mark.asyncio
    async def test_find_drivers(self, client):
        near = await _driver(at=PICKUP)
        await _driver(at=DROPOFF)
        await _driver(online=False, at=PICKUP)

        resp = await client.post(
            "/api/v1/dispatch/find-drivers",
            json={"pickup_lat": PICKUP.latitude, "pickup_lng": PICKUP.longitude},
            headers=as_customer("c"),
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["total_online"] == 2
        assert [d["driver_id"] for d in body["drivers"]] == [near.id]

    @pytest.mark.asyncio
    async def test_local_quote(self, client):
        resp = await client.post("/api/v1/pricing/quote", json={"distance_km": 10})
        assert resp.status_code == 200
        body = resp.json()
        assert body["price"] == 18.5
        assert body["breakdown"]["base"] == 3.5


class TestMessages:
    @pytest.mark.asyncio
    async def test_conversation(self, client):
        ride = await _book(client, "cust-1")
        driver = await _driver(at=PICKUP)
        await client.post(f"/api/v1/rides/{ride['id']}/claim", headers=as_driver(driver))
        url = f"/api/v1/rides/{ride['id']}/messages"

        resp = await client.post(url, json={"content": "On my way"}, headers=as_driver(driver))
        assert resp.status_code == 201
        await client.post(url, json={"content": "Thanks"}, headers=as_customer("cust-1"))

        resp = await client.get(url, headers=as_customer("cust-1"))
        assert [m["content"] for m in resp.json()] == ["On my way", "Thanks"]

        resp = await client.post(f"{url}/read", headers=as_customer("cust-1"))
        assert resp.json()["updated"] == 1

    @pytest.mark.asyncio
    async def test_outsider_cannot_read(self, client):
        ride = await _book(client, "cust-1")
        resp = await client.get(
            f"/api/v1/rides/{ride['id']}/messages", headers=as_customer("cust-2")
        )
        assert resp.status_code == 404
