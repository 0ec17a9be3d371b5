"""
Integration tests for the REST API endpoints.

Uses the SQLite session factory and fake clock from ``conftest``; the
Redis publisher is overridden away and rate limiting is disabled.
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from mobility.api.app import create_app
from mobility.api.dependencies import get_clock, get_event_publisher, get_session_factory
from mobility.api.middleware import limiter
from mobility.domain.enums import ServiceType

CARPOOL = {
    "service_type": "carpool",
    "requester_id": "user-1",
    "origin": {"latitude": 25.20, "longitude": 55.27},
    "destination": {"latitude": 24.47, "longitude": 54.37},
    "details": {"seats": 2},
}


# ── Fixture ───────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def client(session_factory, clock):
    """AsyncClient backed by SQLite with the publisher disabled."""
    app = create_app()
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_event_publisher] = lambda: None
    limiter.enabled = False

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    limiter.enabled = True


async def _create(client: AsyncClient, **overrides) -> dict:
    resp = await client.post("/api/v1/requests", json={**CARPOOL, **overrides})
    assert resp.status_code == 201, resp.text
    return resp.json()


# ── Tests ─────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    resp = await client.get("/api/v1/admin/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_create_request_returns_201(client: AsyncClient):
    data = await _create(client)
    assert data["state"] == "pending"
    assert data["tracking_code"].startswith("WAS")
    assert data["details"]["seats"] == 2
    assert data["provider_id"] is None


@pytest.mark.asyncio
async def test_create_without_destination_is_422(client: AsyncClient):
    body = {k: v for k, v in CARPOOL.items() if k != "destination"}
    resp = await client.post("/api/v1/requests", json=body)
    assert resp.status_code == 422
    assert resp.json()["error"] == "InvalidRequest"


@pytest.mark.asyncio
async def test_create_unknown_service_type_is_422(client: AsyncClient):
    resp = await client.post("/api/v1/requests", json={**CARPOOL, "service_type": "teleport"})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_get_request_not_found(client: AsyncClient):
    resp = await client.get("/api/v1/requests/missing")
    assert resp.status_code == 404
    body = resp.json()
    assert body["error"] == "RequestNotFound"
    assert body["request_id"] == "missing"
    assert body["retryable"] is False


@pytest.mark.asyncio
async def test_full_lifecycle(client: AsyncClient):
    request_id = (await _create(client))["id"]

    resp = await client.post(
        f"/api/v1/requests/{request_id}/price",
        json={"parameters": {"distanceKm": 140, "seats": 2}},
    )
    assert resp.status_code == 200
    assert resp.json()["total"] == 290.0
    assert resp.json()["extras"]["price_per_seat"] == 145.0

    resp = await client.post(
        f"/api/v1/requests/{request_id}/assign", json={"provider_id": "drv-1"}
    )
    assert resp.json()["state"] == "assigned"

    resp = await client.post(
        f"/api/v1/requests/{request_id}/confirm",
        json={"payment": {"method": "card"}},
    )
    assert resp.json()["state"] == "confirmed"
    assert resp.json()["payment"]["method"] == "card"
    assert resp.json()["payment"]["amount"] == 290.0

    resp = await client.post(f"/api/v1/requests/{request_id}/execute")
    assert resp.json()["state"] == "active"

    resp = await client.post(
        f"/api/v1/requests/{request_id}/complete",
        json={"settlement": {"rating": 5}},
    )
    data = resp.json()
    assert resp.status_code == 200
    assert data["state"] == "completed"
    assert data["settlement"]["rating"] == 5
    assert data["started_at"] < data["completed_at"]

    resp = await client.get(f"/api/v1/requests/{request_id}")
    assert resp.json()["state"] == "completed"


@pytest.mark.asyncio
async def test_illegal_transition_is_409(client: AsyncClient):
    request_id = (await _create(client))["id"]
    resp = await client.post(f"/api/v1/requests/{request_id}/execute")
    assert resp.status_code == 409
    assert resp.json()["error"] == "InvalidStateTransition"
    assert resp.json()["request_id"] == request_id


@pytest.mark.asyncio
async def test_invalid_price_parameters_is_422(client: AsyncClient):
    request_id = (await _create(client))["id"]
    resp = await client.post(
        f"/api/v1/requests/{request_id}/price",
        json={"parameters": {"distanceKm": -1, "seats": 2}},
    )
    assert resp.status_code == 422
    assert resp.json()["error"] == "InvalidParameters"


@pytest.mark.asyncio
async def test_auto_assign_without_providers_is_503(client: AsyncClient):
    request_id = (await _create(client))["id"]
    resp = await client.post(f"/api/v1/requests/{request_id}/assign")
    assert resp.status_code == 503
    assert resp.headers["retry-after"] == "5"
    assert resp.json()["retryable"] is True


@pytest.mark.asyncio
async def test_auto_assign_binds_nearest(client: AsyncClient, add_providers):
    await add_providers(
        {"id": "drv-7", "service_type": ServiceType.CARPOOL, "name": "Nearby",
         "latitude": 25.205, "longitude": 55.275},
    )
    request_id = (await _create(client))["id"]
    resp = await client.post(f"/api/v1/requests/{request_id}/assign", json={})
    assert resp.status_code == 200
    assert resp.json()["provider_id"] == "drv-7"


@pytest.mark.asyncio
async def test_cancel_releases_provider(client: AsyncClient):
    request_id = (await _create(client))["id"]
    await client.post(f"/api/v1/requests/{request_id}/assign", json={"provider_id": "drv-1"})

    resp = await client.post(
        f"/api/v1/requests/{request_id}/cancel", json={"reason": "flight delayed"}
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["state"] == "cancelled"
    assert data["provider_id"] is None
    assert data["cancellation"]["provider_id"] == "drv-1"

    resp = await client.post(f"/api/v1/requests/{request_id}/cancel")
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_list_requests_for_requester(client: AsyncClient):
    first = await _create(client)
    second = await _create(client)
    await _create(client, requester_id="user-2")

    resp = await client.get("/api/v1/requests", params={"requester_id": "user-1"})
    assert resp.status_code == 200
    assert [r["id"] for r in resp.json()] == [second["id"], first["id"]]


@pytest.mark.asyncio
async def test_provider_search(client: AsyncClient, add_providers):
    await add_providers(
        {"id": "sct-1", "service_type": ServiceType.SCOOTER, "name": "Scooter 1",
         "latitude": 25.201, "longitude": 55.271, "capacity": 1},
    )
    resp = await client.post(
        "/api/v1/providers/search",
        json={
            "service_type": "scooter",
            "filter": {"location": {"lat": 25.20, "lng": 55.27}, "radiusKm": 2},
        },
    )
    assert resp.status_code == 200
    found = resp.json()
    assert [p["id"] for p in found] == ["sct-1"]
    assert found[0]["distance_km"] < 1


@pytest.mark.asyncio
async def test_provider_search_without_location_is_422(client: AsyncClient):
    resp = await client.post(
        "/api/v1/providers/search", json={"service_type": "scooter", "filter": {}}
    )
    assert resp.status_code == 422
    assert resp.json()["error"] == "InvalidParameters"


@pytest.mark.asyncio
async def test_quote(client: AsyncClient):
    resp = await client.post(
        "/api/v1/quotes/laundry",
        json={"loadWeightKg": 10, "serviceMode": "one_way", "partnerId": "lnd-1"},
    )
    assert resp.status_code == 200
    assert resp.json()["total"] == 132.0
    assert resp.json()["service_type"] == "laundry"


@pytest.mark.asyncio
async def test_quote_unknown_service_type(client: AsyncClient):
    resp = await client.post("/api/v1/quotes/teleport", json={"distanceKm": 1})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_admin_requests_by_state(client: AsyncClient):
    pending = await _create(client)
    assigned = await _create(client)
    await client.post(
        f"/api/v1/requests/{assigned['id']}/assign", json={"provider_id": "drv-1"}
    )

    resp = await client.get("/api/v1/admin/requests", params={"state": "pending"})
    assert resp.status_code == 200
    assert [r["id"] for r in resp.json()] == [pending["id"]]
