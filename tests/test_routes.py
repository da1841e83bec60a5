"""
Tests for the webhook administration API.
Drives the ASGI app in-process; services run over the test database.
"""
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from orderhub.dependencies.auth import TokenPayload, require_admin
from orderhub.dependencies.services import get_rate_limiter, get_retry_sweeper, get_webhook_service
from orderhub.main import app
from orderhub.services.jwt_service import JWTService
from orderhub.services.rate_limiter import RateLimiter
from orderhub.services.retry_sweeper import RetrySweeper

from tests.fakes import CUSTOMER_ID, ORDER_ID, FakeTransport, http_error, ok

ADMIN = TokenPayload(sub="admin-1", role="admin", email="admin@orderhub.example.com")


def _limiter(count=0):
    redis = MagicMock()
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[0, count])
    redis.pipeline.return_value = pipe
    redis.zrange = AsyncMock(return_value=[(b"member", 1_700_000_000.0 - 30)])
    redis.zadd = AsyncMock()
    redis.expire = AsyncMock()
    return RateLimiter(redis, limit=10, window=60, clock=lambda: 1_700_000_000.0)


@pytest.fixture
def wire_app(make_service):
    """Point the app's dependencies at test services; returns the fake transport."""

    def _wire(transport=None, limiter=None, admin=True):
        transport = transport or FakeTransport(ok())
        service = make_service(transport)
        app.dependency_overrides[get_webhook_service] = lambda: service
        app.dependency_overrides[get_retry_sweeper] = lambda: RetrySweeper(service, concurrency=1)
        app.dependency_overrides[get_rate_limiter] = lambda: limiter or _limiter()
        if admin:
            app.dependency_overrides[require_admin] = lambda: ADMIN
        return transport

    yield _wire
    app.dependency_overrides.clear()


@pytest.fixture
async def client():
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as c:
        yield c


async def _trigger(client, event="order.completed"):
    return await client.post(
        "/api/webhooks/deliveries",
        json={"customer_id": CUSTOMER_ID, "order_id": ORDER_ID, "event": event},
    )


class TestAuth:
    async def test_missing_token_is_rejected(self, client, wire_app, order):
        wire_app(admin=False)
        response = await client.get("/api/webhooks/deliveries")
        assert response.status_code in (401, 403)

    async def test_non_admin_token_is_forbidden(self, client, wire_app, order):
        wire_app(admin=False)
        token = JWTService().create_token("user-1", "staff", "staff@orderhub.example.com")
        response = await client.get("/api/webhooks/deliveries", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 403

    async def test_admin_token_is_accepted(self, client, wire_app, order):
        wire_app(admin=False)
        token = JWTService().create_token("admin-1", "admin", "admin@orderhub.example.com")
        response = await client.get("/api/webhooks/deliveries", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 200


class TestDeliveries:
    async def test_trigger_delivery(self, client, wire_app, order):
        transport = wire_app()

        response = await _trigger(client)

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "success"
        assert body["attempt_count"] == 1
        assert body["event_type"] == "order.completed"
        assert len(transport.calls) == 1

    async def test_trigger_for_unknown_customer(self, client, wire_app, order):
        wire_app()
        response = await client.post(
            "/api/webhooks/deliveries",
            json={"customer_id": "missing", "order_id": ORDER_ID, "event": "order.completed"},
        )
        assert response.status_code == 404

    async def test_trigger_with_unknown_event(self, client, wire_app, order):
        wire_app()
        assert (await _trigger(client, event="order.shipped")).status_code == 422

    async def test_list_and_filter(self, client, wire_app, order):
        wire_app(transport=FakeTransport(ok(), http_error(500)))
        await _trigger(client)
        await _trigger(client)

        response = await client.get("/api/webhooks/deliveries", params={"limit": 1})
        body = response.json()
        assert body["total"] == 2
        assert len(body["deliveries"]) == 1
        assert body["has_more"] is True

        response = await client.get("/api/webhooks/deliveries", params={"status": "retrying"})
        body = response.json()
        assert body["total"] == 1
        assert body["deliveries"][0]["error_message"] == "HTTP 500"

    async def test_list_rejects_out_of_range_limit(self, client, wire_app):
        wire_app()
        assert (await client.get("/api/webhooks/deliveries", params={"limit": 101})).status_code == 422

    async def test_get_delivery_includes_payload(self, client, wire_app, order):
        wire_app()
        delivery_id = (await _trigger(client)).json()["id"]

        response = await client.get(f"/api/webhooks/deliveries/{delivery_id}")

        assert response.status_code == 200
        body = response.json()
        assert body["payload"]["metadata"]["webhookId"] == delivery_id
        assert len(body["signature"]) == 64

    async def test_get_missing_delivery(self, client, wire_app):
        wire_app()
        assert (await client.get("/api/webhooks/deliveries/missing")).status_code == 404

    async def test_manual_retry(self, client, wire_app, order):
        transport = wire_app(transport=FakeTransport(http_error(500), ok()))
        delivery_id = (await _trigger(client)).json()["id"]

        response = await client.post(f"/api/webhooks/deliveries/{delivery_id}/retry")

        assert response.status_code == 200
        assert response.json()["status"] == "success"
        assert len(transport.calls) == 2

    async def test_manual_retry_of_terminal_delivery_is_noop(self, client, wire_app, order):
        transport = wire_app()
        delivery_id = (await _trigger(client)).json()["id"]

        response = await client.post(f"/api/webhooks/deliveries/{delivery_id}/retry")

        assert response.json()["attempt_count"] == 1
        assert len(transport.calls) == 1

    async def test_manual_retry_rate_limited(self, client, wire_app, order):
        transport = wire_app(transport=FakeTransport(http_error(500)), limiter=_limiter(count=10))
        delivery_id = (await _trigger(client)).json()["id"]

        response = await client.post(f"/api/webhooks/deliveries/{delivery_id}/retry")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "30"
        assert len(transport.calls) == 1

    async def test_process_retry_queue(self, client, wire_app, order):
        wire_app()
        response = await client.post("/api/webhooks/retry-queue/process")
        assert response.status_code == 200
        assert response.json()["due"] == 0


class TestCustomerEndpoints:
    async def test_stats(self, client, wire_app, order):
        wire_app()
        await _trigger(client)

        response = await client.get(f"/api/webhooks/customers/{CUSTOMER_ID}/stats", params={"days": 30})

        assert response.status_code == 200
        assert response.json() == {
            "total_deliveries": 1,
            "success_count": 1,
            "success_rate": 100.0,
            "status_breakdown": {"success": 1},
        }

    async def test_stats_days_bounds(self, client, wire_app):
        wire_app()
        response = await client.get(f"/api/webhooks/customers/{CUSTOMER_ID}/stats", params={"days": 91})
        assert response.status_code == 422

    async def test_test_endpoint(self, client, wire_app, customer):
        transport = wire_app()

        response = await client.post(f"/api/webhooks/customers/{CUSTOMER_ID}/test")

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert len(transport.calls) == 1
        listing = await client.get("/api/webhooks/deliveries")
        assert listing.json()["total"] == 0

    async def test_test_endpoint_rate_limited(self, client, wire_app, customer):
        transport = wire_app(limiter=_limiter(count=10))
        response = await client.post(f"/api/webhooks/customers/{CUSTOMER_ID}/test")
        assert response.status_code == 429
        assert transport.calls == []

    async def test_secret_info_and_regenerate(self, client, wire_app, customer):
        wire_app()

        response = await client.get(f"/api/webhooks/customers/{CUSTOMER_ID}/secret")
        assert response.json() == {"has_secret": False, "created_at": None}

        response = await client.post(f"/api/webhooks/customers/{CUSTOMER_ID}/secret/regenerate")
        assert response.status_code == 200

        body = (await client.get(f"/api/webhooks/customers/{CUSTOMER_ID}/secret")).json()
        assert body["has_secret"] is True
        assert "secret" not in body

    async def test_secret_for_unknown_customer(self, client, wire_app):
        wire_app()
        assert (await client.get("/api/webhooks/customers/missing/secret")).status_code == 404


class TestRoot:
    async def test_root(self, client):
        response = await client.get("/")
        assert response.json()["status"] == "running"
