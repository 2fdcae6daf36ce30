import json

import httpx
import pytest

from main import app
from services.inventory_service.main import inventory_app
from services.order_service.main import order_app
from services.orchestrator.dependencies import (
    reset_dependencies,
    set_gateway,
    set_lifecycle_manager,
    set_tracking_client,
)
from services.payment_service.main import payment_app
from services.tracking_service.fake_client import FakeCarrierTrackingClient
from services.tracking_service.main import tracking_app
from services.tracking_service.repository import TrackingStore
from shared.config.database import get_db, get_session_factory

from tests.fakes import INTERNAL_HEADERS

SUB_APPS = (order_app, inventory_app, payment_app, tracking_app)


@pytest.fixture
def carrier(session_factory):
    return FakeCarrierTrackingClient(store=TrackingStore(session_factory))


@pytest.fixture
async def client(manager, gateway, carrier, session_factory, variants):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    for sub_app in SUB_APPS:
        sub_app.dependency_overrides[get_db] = override_get_db
        sub_app.dependency_overrides[get_session_factory] = lambda: session_factory
    set_lifecycle_manager(manager)
    set_gateway(gateway)
    set_tracking_client(carrier)

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client

    for sub_app in SUB_APPS:
        sub_app.dependency_overrides.clear()
    reset_dependencies()


@pytest.fixture
def order_payload(variants, shipping_address):
    return {
        "items": [{"variant_id": variants["tee"], "quantity": 2}],
        "shipping_address": shipping_address,
        "payment_method": "APPLE_PAY",
        "buyer_id": 42,
    }


async def place(client, payload):
    resp = await client.post("/orders/", json=payload, headers=INTERNAL_HEADERS)
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestSecurity:
    async def test_health_is_public(self, client):
        for prefix in ("/orders", "/inventory", "/payments", "/tracking"):
            resp = await client.get(f"{prefix}/health")
            assert resp.status_code == 200

    async def test_internal_routes_need_the_cluster_key(self, client, order_payload):
        resp = await client.post("/orders/", json=order_payload)
        assert resp.status_code == 403
        resp = await client.post("/orders/", json=order_payload, headers={"X-Internal-API-Key": "wrong"})
        assert resp.status_code == 403


class TestOrderRoutes:
    async def test_create_and_fetch(self, client, order_payload):
        created = await place(client, order_payload)
        assert created["total"] == "19.98"
        assert created["status"] == "PENDING"
        assert created["payment_intent"]["intent_id"] == "pi_1"

        resp = await client.get(f"/orders/{created['order_id']}", headers=INTERNAL_HEADERS)
        assert resp.status_code == 200
        body = resp.json()
        assert body["external_id"] == created["external_id"]
        assert body["items"][0]["unit_price"] == "9.99"
        assert body["payment"]["amount"] == "19.98"
        assert body["payment"]["status"] == "REQUIRES_ACTION"
        assert [(h["old_status"], h["new_status"]) for h in body["history"]] == [(None, "PENDING")]

    async def test_error_mapping(self, client, order_payload, processor, variants):
        resp = await client.get("/orders/9999", headers=INTERNAL_HEADERS)
        assert resp.status_code == 404
        assert resp.json()["error"] == "order_not_found"

        short = dict(order_payload, items=[{"variant_id": variants["mug"], "quantity": 9}])
        resp = await client.post("/orders/", json=short, headers=INTERNAL_HEADERS)
        assert resp.status_code == 409
        assert resp.json()["error"] == "insufficient_inventory"
        assert resp.json()["available"] == 3

        empty = dict(order_payload, items=[])
        resp = await client.post("/orders/", json=empty, headers=INTERNAL_HEADERS)
        assert resp.status_code == 422
        assert resp.json()["error"] == "validation_error"

        processor.create_status = 402
        resp = await client.post("/orders/", json=order_payload, headers=INTERNAL_HEADERS)
        assert resp.status_code == 502
        assert resp.json()["upstream_status"] == 402

    async def test_status_update_and_rejected_edge(self, client, order_payload):
        created = await place(client, order_payload)
        url = f"/orders/{created['order_id']}/status"

        resp = await client.patch(url, json={"status": "SHIPPED"}, headers=INTERNAL_HEADERS)
        assert resp.status_code == 409
        assert resp.json()["error"] == "invalid_state_transition"
        assert (resp.json()["from_status"], resp.json()["to_status"]) == ("PENDING", "SHIPPED")

        resp = await client.patch(url, json={"status": "PROCESSING", "actor": 3}, headers=INTERNAL_HEADERS)
        assert resp.status_code == 200
        assert resp.json()["old_status"] == "PENDING"
        assert resp.json()["new_status"] == "PROCESSING"

    async def test_bulk_status(self, client, order_payload):
        first = await place(client, order_payload)
        resp = await client.post(
            "/orders/bulk-status",
            json={"order_ids": [first["order_id"], 9999], "status": "PROCESSING"},
            headers=INTERNAL_HEADERS,
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["succeeded"] == [first["order_id"]]
        assert body["failed"] == [9999]


class TestWebhookRoute:
    async def test_signed_event_is_processed(self, client, order_payload, gateway):
        created = await place(client, order_payload)
        payload = json.dumps({"type": "payment_intent.succeeded", "data": {"id": "pi_1"}})
        headers = {"signature": gateway.sign_payload(payload, "1700000000"), "request-timestamp": "1700000000"}

        resp = await client.post("/payments/webhooks/processor", content=payload, headers=headers)

        assert resp.status_code == 200
        assert resp.json()["order_status"] == "PROCESSING"
        order = await client.get(f"/orders/{created['order_id']}", headers=INTERNAL_HEADERS)
        assert order.json()["status"] == "PROCESSING"

    async def test_bad_signature_is_rejected(self, client, order_payload):
        await place(client, order_payload)
        payload = json.dumps({"type": "payment_intent.succeeded", "data": {"id": "pi_1"}})
        resp = await client.post(
            "/payments/webhooks/processor",
            content=payload,
            headers={"signature": "deadbeef", "request-timestamp": "1700000000"},
        )
        assert resp.status_code == 400

    async def test_non_utf8_body_is_a_bad_request(self, client, gateway):
        payload = b"\xff\xfe{}"
        unsigned = await client.post(
            "/payments/webhooks/processor",
            content=payload,
            headers={"signature": "deadbeef", "request-timestamp": "1700000000"},
        )
        assert unsigned.status_code == 400
        assert unsigned.json()["detail"] == "Invalid signature"

        signed = await client.post(
            "/payments/webhooks/processor",
            content=payload,
            headers={"signature": gateway.sign_payload(payload, "1700000000"), "request-timestamp": "1700000000"},
        )
        assert signed.status_code == 400
        assert signed.json()["detail"] == "Malformed webhook payload"

    async def test_payment_status_lookup(self, client):
        resp = await client.get("/payments/pi_9", headers=INTERNAL_HEADERS)
        assert resp.status_code == 200
        assert resp.json()["status"] == "succeeded"


class TestTrackingRoutes:
    async def test_order_without_tracking(self, client, order_payload):
        created = await place(client, order_payload)
        resp = await client.get(f"/tracking/orders/{created['order_id']}", headers=INTERNAL_HEADERS)
        assert resp.status_code == 200
        assert resp.json()["has_tracking"] is False

    async def test_shipped_order_tracking(self, client, order_payload):
        created = await place(client, order_payload)
        for status in ("PROCESSING", "SHIPPED"):
            await client.patch(
                f"/orders/{created['order_id']}/status", json={"status": status}, headers=INTERNAL_HEADERS
            )

        resp = await client.get(f"/tracking/orders/{created['order_id']}", headers=INTERNAL_HEADERS)

        assert resp.status_code == 200
        body = resp.json()
        assert body["has_tracking"] is True
        assert body["tracking_data"]["status"] == "IN_TRANSIT"
        assert body["current_status"] == "IN_TRANSIT"
        assert sorted(entry["status"] for entry in body["history"]) == ["ACCEPTED", "IN_TRANSIT", "SHIPPED"]

    async def test_carrier_outage_is_503(self, client, order_payload, carrier):
        created = await place(client, order_payload)
        await client.put(
            f"/tracking/orders/{created['order_id']}/tracking-number",
            json={"tracking_number": "RM0000000009GB"},
            headers=INTERNAL_HEADERS,
        )
        carrier.configure(should_succeed=False)

        resp = await client.get(f"/tracking/orders/{created['order_id']}", headers=INTERNAL_HEADERS)

        assert resp.status_code == 503
        assert resp.json()["error"] == "carrier_unavailable"


class TestInventoryRoutes:
    async def test_variant_lifecycle(self, client):
        resp = await client.post(
            "/inventory/variants",
            json={"sku": "CAP-RED", "name": "Cap red", "price": "12.00", "inventory_quantity": 4},
            headers=INTERNAL_HEADERS,
        )
        assert resp.status_code == 201
        variant_id = resp.json()["id"]

        resp = await client.patch(
            f"/inventory/variants/{variant_id}/stock", json={"delta": 6, "reason": "Delivery"}, headers=INTERNAL_HEADERS
        )
        assert resp.json() == {"variant_id": variant_id, "available": 10}

        resp = await client.get(f"/inventory/variants/{variant_id}/availability", headers=INTERNAL_HEADERS)
        assert resp.json()["available"] == 10

        resp = await client.get(f"/inventory/variants/{variant_id}/audit", headers=INTERNAL_HEADERS)
        assert [(e["change_type"], e["quantity_change"]) for e in resp.json()] == [("ADJUSTMENT", 6)]

    async def test_missing_variant_and_duplicate_sku(self, client):
        resp = await client.get("/inventory/variants/9999", headers=INTERNAL_HEADERS)
        assert resp.status_code == 404
        resp = await client.post(
            "/inventory/variants",
            json={"sku": "TEE-BLK-M", "name": "Duplicate", "price": "1.00"},
            headers=INTERNAL_HEADERS,
        )
        assert resp.status_code == 422
