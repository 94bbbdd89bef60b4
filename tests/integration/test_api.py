"""Integration tests for the marketplace HTTP API via TestClient."""

import json

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from marketplace.api import (
    cart_router,
    delivery_router,
    fraud_router,
    order_router,
    payment_router,
    register_marketplace_handlers,
)
from marketplace.order.order import Order
from marketplace.payment.signature import canonical_body, compute_signature
from protean import current_domain
from protean.integrations.fastapi import register_exception_handlers

SECRET = "test-webhook-secret"


@pytest.fixture()
def client():
    app = FastAPI()
    for router in (cart_router, order_router, payment_router, delivery_router, fraud_router):
        app.include_router(router)
    register_exception_handlers(app)
    register_marketplace_handlers(app)
    return TestClient(app)


def _as(actor):
    return {"X-Actor-Id": actor}


def _post_signed(client, data):
    body = json.dumps(data).encode()
    return client.post(
        "/payments/webhook",
        content=body,
        headers={"Content-Type": "application/json", "X-Webhook-Signature": compute_signature(body, SECRET)},
    )


def _checkout(client, buyer, shipping_address, product_id="p1", quantity=1):
    client.post("/carts/me/items", json={"product_id": product_id, "quantity": quantity}, headers=_as(buyer))
    response = client.post("/orders", json={"shipping_address": shipping_address}, headers=_as(buyer))
    assert response.status_code == 201
    return response.json()["order_id"]


class TestCartAPI:
    def test_add_and_read(self, client, buyer, make_product):
        make_product("p1", unit_price=25000)

        response = client.post("/carts/me/items", json={"product_id": "p1", "quantity": 2}, headers=_as(buyer))
        assert response.status_code == 201

        cart = client.get("/carts/me", headers=_as(buyer)).json()
        assert cart["subtotal"] == 50000
        assert cart["items"][0]["line_total"] == 50000

    def test_insufficient_inventory(self, client, buyer, make_product):
        make_product("p1", available_quantity=1)
        response = client.post("/carts/me/items", json={"product_id": "p1", "quantity": 3}, headers=_as(buyer))

        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "InsufficientInventory"
        assert body["available"] == 1

    def test_missing_actor(self, client, make_product):
        make_product("p1")
        response = client.post("/carts/me/items", json={"product_id": "p1", "quantity": 1})
        assert response.status_code == 403

    def test_validation(self, client, buyer, make_product):
        make_product("p1")
        client.post("/carts/me/items", json={"product_id": "p1", "quantity": 1}, headers=_as(buyer))
        assert client.get("/carts/me/validation", headers=_as(buyer)).json() == {"valid": True, "issues": []}


class TestOrderAPI:
    def test_place_and_read(self, client, buyer, make_product, shipping_address):
        make_product("p1", unit_price=25000)
        order_id = _checkout(client, buyer, shipping_address, quantity=2)

        body = client.get(f"/orders/{order_id}", headers=_as(buyer)).json()
        assert body["total_amount"] == 50000
        assert body["status"] == "pending"
        assert body["payment_status"] == "unpaid"

    def test_vendor_view(self, client, buyer, vendor, make_product, shipping_address):
        make_product("p1", unit_price=1000)
        order_id = _checkout(client, buyer, shipping_address)

        body = client.get(f"/orders/{order_id}", headers=_as(vendor)).json()
        assert body["vendor_id"] == vendor
        assert body["vendor_total"] == 1000

    def test_illegal_transition_is_conflict(self, client, buyer, admin, make_product, shipping_address):
        make_product("p1")
        order_id = _checkout(client, buyer, shipping_address)

        response = client.post(f"/orders/{order_id}/status", json={"status": "delivered"}, headers=_as(admin))
        assert response.status_code == 409
        assert response.json()["current_status"] == "pending"

    def test_cancel(self, client, buyer, make_product, shipping_address):
        make_product("p1")
        order_id = _checkout(client, buyer, shipping_address)

        response = client.post(f"/orders/{order_id}/cancel", json={"reason": "Ordered twice"}, headers=_as(buyer))
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

    def test_empty_cart_is_bad_request(self, client, buyer, shipping_address):
        response = client.post("/orders", json={"shipping_address": shipping_address}, headers=_as(buyer))
        assert response.status_code == 400

    def test_unknown_order(self, client, buyer):
        assert client.get("/orders/does-not-exist", headers=_as(buyer)).status_code == 404


class TestPaymentAPI:
    def test_initiate(self, client, buyer, make_product, shipping_address):
        make_product("p1", unit_price=25000)
        order_id = _checkout(client, buyer, shipping_address)

        response = client.post("/payments", json={"order_id": order_id}, headers=_as(buyer))

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "processing"
        assert body["fees"] == 425
        assert body["payment_url"]

    def test_fraud_block_is_forbidden(self, client, buyer, admin, make_product, shipping_address):
        make_product("p1", unit_price=1_500_000, available_quantity=3)
        order_id = _checkout(client, buyer, shipping_address)
        client.post("/fraud/blocked-addresses", json={"ip_address": "203.0.113.9"}, headers=_as(admin))

        response = client.post(
            "/payments",
            json={"order_id": order_id},
            headers={**_as(buyer), "X-Forwarded-For": "203.0.113.9, 10.0.0.1"},
        )

        assert response.status_code == 403
        assert response.json()["error"] == "FraudBlockedError"

    def test_gateway_down_is_bad_gateway(self, client, buyer, gateway, make_product, shipping_address):
        make_product("p1")
        order_id = _checkout(client, buyer, shipping_address)
        gateway.configure(unreachable=True)

        response = client.post("/payments", json={"order_id": order_id}, headers=_as(buyer))
        assert response.status_code == 502

    def test_signed_webhook_settles_order(self, client, buyer, make_product, shipping_address):
        make_product("p1", unit_price=100000)
        order_id = _checkout(client, buyer, shipping_address)
        reference = client.post("/payments", json={"order_id": order_id}, headers=_as(buyer)).json()[
            "payment_reference"
        ]

        response = _post_signed(client, {"reference": reference, "status": "completed", "transaction_id": "gw-1"})

        assert response.status_code == 200
        assert response.json() == {"payment_reference": reference, "applied": True, "status": "completed"}
        assert current_domain.repository_for(Order).get(order_id).payment_status == "paid"

    def test_signature_in_body(self, client, buyer, make_product, shipping_address):
        make_product("p1")
        order_id = _checkout(client, buyer, shipping_address)
        reference = client.post("/payments", json={"order_id": order_id}, headers=_as(buyer)).json()[
            "payment_reference"
        ]
        data = {"reference": reference, "status": "failed", "error_message": "Declined"}
        data["signature"] = compute_signature(canonical_body(data), SECRET)

        response = client.post("/payments/webhook", json=data)

        assert response.status_code == 200
        assert response.json()["status"] == "failed"

    def test_invalid_signature(self, client, buyer, make_product, shipping_address):
        make_product("p1")
        order_id = _checkout(client, buyer, shipping_address)
        reference = client.post("/payments", json={"order_id": order_id}, headers=_as(buyer)).json()[
            "payment_reference"
        ]

        response = client.post(
            "/payments/webhook",
            json={"reference": reference, "status": "completed"},
            headers={"X-Webhook-Signature": "0" * 64},
        )

        assert response.status_code == 401
        assert current_domain.repository_for(Order).get(order_id).payment_status == "unpaid"

    def test_unknown_reference(self, client):
        response = _post_signed(client, {"reference": "PAY-20240101-NOPE000000", "status": "completed"})
        assert response.status_code == 404

    def test_non_json_body(self, client):
        body = b"reference=abc"
        response = client.post(
            "/payments/webhook",
            content=body,
            headers={"X-Webhook-Signature": compute_signature(body, SECRET)},
        )
        assert response.status_code == 400

    def test_payment_detail_is_private(self, client, buyer, register, make_product, shipping_address):
        make_product("p1")
        order_id = _checkout(client, buyer, shipping_address)
        reference = client.post("/payments", json={"order_id": order_id}, headers=_as(buyer)).json()[
            "payment_reference"
        ]
        stranger = register("buyer-002", "buyer")

        assert client.get(f"/payments/{reference}", headers=_as(buyer)).status_code == 200
        assert client.get(f"/payments/{reference}", headers=_as(stranger)).status_code == 403


class TestDeliveryAPI:
    def test_accept_and_track(self, client, buyer, driver, make_product, shipping_address):
        make_product("p1")
        order_id = _checkout(client, buyer, shipping_address)
        client.post("/payments", json={"order_id": order_id, "method": "cash_on_delivery"}, headers=_as(buyer))

        available = client.get("/deliveries/available", headers=_as(driver)).json()
        assert len(available) == 1
        delivery_id = available[0]["delivery_id"]

        response = client.post(f"/deliveries/{delivery_id}/assign", json={}, headers=_as(driver))
        assert response.status_code == 200
        assert response.json()["driver_id"] == driver

        response = client.post(f"/deliveries/{delivery_id}/status", json={"status": "picked_up"}, headers=_as(driver))
        assert response.json()["status"] == "picked_up"

    def test_auto_match_requires_admin(self, client, driver):
        assert client.post("/deliveries/auto-match", headers=_as(driver)).status_code == 403
