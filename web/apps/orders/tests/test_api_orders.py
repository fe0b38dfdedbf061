"""API tests for the customer order endpoints.

Checkout runs end to end through the views, the lifecycle and the
database-backed stock ledger; the payment gateway is the in-process stub.
"""

import pytest

from apps.catalog.models import Product
from apps.orders.models import Order

pytestmark = pytest.mark.django_db

ORDERS_URL = "/api/orders/"
CUSTOMER = {"HTTP_X_ACTOR_ID": "u-1"}
OTHER = {"HTTP_X_ACTOR_ID": "u-2"}


@pytest.fixture
def payload(address, make_product):
    tea = make_product(name="Tea", price="250.00", stock=5)
    mug = make_product(name="Mug", price="199.50", stock=3)
    return {
        "items": [{"product_id": tea.pk, "quantity": 2}, {"product_id": mug.pk, "quantity": 1}],
        "shipping_address": address,
        "payment_method": "gateway",
        "shipping_amount": "50.00",
    }


def _create(client, payload, **extra):
    return client.post(ORDERS_URL, data=payload, content_type="application/json", **extra)


def test_create_order_201(client, gateway, payload):
    r = _create(client, payload, **CUSTOMER)
    assert r.status_code == 201
    body = r.json()
    assert body["status"] == "pending"
    assert body["payment_status"] == "pending"
    assert body["subtotal"] == "699.50"
    assert body["total_amount"] == "749.50"
    assert len(body["items"]) == 2
    assert body["history"][0]["status"] == "pending"
    assert "admin_notes" not in body
    stock = dict(Product.objects.values_list("name", "stock_quantity"))
    assert stock == {"Tea": 3, "Mug": 2}
    assert Order.objects.get(pk=body["id"]).customer_id == "u-1"


def test_create_order_insufficient_stock(client, gateway, payload):
    payload["items"][1]["quantity"] = 4
    r = _create(client, payload)
    assert r.status_code == 400
    assert r.json()["detail"] == "INSUFFICIENT_STOCK"
    assert dict(Product.objects.values_list("name", "stock_quantity")) == {"Tea": 5, "Mug": 3}
    assert Order.objects.count() == 0


def test_create_order_validation_error(client, gateway, payload):
    payload["items"] = []
    r = _create(client, payload)
    assert r.status_code == 400
    assert r.json()["detail"] == "VALIDATION_ERROR"


def test_create_order_bad_address(client, gateway, payload):
    payload["shipping_address"]["email"] = "not-an-email"
    r = _create(client, payload)
    assert r.status_code == 400


def test_create_order_unknown_product(client, gateway, payload):
    payload["items"][0]["product_id"] = 987654
    r = _create(client, payload)
    assert r.status_code == 404
    assert r.json()["detail"] == "PRODUCT_NOT_FOUND"


def test_create_order_rejected_coupon(client, gateway, payload):
    payload["coupon_code"] = "missing"
    r = _create(client, payload)
    assert r.status_code == 400
    assert r.json()["detail"] == "COUPON_NOT_FOUND"


def test_idempotent_replay(client, gateway, payload):
    headers = {"HTTP_IDEMPOTENCY_KEY": "checkout-abc"}
    r1 = _create(client, payload, **headers)
    r2 = _create(client, payload, **headers)
    assert r1.status_code == 201
    assert r2.status_code == 201
    assert r2["Idempotent-Replay"] == "true"
    assert r2.json()["id"] == r1.json()["id"]
    assert Order.objects.count() == 1
    assert Product.objects.get(name="Tea").stock_quantity == 3


def test_idempotency_conflict(client, gateway, payload):
    headers = {"HTTP_IDEMPOTENCY_KEY": "checkout-abc"}
    assert _create(client, payload, **headers).status_code == 201
    payload["items"][0]["quantity"] = 1
    r = _create(client, payload, **headers)
    assert r.status_code == 409
    assert r.json()["detail"] == "IDEMPOTENCY_CONFLICT"


def test_idempotent_failure_is_replayed(client, gateway, payload):
    headers = {"HTTP_IDEMPOTENCY_KEY": "checkout-oos"}
    payload["items"][0]["quantity"] = 50
    r1 = _create(client, payload, **headers)
    Product.objects.filter(name="Tea").update(stock_quantity=100)
    r2 = _create(client, payload, **headers)
    assert r1.status_code == r2.status_code == 400
    assert r2.json()["detail"] == "INSUFFICIENT_STOCK"
    assert r2["Idempotent-Replay"] == "true"


def test_list_requires_actor(client):
    r = client.get(ORDERS_URL)
    assert r.status_code in (401, 403)


def test_list_returns_only_own_orders(client, gateway, payload):
    _create(client, payload, **CUSTOMER)
    _create(client, payload, **OTHER)
    r = client.get(ORDERS_URL, **CUSTOMER)
    assert r.status_code == 200
    body = r.json()
    assert body["count"] == 1
    assert body["results"][0]["status"] == "pending"


def test_list_invalid_status_filter(client):
    r = client.get(ORDERS_URL, {"status": "lost"}, **CUSTOMER)
    assert r.status_code == 400
    assert r.json()["detail"] == "INVALID_STATUS"


def test_retrieve_own_order(client, gateway, payload):
    oid = _create(client, payload, **CUSTOMER).json()["id"]
    r = client.get(f"{ORDERS_URL}{oid}/", **CUSTOMER)
    assert r.status_code == 200
    assert r.json()["id"] == oid


def test_retrieve_foreign_order_is_404(client, gateway, payload):
    oid = _create(client, payload, **CUSTOMER).json()["id"]
    r = client.get(f"{ORDERS_URL}{oid}/", **OTHER)
    assert r.status_code == 404
    assert r.json()["detail"] == "ORDER_NOT_FOUND"


def test_retrieve_guest_order_by_number(client, gateway, payload):
    number = _create(client, payload).json()["order_number"]
    r = client.get(f"{ORDERS_URL}by-number/{number}/")
    assert r.status_code == 200
    assert r.json()["order_number"] == number


def test_customer_order_by_number_hidden_from_guests(client, gateway, payload):
    number = _create(client, payload, **CUSTOMER).json()["order_number"]
    assert client.get(f"{ORDERS_URL}by-number/{number}/").status_code == 404
    assert client.get(f"{ORDERS_URL}by-number/{number}/", **CUSTOMER).status_code == 200


def test_cancel_restores_stock(client, gateway, payload):
    number = _create(client, payload, **CUSTOMER).json()["order_number"]
    r = client.patch(f"{ORDERS_URL}{number}/cancel/", **CUSTOMER)
    assert r.status_code == 200
    assert r.json()["status"] == "cancelled"
    assert dict(Product.objects.values_list("name", "stock_quantity")) == {"Tea": 5, "Mug": 3}

    again = client.patch(f"{ORDERS_URL}{number}/cancel/", **CUSTOMER)
    assert again.status_code == 400
    assert again.json()["detail"] == "ORDER_NOT_CANCELLABLE"
    assert dict(Product.objects.values_list("name", "stock_quantity")) == {"Tea": 5, "Mug": 3}


def test_cancel_unknown_order(client):
    r = client.patch(f"{ORDERS_URL}ORD-NOPE/cancel/")
    assert r.status_code == 404


def test_request_id_is_echoed(client, gateway, payload):
    r = _create(client, payload, HTTP_X_REQUEST_ID="req-42")
    assert r["X-Request-ID"] == "req-42"
