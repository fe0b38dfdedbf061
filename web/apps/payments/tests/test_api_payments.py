"""API tests for /api/payments/*: intents, verify, webhook and refund.

Signatures are computed with the same test secrets the settings default to,
so the stub gateway verifies them with the real HMAC rules.
"""

import json

import pytest

from apps.orders.domain import PaymentMethod
from apps.orders.models import Order
from apps.payments import signatures

pytestmark = pytest.mark.django_db

CREATE_URL = "/api/payments/create-order"
VERIFY_URL = "/api/payments/verify"
WEBHOOK_URL = "/api/payments/webhook"
REFUND_URL = "/api/payments/refund"
ADMIN = {"HTTP_X_ACTOR_ID": "admin-1", "HTTP_X_ACTOR_ROLE": "admin"}


@pytest.fixture
def pending_order(lifecycle, checkout, make_product):
    p = make_product(price="499.99", stock=5)
    return lifecycle.create_order(checkout((p, 1)))


@pytest.fixture
def intent_order(client, pending_order):
    r = client.post(CREATE_URL, data={"order_id": str(pending_order.pk)}, content_type="application/json")
    assert r.status_code == 200
    return Order.objects.get(pk=pending_order.pk)


def _webhook(client, settings, event, entity, secret=None, raw=None):
    body = raw if raw is not None else json.dumps({"event": event, "payload": {"payment": {"entity": entity}}}).encode()
    sig = signatures.sign(secret or settings.PAYMENT_GATEWAY_WEBHOOK_SECRET, body)
    header = "HTTP_" + settings.PAYMENT_GATEWAY_SIGNATURE_HEADER.upper().replace("-", "_")
    return client.post(WEBHOOK_URL, data=body, content_type="application/json", **{header: sig})


def test_create_intent_for_order_total(client, gateway, pending_order):
    r = client.post(CREATE_URL, data={"order_id": str(pending_order.pk)}, content_type="application/json")
    assert r.status_code == 200
    body = r.json()
    assert body["amount_minor"] == 49999
    assert body["currency"] == "INR"
    assert body["gateway_order_id"] in gateway.intents


def test_create_intent_unknown_order(client, gateway):
    r = client.post(
        CREATE_URL, data={"order_id": "00000000-0000-0000-0000-000000000000"}, content_type="application/json"
    )
    assert r.status_code == 404
    assert r.json()["detail"] == "ORDER_NOT_FOUND"


def test_create_intent_garbled_gateway_reply_is_502(client, settings, pending_order, monkeypatch):
    import httpx

    class ProxyPage:
        status_code = 200

        def json(self):
            raise ValueError("not json")

    settings.USE_HTTP_ADAPTERS = True
    monkeypatch.setattr(httpx.Client, "post", lambda self, url, **kw: ProxyPage(), raising=True)
    r = client.post(CREATE_URL, data={"order_id": str(pending_order.pk)}, content_type="application/json")
    assert r.status_code == 502
    assert r.json()["detail"] == "GATEWAY_BAD_RESPONSE"
    assert Order.objects.get(pk=pending_order.pk).gateway_order_id is None


def test_verify_marks_paid(client, settings, intent_order):
    sig = signatures.sign(
        settings.PAYMENT_GATEWAY_KEY_SECRET,
        signatures.client_signature_payload(intent_order.gateway_order_id, "pay_1"),
    )
    r = client.post(
        VERIFY_URL,
        data={"gateway_order_id": intent_order.gateway_order_id, "payment_id": "pay_1", "signature": sig},
        content_type="application/json",
    )
    assert r.status_code == 200
    assert r.json()["payment_status"] == "paid"
    order = Order.objects.get(pk=intent_order.pk)
    assert order.gateway_payment_id == "pay_1"
    assert order.gateway_signature == sig
    assert order.payment_details["method"] == "card"


def test_verify_bad_signature(client, intent_order):
    r = client.post(
        VERIFY_URL,
        data={"gateway_order_id": intent_order.gateway_order_id, "payment_id": "pay_1", "signature": "deadbeef"},
        content_type="application/json",
    )
    assert r.status_code == 400
    assert r.json()["detail"] == "INVALID_SIGNATURE"
    assert Order.objects.get(pk=intent_order.pk).payment_status == "pending"


def test_verify_survives_details_outage(client, settings, gateway, intent_order, monkeypatch):
    from apps.core import errors

    def down(payment_id):
        raise errors.GatewayError("GATEWAY_UNAVAILABLE", "down")

    monkeypatch.setattr(gateway, "fetch_payment_details", down)
    sig = signatures.sign(
        settings.PAYMENT_GATEWAY_KEY_SECRET,
        signatures.client_signature_payload(intent_order.gateway_order_id, "pay_1"),
    )
    r = client.post(
        VERIFY_URL,
        data={"gateway_order_id": intent_order.gateway_order_id, "payment_id": "pay_1", "signature": sig},
        content_type="application/json",
    )
    assert r.status_code == 200
    order = Order.objects.get(pk=intent_order.pk)
    assert order.payment_status == "paid"
    assert order.payment_details is None


def test_webhook_captured_marks_paid(client, settings, intent_order):
    entity = {"id": "pay_9", "order_id": intent_order.gateway_order_id, "method": "upi", "vpa": "asha@upi"}
    r = _webhook(client, settings, "payment.captured", entity)
    assert r.status_code == 200
    assert r.json()["status"] == "processed"
    order = Order.objects.get(pk=intent_order.pk)
    assert order.payment_status == "paid"
    assert order.gateway_payment_id == "pay_9"
    assert order.payment_details["vpa"] == "asha@upi"


def test_webhook_and_verify_race_converge(client, settings, intent_order):
    entity = {"id": "pay_9", "order_id": intent_order.gateway_order_id}
    _webhook(client, settings, "payment.captured", entity)
    paid_at = Order.objects.get(pk=intent_order.pk).paid_at

    sig = signatures.sign(
        settings.PAYMENT_GATEWAY_KEY_SECRET,
        signatures.client_signature_payload(intent_order.gateway_order_id, "pay_9"),
    )
    r = client.post(
        VERIFY_URL,
        data={"gateway_order_id": intent_order.gateway_order_id, "payment_id": "pay_9", "signature": sig},
        content_type="application/json",
    )
    assert r.status_code == 200
    # duplicate delivery of the same webhook
    _webhook(client, settings, "payment.captured", entity)
    assert Order.objects.get(pk=intent_order.pk).paid_at == paid_at


def test_webhook_invalid_signature_changes_nothing(client, settings, intent_order):
    entity = {"id": "pay_9", "order_id": intent_order.gateway_order_id}
    r = _webhook(client, settings, "payment.captured", entity, secret="wrong-secret")
    assert r.status_code == 400
    assert r.json()["detail"] == "INVALID_SIGNATURE"
    assert Order.objects.get(pk=intent_order.pk).payment_status == "pending"


def test_webhook_missing_signature(client, intent_order):
    r = client.post(WEBHOOK_URL, data=b"{}", content_type="application/json")
    assert r.status_code == 400


def test_webhook_failed_event(client, settings, intent_order):
    entity = {"id": "pay_9", "order_id": intent_order.gateway_order_id}
    r = _webhook(client, settings, "payment.failed", entity)
    assert r.status_code == 200
    assert Order.objects.get(pk=intent_order.pk).payment_status == "failed"


def test_webhook_unknown_event_is_ignored(client, settings, intent_order):
    r = _webhook(client, settings, "refund.processed", {"id": "rfnd_1"})
    assert r.status_code == 200
    assert r.json()["status"] == "ignored"


def test_webhook_unknown_order_is_ignored(client, settings, gateway):
    r = _webhook(client, settings, "payment.captured", {"id": "pay_1", "order_id": "order_unknown"})
    assert r.status_code == 200
    assert r.json()["status"] == "ignored"


def test_webhook_malformed_body(client, settings, gateway):
    r = _webhook(client, settings, None, None, raw=b"not json")
    assert r.status_code == 400
    assert r.json()["detail"] == "MALFORMED_PAYLOAD"


@pytest.mark.parametrize(
    "body",
    [
        {"event": "payment.captured", "payload": "oops"},
        {"event": "payment.captured", "payload": {"payment": 42}},
        {"event": "payment.captured", "payload": {"payment": {"entity": ["x"]}}},
    ],
)
def test_webhook_nested_fields_must_be_objects(client, settings, intent_order, body):
    r = _webhook(client, settings, None, None, raw=json.dumps(body).encode())
    assert r.status_code == 400
    assert r.json()["detail"] == "MALFORMED_PAYLOAD"
    assert Order.objects.get(pk=intent_order.pk).payment_status == "pending"


def test_webhook_internal_failure_answers_500(client, settings, intent_order, monkeypatch):
    def boom(*a, **kw):
        raise RuntimeError("db down")

    monkeypatch.setattr("apps.orders.lifecycle.OrderLifecycle.apply_payment_result", boom)
    entity = {"id": "pay_9", "order_id": intent_order.gateway_order_id}
    r = _webhook(client, settings, "payment.captured", entity)
    assert r.status_code == 500


def test_refund_requires_admin(client, intent_order):
    r = client.post(REFUND_URL, data={"order_id": str(intent_order.pk)}, content_type="application/json")
    assert r.status_code in (401, 403)


def test_refund_pending_order_is_not_paid(client, gateway, intent_order):
    r = client.post(REFUND_URL, data={"order_id": str(intent_order.pk)}, content_type="application/json", **ADMIN)
    assert r.status_code == 400
    assert r.json()["detail"] == "NOT_PAID"
    assert gateway.refunds == []


def test_refund_paid_order(client, settings, gateway, intent_order):
    _webhook(client, settings, "payment.captured", {"id": "pay_9", "order_id": intent_order.gateway_order_id})
    r = client.post(
        REFUND_URL,
        data={"order_id": str(intent_order.pk), "reason": "damaged"},
        content_type="application/json",
        **ADMIN,
    )
    assert r.status_code == 200
    assert r.json()["amount"] == "499.99"
    order = Order.objects.get(pk=intent_order.pk)
    assert order.payment_status == "refunded"
    assert order.refund_reason == "damaged"


def test_intent_refused_for_paid_cod_order(client, lifecycle, checkout, make_product):
    p = make_product(stock=5)
    order = lifecycle.create_order(checkout((p, 1), payment_method=PaymentMethod.CASH_ON_DELIVERY))
    lifecycle.update_status(order.pk, "delivered", "admin-1")
    r = client.post(CREATE_URL, data={"order_id": str(order.pk)}, content_type="application/json")
    assert r.status_code == 409
    assert r.json()["detail"] == "ALREADY_PAID"
