from decimal import Decimal

import pytest
from django.core.cache import cache


@pytest.fixture(autouse=True)
def use_stubs_for_tests(settings):
    settings.USE_HTTP_ADAPTERS = False
    settings.ORDERS_STRICT_TRANSITIONS = False


@pytest.fixture(autouse=True)
def reset_shared_state():
    # throttle counters live in the default cache; the gateway circuit is module-level
    from apps.payments.http_adapters import _gateway_cb

    cache.clear()
    _gateway_cb.on_success()
    yield
    _gateway_cb.on_success()


@pytest.fixture
def gateway(monkeypatch):
    """One GatewayStub shared by every provider call in the test."""
    from apps.payments.adapters import GatewayStub

    stub = GatewayStub()
    monkeypatch.setattr("apps.payments.providers.GatewayStub", lambda: stub, raising=True)
    return stub


@pytest.fixture
def lifecycle(gateway):
    from apps.orders.providers import get_order_lifecycle

    return get_order_lifecycle(gateway=gateway)


@pytest.fixture
def make_product(db):
    from apps.catalog.models import Product

    def _make(name="Widget", price="100.00", stock=10, manage_stock=True, **kw):
        return Product.objects.create(
            name=name,
            slug=name.lower().replace(" ", "-"),
            price=Decimal(price),
            stock_quantity=stock,
            manage_stock=manage_stock,
            **kw,
        )

    return _make


@pytest.fixture
def make_coupon(db):
    from apps.coupons.models import Coupon

    def _make(code="SAVE20", discount_type="percentage", value="20", **kw):
        return Coupon.objects.create(code=code, discount_type=discount_type, discount_value=Decimal(value), **kw)

    return _make


@pytest.fixture
def address():
    return {
        "full_name": "Asha Rao",
        "address": "12 MG Road",
        "city": "Bengaluru",
        "state": "Karnataka",
        "pincode": "560001",
        "phone": "9876543210",
        "email": "asha@example.com",
    }


@pytest.fixture
def checkout(address):
    """Build a ``CheckoutCommand`` from ``(product, quantity)`` pairs."""
    from apps.orders.domain import CheckoutCommand, CheckoutLine, PaymentMethod

    def _build(*lines, payment_method=PaymentMethod.GATEWAY, **kw):
        return CheckoutCommand(
            items=[CheckoutLine(product_id=p.pk, quantity=q) for p, q in lines],
            shipping_address=dict(address),
            payment_method=payment_method,
            **kw,
        )

    return _build
