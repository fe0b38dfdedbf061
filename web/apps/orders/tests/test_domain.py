"""Unit tests for the order domain: status vocabulary, transitions, identifiers.

The last tests drive ``OrderLifecycle`` with stub ports to check how it
sequences its collaborators.
"""

from decimal import Decimal

import pytest

from apps.core import errors
from apps.orders.domain import (
    TRANSITIONS,
    LinePlan,
    OrderStatus,
    is_allowed_transition,
    parse_status,
)
from apps.orders.lifecycle import OrderLifecycle
from apps.orders.numbers import new_order_number, new_tracking_number


def test_parse_status_normalizes():
    assert parse_status(" Shipped ") == OrderStatus.SHIPPED
    assert parse_status(OrderStatus.PACKED) == OrderStatus.PACKED
    with pytest.raises(ValueError) as e:
        parse_status("lost")
    assert str(e.value) == "INVALID_STATUS"


def test_terminal_states_have_no_exits():
    assert TRANSITIONS[OrderStatus.CANCELLED] == frozenset()
    assert TRANSITIONS[OrderStatus.REFUNDED] == frozenset()


def test_strict_table_is_forward_only():
    assert is_allowed_transition(OrderStatus.PENDING, OrderStatus.SHIPPED)
    assert not is_allowed_transition(OrderStatus.SHIPPED, OrderStatus.PROCESSING)
    assert is_allowed_transition(OrderStatus.SHIPPED, OrderStatus.SHIPPED)


def test_cancellation_only_before_packing():
    assert is_allowed_transition(OrderStatus.PROCESSING, OrderStatus.CANCELLED)
    assert not is_allowed_transition(OrderStatus.PACKED, OrderStatus.CANCELLED)
    assert is_allowed_transition(OrderStatus.DELIVERED, OrderStatus.REFUNDED)


def test_line_total_is_rounded_to_cents():
    plan = LinePlan(product_id=1, name="x", slug="x", price=Decimal("33.333"), quantity=3)
    assert plan.line_total == Decimal("100.00")


def test_identifiers_are_unique_and_prefixed():
    numbers = {new_order_number() for _ in range(200)}
    assert len(numbers) == 200
    assert all(n.startswith("ORD-") for n in numbers)
    assert new_tracking_number().startswith("TRK-")


class StubLedgerFail:
    """Ledger stub that refuses every reservation."""

    def __init__(self):
        self.released = []

    def reserve(self, product_id, quantity):
        raise errors.InsufficientStock(product_id=product_id, requested=quantity)

    def release(self, product_id, quantity):
        self.released.append((product_id, quantity))
        return True


class StubCoupons:
    """Coupon stub recording redemptions."""

    def __init__(self):
        self.redeemed = []

    def validate(self, code, order_amount, now=None):
        raise AssertionError("no coupon in this test")

    def redeem(self, coupon_id):
        self.redeemed.append(coupon_id)


class StubHistory:
    def __init__(self):
        self.entries = []

    def record(self, entry):
        self.entries.append(entry)


@pytest.mark.django_db
def test_failed_reservation_skips_redeem_and_history(gateway, checkout, make_product):
    history = StubHistory()
    coupons = StubCoupons()
    lifecycle = OrderLifecycle(StubLedgerFail(), coupons, gateway, history)
    p = make_product(stock=5)

    with pytest.raises(errors.InsufficientStock):
        lifecycle.create_order(checkout((p, 1)))

    assert coupons.redeemed == []
    assert history.entries == []


def test_empty_order_is_rejected_before_touching_ports(checkout):
    lifecycle = OrderLifecycle(StubLedgerFail(), StubCoupons(), None, StubHistory())
    with pytest.raises(errors.ValidationError) as e:
        lifecycle.create_order(checkout())
    assert e.value.code == "EMPTY_ORDER"
