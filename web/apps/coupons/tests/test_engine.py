"""Unit tests for CouponEngine validation, discount math and redemption."""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from apps.core import errors
from apps.coupons.engine import CouponEngine, compute_discount
from apps.coupons.models import Coupon

pytestmark = pytest.mark.django_db


def test_percentage_discount_is_capped(make_coupon):
    """20% of 1000 is 200, capped at 100."""
    make_coupon(code="SAVE20", value="20", max_discount_amount=Decimal("100"))
    quote = CouponEngine().validate("save20", Decimal("1000"))
    assert quote.code == "SAVE20"
    assert quote.discount_amount == Decimal("100.00")


def test_percentage_discount_rounds_half_up(make_coupon):
    c = make_coupon(code="ODD", value="12.5")
    assert compute_discount(c, Decimal("10.01")) == Decimal("1.25")


def test_fixed_discount_is_not_capped(make_coupon):
    c = make_coupon(code="FLAT", discount_type="fixed", value="150", max_discount_amount=Decimal("50"))
    assert compute_discount(c, Decimal("100")) == Decimal("150.00")


def test_unknown_code():
    with pytest.raises(errors.CouponRejected) as e:
        CouponEngine().validate("NOPE", Decimal("10"))
    assert e.value.code == "COUPON_NOT_FOUND"


@pytest.mark.parametrize(
    "kwargs, code",
    [
        ({"is_active": False}, "COUPON_INACTIVE"),
        ({"valid_from": timezone.now() + timedelta(days=1)}, "COUPON_NOT_YET_VALID"),
        ({"valid_until": timezone.now() - timedelta(days=1)}, "COUPON_EXPIRED"),
        ({"usage_limit": 2, "used_count": 2}, "COUPON_USAGE_LIMIT_REACHED"),
        ({"min_purchase_amount": Decimal("500")}, "COUPON_MIN_PURCHASE_NOT_MET"),
    ],
)
def test_rejection_reasons(make_coupon, kwargs, code):
    make_coupon(code="X1", **kwargs)
    with pytest.raises(errors.CouponRejected) as e:
        CouponEngine().validate("X1", Decimal("100"))
    assert e.value.code == code


def test_rejection_order_inactive_before_expired(make_coupon):
    make_coupon(code="OLD", is_active=False, valid_until=timezone.now() - timedelta(days=3))
    with pytest.raises(errors.CouponRejected) as e:
        CouponEngine().validate("OLD", Decimal("100"))
    assert e.value.code == "COUPON_INACTIVE"


def test_redeem_stops_at_usage_limit(make_coupon):
    c = make_coupon(code="ONCE", usage_limit=1)
    engine = CouponEngine()
    engine.redeem(c.pk)
    with pytest.raises(errors.ConflictError) as e:
        engine.redeem(c.pk)
    assert e.value.code == "COUPON_USAGE_RACE_LOST"
    c.refresh_from_db()
    assert c.used_count == 1


def test_redeem_unlimited(make_coupon):
    c = make_coupon(code="MANY")
    engine = CouponEngine()
    for _ in range(3):
        engine.redeem(c.pk)
    c.refresh_from_db()
    assert c.used_count == 3


def test_active_coupons_excludes_exhausted_and_expired(make_coupon):
    make_coupon(code="LIVE")
    make_coupon(code="GONE", usage_limit=1, used_count=1)
    make_coupon(code="PAST", valid_until=timezone.now() - timedelta(hours=1))
    make_coupon(code="OFF", is_active=False)
    codes = {c.code for c in CouponEngine().active_coupons()}
    assert codes == {"LIVE"}


def test_code_is_stored_uppercase(make_coupon):
    make_coupon(code="  lower ")
    assert Coupon.objects.filter(code="LOWER").exists()
