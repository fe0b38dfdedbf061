"""Coupon validation, discount computation and guarded redemption.

``validate`` is read-only: it answers whether a code can be applied to an
order amount right now and how large the discount is. ``redeem`` is the only
writer of ``used_count`` and is called by checkout inside the order's
transaction, so a rolled-back checkout also rolls back the redemption.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from django.db.models import F, Q
from django.utils import timezone

from apps.core import errors
from .models import Coupon, DiscountType

logger = logging.getLogger("coupons")

CENT = Decimal("0.01")


@dataclass(frozen=True)
class CouponQuote:
    """A validated coupon and the discount it grants for one order amount."""

    coupon_id: int
    code: str
    discount_type: str
    discount_value: Decimal
    discount_amount: Decimal
    description: str = ""


def compute_discount(coupon: Coupon, order_amount: Decimal) -> Decimal:
    """Discount granted by ``coupon`` on ``order_amount``.

    Percentage discounts are clamped to ``max_discount_amount`` when set.
    Fixed discounts are returned as-is, even when they exceed the order
    amount.
    """
    value = Decimal(coupon.discount_value)
    if coupon.discount_type == DiscountType.PERCENTAGE:
        discount = order_amount * value / Decimal(100)
        if coupon.max_discount_amount is not None and discount > coupon.max_discount_amount:
            discount = Decimal(coupon.max_discount_amount)
    else:
        discount = value
    return discount.quantize(CENT, rounding=ROUND_HALF_UP)


class CouponEngine:
    """Validate codes and redeem them without over-redemption."""

    def validate(self, code: str, order_amount, now: datetime | None = None) -> CouponQuote:
        """Check ``code`` against ``order_amount`` and compute the discount.

        Rejection reasons are checked in this order and the first failing one
        is raised as ``CouponRejected``: ``COUPON_NOT_FOUND``,
        ``COUPON_INACTIVE``, ``COUPON_NOT_YET_VALID``, ``COUPON_EXPIRED``,
        ``COUPON_USAGE_LIMIT_REACHED``, ``COUPON_MIN_PURCHASE_NOT_MET``.

        Args:
            code: Coupon code in any case.
            order_amount: Amount the discount applies to (the order subtotal).
            now: Evaluation instant; defaults to the current time.

        Returns:
            CouponQuote with the rounded discount amount.
        """
        now = now or timezone.now()
        amount = Decimal(str(order_amount))
        normalized = (code or "").strip().upper()

        coupon = Coupon.objects.filter(code=normalized).first() if normalized else None
        if coupon is None:
            raise errors.CouponRejected("COUPON_NOT_FOUND", "Invalid coupon code")
        if not coupon.is_active:
            raise errors.CouponRejected("COUPON_INACTIVE", "This coupon is not active")
        if now < coupon.valid_from:
            raise errors.CouponRejected("COUPON_NOT_YET_VALID", "This coupon is not yet active")
        if coupon.valid_until is not None and now > coupon.valid_until:
            raise errors.CouponRejected("COUPON_EXPIRED", "This coupon has expired")
        if coupon.usage_limit is not None and coupon.used_count >= coupon.usage_limit:
            raise errors.CouponRejected("COUPON_USAGE_LIMIT_REACHED", "This coupon has reached its usage limit")
        if coupon.min_purchase_amount is not None and amount < coupon.min_purchase_amount:
            raise errors.CouponRejected(
                "COUPON_MIN_PURCHASE_NOT_MET",
                f"Minimum order value of {coupon.min_purchase_amount} required to use this coupon",
            )

        return CouponQuote(
            coupon_id=coupon.pk,
            code=coupon.code,
            discount_type=coupon.discount_type,
            discount_value=Decimal(coupon.discount_value),
            discount_amount=compute_discount(coupon, amount),
            description=coupon.description,
        )

    def redeem(self, coupon_id: int) -> None:
        """Increment ``used_count`` unless that would pass ``usage_limit``.

        The limit check and the increment are one ``UPDATE`` statement, so
        concurrent checkouts at the boundary cannot both succeed.

        Raises:
            ConflictError: ``COUPON_USAGE_RACE_LOST`` when the limit was
                reached between validation and redemption.
        """
        updated = (
            Coupon.objects.filter(pk=coupon_id)
            .filter(Q(usage_limit__isnull=True) | Q(used_count__lt=F("usage_limit")))
            .update(used_count=F("used_count") + 1)
        )
        if updated == 0:
            logger.warning("coupon redemption lost race", extra={"coupon_id": coupon_id})
            raise errors.ConflictError("COUPON_USAGE_RACE_LOST", "This coupon has reached its usage limit")
        logger.info("coupon redeemed", extra={"coupon_id": coupon_id})

    def active_coupons(self, now: datetime | None = None):
        """Coupons a customer could apply right now, newest first."""
        now = now or timezone.now()
        return (
            Coupon.objects.filter(is_active=True, valid_from__lte=now)
            .filter(Q(valid_until__isnull=True) | Q(valid_until__gte=now))
            .filter(Q(usage_limit__isnull=True) | Q(used_count__lt=F("usage_limit")))
            .order_by("-created_at")
        )
