"""Pydantic schemas for the coupon endpoints."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ValidateCouponDTO(BaseModel):
    """Request body for ``POST /api/coupons/validate``.

    Attributes:
        code: Coupon code; normalized to uppercase.
        cart_total: Order amount the discount would apply to (must be > 0).
    """

    code: str = Field(min_length=1, max_length=50)
    cart_total: Decimal = Field(gt=0, max_digits=12, decimal_places=2)

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        v2 = v.strip().upper()
        if not v2:
            raise ValueError("Coupon code is required")
        return v2


class CouponQuoteDTO(BaseModel):
    valid: bool = True
    code: str
    discount_type: str
    discount_value: Decimal
    discount_amount: Decimal
    description: str = ""


class ActiveCouponDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    description: str
    discount_type: str
    discount_value: Decimal
    min_purchase_amount: Decimal | None = None
    max_discount_amount: Decimal | None = None
    valid_until: datetime | None = None
