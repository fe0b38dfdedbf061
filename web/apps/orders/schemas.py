"""Pydantic schemas for the orders API.

Request DTOs validate and normalize incoming payloads before they are
mapped onto domain commands; read DTOs render ``Order`` rows (with
``from_attributes``) for the customer and admin endpoints.
"""

import re
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .domain import CheckoutCommand, CheckoutLine, OrderStatus, PaymentMethod

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MONEY = dict(max_digits=12, decimal_places=2)


class OrderItemIn(BaseModel):
    product_id: int = Field(gt=0)
    quantity: int = Field(gt=0, le=1000)


class AddressIn(BaseModel):
    """Shipping or billing address; every field is required and non-blank."""

    model_config = ConfigDict(str_strip_whitespace=True)

    full_name: str = Field(min_length=1, max_length=255)
    address: str = Field(min_length=1, max_length=500)
    city: str = Field(min_length=1, max_length=100)
    state: str = Field(min_length=1, max_length=100)
    pincode: str = Field(min_length=3, max_length=12)
    phone: str = Field(min_length=6, max_length=32)
    email: str = Field(min_length=3, max_length=254)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        if not EMAIL_RE.match(v):
            raise ValueError("Invalid email address")
        return v.lower()


class CreateOrderDTO(BaseModel):
    """Checkout request body.

    Attributes:
        items: Requested lines (at least one).
        shipping_address: Delivery address; also the billing address unless
            ``billing_address`` is given.
        payment_method: ``cash_on_delivery`` or ``gateway``.
        coupon_code: Optional coupon; normalized to uppercase.
        subtotal: Optional client-side subtotal, checked against the server's.
        shipping_amount: Shipping charge in major units.
        tax_amount: Tax in major units.
        notes: Customer notes.
    """

    items: list[OrderItemIn] = Field(min_length=1)
    shipping_address: AddressIn
    billing_address: Optional[AddressIn] = None
    payment_method: PaymentMethod
    coupon_code: Optional[str] = Field(default=None, max_length=50)
    subtotal: Optional[Decimal] = Field(default=None, ge=0, **MONEY)
    shipping_amount: Decimal = Field(default=Decimal("0"), ge=0, **MONEY)
    tax_amount: Decimal = Field(default=Decimal("0"), ge=0, **MONEY)
    notes: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("coupon_code")
    @classmethod
    def normalize_coupon(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v2 = v.strip().upper()
        return v2 or None

    def to_command(self) -> CheckoutCommand:
        return CheckoutCommand(
            items=[CheckoutLine(product_id=i.product_id, quantity=i.quantity) for i in self.items],
            shipping_address=self.shipping_address.model_dump(),
            billing_address=self.billing_address.model_dump() if self.billing_address else None,
            payment_method=self.payment_method,
            coupon_code=self.coupon_code,
            declared_subtotal=self.subtotal,
            shipping_amount=self.shipping_amount,
            tax_amount=self.tax_amount,
            notes=self.notes,
        )


class UpdateStatusDTO(BaseModel):
    status: str = Field(min_length=1, max_length=32)
    comment: Optional[str] = Field(default=None, max_length=1000)


class UpdateTrackingDTO(BaseModel):
    tracking_number: str = Field(min_length=1, max_length=64)
    shipping_method: Optional[str] = Field(default=None, max_length=64)


class AddNotesDTO(BaseModel):
    notes: str = Field(min_length=1, max_length=5000)


class AdminListQuery(BaseModel):
    status: Optional[OrderStatus] = None
    payment_status: Optional[str] = None
    search: Optional[str] = Field(default=None, max_length=100)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)


# ---- Read models ----
def _rows(v):
    return list(v.all()) if hasattr(v, "all") else v


class OrderItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: Optional[int] = None
    name: str
    slug: str
    price: Decimal
    quantity: int
    line_total: Decimal


class HistoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: str
    comment: Optional[str] = None
    created_by: Optional[str] = None
    notify_customer: bool
    created_at: datetime


class OrderSummaryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_number: str
    status: str
    payment_status: str
    payment_method: str
    total_amount: Decimal
    created_at: datetime


class OrderOut(OrderSummaryOut):
    """Customer view of an order."""

    customer_email: str
    customer_phone: str
    shipping_address: dict
    billing_address: dict
    notes: Optional[str] = None
    subtotal: Decimal
    shipping_amount: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    coupon_code: Optional[str] = None
    gateway_order_id: Optional[str] = None
    tracking_number: Optional[str] = None
    shipping_method: Optional[str] = None
    refund_amount: Optional[Decimal] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    items: list[OrderItemOut]
    history: list[HistoryOut]

    @field_validator("items", "history", mode="before")
    @classmethod
    def load_related(cls, v):
        return _rows(v)


class AdminOrderOut(OrderOut):
    """Admin view: adds gateway references and internal bookkeeping."""

    customer_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    payment_details: Optional[dict] = None
    admin_notes: Optional[str] = None
    refund_id: Optional[str] = None
    refund_reason: Optional[str] = None
    stock_released: bool
    updated_at: datetime
