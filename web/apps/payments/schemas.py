"""Pydantic schemas for the payment endpoints."""

from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field


class CreateIntentDTO(BaseModel):
    """Request body for ``POST /api/payments/create-order``.

    The amount is never taken from the client; the intent is created for the
    order's stored total.
    """

    order_id: UUID


class VerifyPaymentDTO(BaseModel):
    gateway_order_id: str = Field(min_length=1, max_length=64)
    payment_id: str = Field(min_length=1, max_length=64)
    signature: str = Field(min_length=1, max_length=128)


class RefundDTO(BaseModel):
    """Request body for ``POST /api/payments/refund``.

    Attributes:
        order_id: Order to refund.
        amount: Optional partial amount in major units; omitted means full.
        reason: Free-form reason kept on the order.
    """

    order_id: UUID
    amount: Decimal | None = Field(default=None, gt=0, max_digits=12, decimal_places=2)
    reason: str | None = Field(default=None, max_length=500)


class IntentOut(BaseModel):
    order_id: UUID
    order_number: str
    gateway_order_id: str
    amount_minor: int
    currency: str
    key_id: str | None = None


class RefundOut(BaseModel):
    refund_id: str
    order_id: UUID
    amount: Decimal
    status: str
