"""Domain vocabulary, commands and ports for the order lifecycle.

This module holds the closed status sets and the transition table, the
checkout command DTOs the lifecycle consumes, and protocol definitions
(ports) for its collaborators: the stock ledger, the coupon engine and the
status-history sink. Concrete implementations live in ``apps.catalog``,
``apps.coupons`` and ``apps.orders.history``; ``apps.orders.providers``
wires them together.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Protocol, List, Optional


# ---- Enums ----
class OrderStatus(str, Enum):
    """Fulfilment status of an order.

    The happy path runs ``PENDING → CONFIRMED → PROCESSING → PACKED →
    SHIPPED → OUT_FOR_DELIVERY → DELIVERED``. ``CANCELLED`` and
    ``REFUNDED`` are terminal.
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    PACKED = "packed"
    SHIPPED = "shipped"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    CASH_ON_DELIVERY = "cash_on_delivery"
    GATEWAY = "gateway"


TERMINAL_STATUSES = frozenset({OrderStatus.CANCELLED, OrderStatus.REFUNDED})

# A customer may only cancel before the parcel is packed.
CUSTOMER_CANCELLABLE = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PROCESSING})

_FORWARD = [
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.PACKED,
    OrderStatus.SHIPPED,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
]


def _build_transitions() -> dict:
    table = {}
    for i, status in enumerate(_FORWARD):
        allowed = set(_FORWARD[i + 1:])
        if status in CUSTOMER_CANCELLABLE:
            allowed.add(OrderStatus.CANCELLED)
        allowed.add(OrderStatus.REFUNDED)
        table[status] = frozenset(allowed)
    table[OrderStatus.DELIVERED] = frozenset({OrderStatus.REFUNDED})
    table[OrderStatus.CANCELLED] = frozenset()
    table[OrderStatus.REFUNDED] = frozenset()
    return table


# Strict forward-only transitions; enforced only with ORDERS_STRICT_TRANSITIONS.
TRANSITIONS = _build_transitions()


def parse_status(value) -> OrderStatus:
    """Map a raw value onto ``OrderStatus`` or raise ``ValueError``."""
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(str(value).strip().lower())
    except ValueError:
        raise ValueError("INVALID_STATUS") from None


def is_allowed_transition(current: OrderStatus, target: OrderStatus) -> bool:
    """True when ``target`` is reachable from ``current`` under the strict table.

    Re-applying the current status is always allowed; its side effects are
    idempotent.
    """
    return current == target or target in TRANSITIONS.get(current, frozenset())


# ---- Commands / DTOs ----
REQUIRED_ADDRESS_FIELDS = ("full_name", "address", "city", "state", "pincode", "phone", "email")


@dataclass(frozen=True)
class CheckoutLine:
    """A requested line item: which product and how many units."""

    product_id: int
    quantity: int


@dataclass
class CheckoutCommand:
    """Everything ``OrderLifecycle.create_order`` needs.

    Attributes:
        items: Requested lines; at least one.
        shipping_address: Mapping with every key in ``REQUIRED_ADDRESS_FIELDS``.
        payment_method: ``PaymentMethod`` chosen at checkout.
        billing_address: Optional; defaults to the shipping address.
        coupon_code: Optional coupon to validate and redeem.
        declared_subtotal: Optional client-side subtotal; must match the
            server-computed one to the cent when provided.
        shipping_amount: Shipping charge in major units.
        tax_amount: Tax in major units.
        notes: Free-form customer notes.
    """

    items: List[CheckoutLine]
    shipping_address: dict
    payment_method: PaymentMethod
    billing_address: Optional[dict] = None
    coupon_code: Optional[str] = None
    declared_subtotal: Optional[Decimal] = None
    shipping_amount: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    notes: Optional[str] = None


@dataclass(frozen=True)
class HistoryEntry:
    order_id: object
    status: str
    comment: Optional[str]
    created_by: Optional[str]
    notify_customer: bool = True
    created_at: Optional[datetime] = None


@dataclass
class LinePlan:
    """A checkout line joined with its product snapshot."""

    product_id: int
    name: str
    slug: str
    price: Decimal
    quantity: int
    line_total: Decimal = field(init=False)

    def __post_init__(self):
        self.line_total = (self.price * self.quantity).quantize(Decimal("0.01"))


# ---- Ports (DIP) ----
class StockLedgerPort(Protocol):
    def reserve(self, product_id: int, quantity: int):
        """Atomically take units out of stock or raise InsufficientStock."""
        raise NotImplementedError()

    def release(self, product_id: int, quantity: int) -> bool:
        raise NotImplementedError()


class CouponEnginePort(Protocol):
    def validate(self, code: str, order_amount, now: datetime | None = None):
        raise NotImplementedError()

    def redeem(self, coupon_id: int) -> None:
        raise NotImplementedError()


class HistorySinkPort(Protocol):
    def record(self, entry: HistoryEntry) -> None:
        """Append an audit entry; must never raise into the caller."""
        raise NotImplementedError()
