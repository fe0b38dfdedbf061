"""Payment gateway port, value objects and money conversions.

The order lifecycle only talks to the payment provider through
``PaymentGatewayPort``. Two implementations exist: ``HttpGatewayClient``
(Razorpay-compatible REST API over httpx) and ``GatewayStub`` (in-process,
for tests and local development). ``apps.payments.providers`` picks one.

Gateway amounts are integers in minor units (paise for INR). Every
conversion between order amounts and gateway amounts goes through
``to_minor_units`` / ``from_minor_units`` so intent creation, refunds and
reconciliation can never disagree by a rounding step.
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Protocol

MINOR_UNITS_PER_MAJOR = 100


def to_minor_units(amount) -> int:
    """Convert a major-unit amount (e.g. rupees) to gateway minor units.

    Multiplies by 100 and rounds half-up, so ``Decimal("10.005")`` becomes
    ``1001``.
    """
    value = Decimal(str(amount)) * MINOR_UNITS_PER_MAJOR
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount_minor: int) -> Decimal:
    return (Decimal(int(amount_minor)) / MINOR_UNITS_PER_MAJOR).quantize(Decimal("0.01"))


class PaymentOutcome(str, Enum):
    PAID = "paid"
    FAILED = "failed"


class WebhookEvent(str, Enum):
    """Gateway events the reconciler acts on; anything else is ignored."""

    PAYMENT_AUTHORIZED = "payment.authorized"
    PAYMENT_CAPTURED = "payment.captured"
    PAYMENT_FAILED = "payment.failed"


SUCCESS_EVENTS = frozenset({WebhookEvent.PAYMENT_AUTHORIZED.value, WebhookEvent.PAYMENT_CAPTURED.value})


@dataclass(frozen=True)
class PaymentIntent:
    """Gateway-side order the customer pays against.

    Attributes:
        id: Gateway order reference (``order_...`` on Razorpay).
        amount_minor: Amount in minor units.
        currency: ISO currency code.
        receipt: Our order number, echoed by the gateway.
    """

    id: str
    amount_minor: int
    currency: str
    receipt: str | None = None


@dataclass(frozen=True)
class PaymentDetails:
    """Best-effort enrichment of a captured payment (masked account info)."""

    payment_id: str
    method: str | None = None
    email: str | None = None
    contact: str | None = None
    card_id: str | None = None
    bank: str | None = None
    wallet: str | None = None
    vpa: str | None = None

    @classmethod
    def from_entity(cls, entity: dict) -> "PaymentDetails":
        return cls(
            payment_id=entity.get("id", ""),
            method=entity.get("method"),
            email=entity.get("email"),
            contact=entity.get("contact"),
            card_id=entity.get("card_id"),
            bank=entity.get("bank"),
            wallet=entity.get("wallet"),
            vpa=entity.get("vpa"),
        )

    def as_dict(self) -> dict:
        return {
            "method": self.method,
            "email": self.email,
            "contact": self.contact,
            "card_id": self.card_id,
            "bank": self.bank,
            "wallet": self.wallet,
            "vpa": self.vpa,
        }


@dataclass(frozen=True)
class RefundResult:
    """Refund accepted by the gateway.

    ``amount_minor`` is None when the gateway did not echo an amount; the
    caller then books the amount it asked for.
    """

    id: str
    payment_id: str
    amount_minor: int | None
    status: str = "processed"
    raw: dict = field(default_factory=dict, compare=False)


class PaymentGatewayPort(Protocol):
    """Operations the order lifecycle needs from a payment provider."""

    def create_intent(self, amount_minor: int, currency: str, receipt: str, notes: dict | None = None) -> PaymentIntent:
        """Create a gateway order for ``amount_minor``.

        Raises:
            GatewayError: The provider rejected the call or was unreachable.
        """
        raise NotImplementedError()

    def verify_client_signature(self, intent_id: str, payment_id: str, signature: str) -> bool:
        raise NotImplementedError()

    def verify_webhook_signature(self, raw_body: bytes, signature_header: str | None) -> bool:
        raise NotImplementedError()

    def fetch_payment_details(self, payment_id: str) -> PaymentDetails:
        raise NotImplementedError()

    def refund(self, payment_id: str, amount_minor: int | None = None, notes: dict | None = None) -> RefundResult:
        """Refund a captured payment; ``amount_minor=None`` refunds it fully."""
        raise NotImplementedError()
