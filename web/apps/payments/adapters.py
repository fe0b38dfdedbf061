"""In-process stub implementation of ``PaymentGatewayPort``.

``GatewayStub`` makes no network calls. It hands out generated gateway ids,
verifies signatures with the real HMAC rules and the configured secrets,
and records refunds, so tests and local development exercise the same
reconciliation code paths as production.
"""

import uuid

from django.conf import settings

from apps.core import errors
from . import signatures
from .domain import PaymentDetails, PaymentGatewayPort, PaymentIntent, RefundResult


def _gateway_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:14]}"


class GatewayStub(PaymentGatewayPort):
    """Deterministic gateway stub.

    Intents with a non-positive amount are rejected with ``GatewayError``,
    mirroring the provider's own validation.
    """

    def __init__(self, key_secret: str | None = None, webhook_secret: str | None = None):
        self.key_secret = key_secret or settings.PAYMENT_GATEWAY_KEY_SECRET
        self.webhook_secret = webhook_secret or settings.PAYMENT_GATEWAY_WEBHOOK_SECRET
        self.intents: dict[str, PaymentIntent] = {}
        self.refunds: list[RefundResult] = []

    def create_intent(self, amount_minor: int, currency: str, receipt: str, notes: dict | None = None) -> PaymentIntent:
        if amount_minor <= 0:
            raise errors.GatewayError("GATEWAY_REJECTED", "Amount must be positive")
        intent = PaymentIntent(id=_gateway_id("order"), amount_minor=amount_minor, currency=currency, receipt=receipt)
        self.intents[intent.id] = intent
        return intent

    def verify_client_signature(self, intent_id: str, payment_id: str, signature: str) -> bool:
        return signatures.verify_client_signature(self.key_secret, intent_id, payment_id, signature)

    def verify_webhook_signature(self, raw_body: bytes, signature_header: str | None) -> bool:
        return signatures.verify_webhook_signature(self.webhook_secret, raw_body, signature_header)

    def fetch_payment_details(self, payment_id: str) -> PaymentDetails:
        return PaymentDetails(payment_id=payment_id, method="card", card_id=_gateway_id("card"))

    def refund(self, payment_id: str, amount_minor: int | None = None, notes: dict | None = None) -> RefundResult:
        result = RefundResult(id=_gateway_id("rfnd"), payment_id=payment_id, amount_minor=amount_minor)
        self.refunds.append(result)
        return result
