"""Reconcile gateway payments with orders.

A payment reaches us along two paths that may race: the customer's browser
posts the checkout signature to ``verify``, and the gateway posts a signed
webhook. Both end in ``OrderLifecycle.apply_payment_result``, which locks
the order row and is idempotent, so whichever arrives second is a no-op.
"""

import json
import logging

from apps.core import errors
from .domain import SUCCESS_EVENTS, PaymentDetails, PaymentGatewayPort, PaymentOutcome, WebhookEvent

logger = logging.getLogger("payments")

PROCESSED = "processed"
IGNORED = "ignored"


def _payment_entity(payload: dict) -> dict:
    """Return ``payload.payment.entity``; every level must be a JSON object."""
    node = payload
    for key in ("payload", "payment", "entity"):
        node = node.get(key)
        if not isinstance(node, dict):
            raise errors.ValidationError("MALFORMED_PAYLOAD", f"Webhook field {key!r} must be an object")
    return node


class PaymentReconciler:
    def __init__(self, gateway: PaymentGatewayPort, lifecycle):
        self.gateway = gateway
        self.lifecycle = lifecycle

    def create_intent(self, order_id):
        """Return ``(order, intent)`` for the order's total; see ``OrderLifecycle.open_payment_intent``."""
        return self.lifecycle.open_payment_intent(order_id)

    def verify(self, intent_id: str, payment_id: str, signature: str):
        """Confirm a client-side payment and mark the order paid.

        The signature is checked before anything else. Payment details are
        fetched best-effort: a gateway failure there is logged and the
        payment is still recorded.

        Raises:
            InvalidSignature: The signature does not match; nothing changes.
            OrderNotFound: No order carries ``intent_id``.
        """
        if not self.gateway.verify_client_signature(intent_id, payment_id, signature):
            logger.warning("payment signature rejected", extra={"gateway_order_id": intent_id, "payment_id": payment_id})
            raise errors.InvalidSignature(message="Invalid payment signature")

        details = None
        try:
            details = self.gateway.fetch_payment_details(payment_id)
        except errors.GatewayError as e:
            logger.warning("payment details unavailable", extra={"payment_id": payment_id, "code": e.code})

        return self.lifecycle.apply_payment_result(
            intent_id, PaymentOutcome.PAID, payment_id=payment_id, signature=signature, details=details
        )

    def handle_webhook(self, raw_body: bytes, signature_header: str | None) -> str:
        """Process one gateway webhook delivery.

        The signature is verified over ``raw_body`` exactly as received and
        only then is the body parsed.

        Returns:
            ``"processed"`` when an order was updated (or already up to
            date), ``"ignored"`` for unknown events or unknown orders.

        Raises:
            InvalidSignature: Missing or wrong signature.
            ValidationError: ``MALFORMED_PAYLOAD`` when the body is not the
                expected JSON shape.
        """
        if not self.gateway.verify_webhook_signature(raw_body, signature_header):
            logger.warning("webhook signature rejected")
            raise errors.InvalidSignature(message="Invalid webhook signature")

        try:
            payload = json.loads(raw_body)
        except ValueError:
            raise errors.ValidationError("MALFORMED_PAYLOAD", "Webhook body is not valid JSON") from None
        if not isinstance(payload, dict):
            raise errors.ValidationError("MALFORMED_PAYLOAD", "Webhook body must be a JSON object")

        event = payload.get("event")
        if event in SUCCESS_EVENTS:
            outcome = PaymentOutcome.PAID
        elif event == WebhookEvent.PAYMENT_FAILED.value:
            outcome = PaymentOutcome.FAILED
        else:
            logger.info("webhook event ignored", extra={"event": event})
            return IGNORED

        entity = _payment_entity(payload)
        gateway_order_id = entity.get("order_id")
        payment_id = entity.get("id")
        if not gateway_order_id or not payment_id:
            raise errors.ValidationError("MALFORMED_PAYLOAD", "Payment entity lacks order_id or id")

        details = PaymentDetails.from_entity(entity) if outcome == PaymentOutcome.PAID else None
        try:
            self.lifecycle.apply_payment_result(gateway_order_id, outcome, payment_id=payment_id, details=details)
        except errors.OrderNotFound:
            logger.warning(
                "webhook for unknown order ignored",
                extra={"event": event, "gateway_order_id": gateway_order_id},
            )
            return IGNORED

        logger.info("webhook processed", extra={"event": event, "gateway_order_id": gateway_order_id})
        return PROCESSED
