"""HMAC-SHA256 signatures used by the payment gateway.

Two signatures are checked:

- the client signature returned by checkout, computed over
  ``"{intent_id}|{payment_id}"`` with the API key secret;
- the webhook signature, computed over the raw request body exactly as
  received, with the separate webhook secret.

Digests are lowercase hex. Comparison is constant-time.
"""

import hashlib
import hmac


def sign(secret: str, message) -> str:
    if isinstance(message, str):
        message = message.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def client_signature_payload(intent_id: str, payment_id: str) -> str:
    return f"{intent_id}|{payment_id}"


def verify(secret: str | None, message, signature: str | None) -> bool:
    """Return True when ``signature`` is the HMAC of ``message`` under ``secret``.

    A missing secret or signature never verifies.
    """
    if not secret or not signature:
        return False
    expected = sign(secret, message)
    return hmac.compare_digest(expected.encode("utf-8"), signature.strip().encode("utf-8"))


def verify_client_signature(secret: str | None, intent_id: str, payment_id: str, signature: str | None) -> bool:
    return verify(secret, client_signature_payload(intent_id, payment_id), signature)


def verify_webhook_signature(secret: str | None, raw_body: bytes, signature: str | None) -> bool:
    return verify(secret, raw_body, signature)
