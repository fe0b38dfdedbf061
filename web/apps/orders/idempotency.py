"""Idempotency keys for checkout.

A client may send ``Idempotency-Key`` with ``POST /api/orders/``. The first
request with a key stores a record holding the request hash; once the
checkout finishes its response is stored on that record. A retry with the
same key and the same payload replays the stored response instead of
placing a second order. Reusing the key for a different payload is a
conflict.
"""

import hashlib
import json

from django.db import IntegrityError, transaction

from apps.core import errors
from .models import IdempotencyKey


def _hash(payload: dict) -> str:
    """Stable SHA-256 of a JSON payload (sorted keys, compact separators)."""
    body = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


@transaction.atomic
def get_or_create_idempotent(key: str, payload: dict):
    """Get-or-create the record for ``key``.

    The insert runs in a nested savepoint so a duplicate key only rolls back
    that block; the existing row is then loaded with ``SELECT ... FOR
    UPDATE``. Callers that wrap this and the checkout in one transaction
    make a concurrent retry wait until the first request has stored its
    response.

    Returns:
        tuple[bool, IdempotencyKey]: ``(existing, rec)``; ``existing`` is
        False when the record was created by this call.

    Raises:
        ConflictError: ``IDEMPOTENCY_CONFLICT`` when the key was used with a
            different payload.
    """
    h = _hash(payload)
    try:
        with transaction.atomic():
            rec = IdempotencyKey.objects.create(key=key, request_hash=h, response_status=0, response_body={})
            return False, rec
    except IntegrityError:
        rec = IdempotencyKey.objects.select_for_update().get(key=key)
        if rec.request_hash != h:
            raise errors.ConflictError("IDEMPOTENCY_CONFLICT", "Idempotency-Key reused with a different payload")
        return True, rec


def finalize(rec: IdempotencyKey, status_code: int, body: dict, order_id=None):
    """Store the response a replay of ``rec`` should return."""
    rec.response_status = status_code
    rec.response_body = body
    if order_id is not None:
        rec.order_id = order_id
    rec.save(update_fields=["response_status", "response_body", "order"])
