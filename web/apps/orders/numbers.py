"""Human-facing identifiers: order numbers and tracking numbers.

Both are a UTC time component plus a random suffix drawn from ``secrets``
(8 base32 characters, 40 bits). Order numbers are additionally protected
by a unique constraint with retry in ``OrderRepository.create``.
"""

import secrets
from datetime import datetime, timezone

_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


def _suffix(length: int = 8) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def _stamp(now: datetime | None = None) -> str:
    return (now or datetime.now(timezone.utc)).strftime("%Y%m%d%H%M%S")


def new_order_number(now: datetime | None = None) -> str:
    return f"ORD-{_stamp(now)}-{_suffix()}"


def new_tracking_number(now: datetime | None = None) -> str:
    return f"TRK-{_stamp(now)}-{_suffix(6)}"
