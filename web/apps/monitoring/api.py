import logging

from django.conf import settings
from django.db import DatabaseError, connection
from django.http import JsonResponse

from apps.payments.http_adapters import gateway_circuit_state

logger = logging.getLogger("gateway")


def health_view(_request):
    db_ok = False
    try:
        with connection.cursor() as cur:
            cur.execute("SELECT 1;")
        db_ok = True
    except DatabaseError:
        logger.warning("health check: database unreachable", exc_info=True)

    gateway = {"mode": "http" if getattr(settings, "USE_HTTP_ADAPTERS", False) else "stub"}
    gateway["circuit"] = gateway_circuit_state()

    # an open circuit degrades payments but the service can still take COD orders
    ok = db_ok
    code = 200 if ok else 503
    return JsonResponse(
        {"ok": ok, "components": {"db": {"ok": db_ok}, "payment_gateway": gateway}},
        status=code,
    )
