"""DRF exception handler mapping domain errors to HTTP responses."""

import logging

from rest_framework.response import Response
from rest_framework.views import exception_handler

from apps.core.errors import DomainError

logger = logging.getLogger("gateway")


def domain_exception_handler(exc, context):
    """Render ``DomainError`` as ``{"detail": code, "message": ...}``.

    Anything else falls through to DRF's default handler (and, for
    non-API exceptions, to Django's 500 handling).
    """
    if isinstance(exc, DomainError):
        view = context.get("view")
        if exc.status_code >= 500:
            logger.error(
                "domain error", extra={"code": exc.code, "view": type(view).__name__}, exc_info=exc
            )
        else:
            logger.info("request rejected", extra={"code": exc.code, "view": type(view).__name__})
        body = {"detail": exc.code}
        if exc.message:
            body["message"] = exc.message
        return Response(body, status=exc.status_code)
    return exception_handler(exc, context)
