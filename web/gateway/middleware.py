"""Edge middleware: request correlation and request-size limits.

``RequestIdMiddleware`` gives every inbound request (checkout calls, admin
status updates, gateway webhooks) an identifier. It reuses the client's
``X-Request-Id`` header when present and generates a UUIDv4 otherwise. The
id is stored on the request, published through ``REQUEST_ID_CTX`` for log
records and outbound gateway calls, and echoed back in ``X-Request-ID``.

``ApiSizeLimitMiddleware`` rejects oversized ``/api/`` bodies before any
view (or webhook signature check) reads them.
"""

import logging
import os
import uuid
import contextvars

from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")
MAX_API_BYTES = int(os.getenv("API_MAX_BYTES", str(1 * 1024 * 1024)))

logger = logging.getLogger("gateway")


class RequestIdMiddleware(MiddlewareMixin):
    """Set, propagate and return a per-request identifier.

    Attributes:
        HEADER (str): Incoming header name as found in ``request.META``.
        RESPONSE_HEADER (str): Header added to every response.
    """

    HEADER = "HTTP_X_REQUEST_ID"
    RESPONSE_HEADER = "X-Request-ID"

    def process_request(self, request):
        rid = request.META.get(self.HEADER) or str(uuid.uuid4())
        request.request_id = rid
        request._request_id_token = REQUEST_ID_CTX.set(rid)

    def process_response(self, request, response):
        """Add the request id header, log the request and reset the context.

        The id attached to the request object wins; the ContextVar value is
        the fallback for error paths where ``process_request`` did not run.
        """
        rid = getattr(request, "request_id", REQUEST_ID_CTX.get())
        response[self.RESPONSE_HEADER] = rid
        logger.info(
            "request handled",
            extra={"path": request.path, "method": request.method, "status": response.status_code},
        )
        token = getattr(request, "_request_id_token", None)
        if token is not None:
            REQUEST_ID_CTX.reset(token)
        return response


class ApiSizeLimitMiddleware(MiddlewareMixin):
    def process_request(self, request):
        if request.path.startswith("/api/"):
            clen = request.META.get("CONTENT_LENGTH")
            if clen and clen.isdigit() and int(clen) > MAX_API_BYTES:
                return JsonResponse({"detail": "PAYLOAD_TOO_LARGE"}, status=413)
