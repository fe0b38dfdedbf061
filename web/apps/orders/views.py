"""HTTP views for the orders app.

Views are kept small: they validate requests with Pydantic DTOs, map them
onto domain commands, delegate to ``OrderLifecycle`` / ``OrderQueryService``
(obtained from ``apps.orders.providers``) and render read DTOs. Domain
errors are not caught here; ``gateway.exceptions.domain_exception_handler``
turns them into ``{"detail": code}`` responses.

Idempotency: ``POST /api/orders/`` honours an ``Idempotency-Key`` header.
The first request stores its response (including business failures such as
insufficient stock); a retry with the same key and payload replays it with
``Idempotent-Replay: true``; the same key with a different payload is a
409 ``IDEMPOTENCY_CONFLICT``.
"""

import logging

from django.db import transaction
from pydantic import ValidationError as DTOValidationError
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from apps.core.errors import DomainError
from gateway.auth import actor_id
from .idempotency import finalize, get_or_create_idempotent
from .providers import get_order_lifecycle, get_order_queries
from .schemas import CreateOrderDTO, OrderOut, OrderSummaryOut

logger = logging.getLogger("orders")


def invalid_request(e: DTOValidationError) -> Response:
    return Response({"detail": "VALIDATION_ERROR", "message": str(e)}, status=status.HTTP_400_BAD_REQUEST)


def page_body(page, dto_cls) -> dict:
    return {
        "count": page.count,
        "page": page.page,
        "page_size": page.page_size,
        "total_pages": page.total_pages,
        "results": [dto_cls.model_validate(o).model_dump(mode="json") for o in page.results],
    }


def order_body(order) -> dict:
    return OrderOut.model_validate(order).model_dump(mode="json")


class OrdersCollectionView(APIView):
    """``POST`` places an order (guests allowed); ``GET`` lists the caller's orders."""

    throttle_classes = [ScopedRateThrottle]

    def get_throttles(self):
        # throttles are evaluated in initial(), before the handler runs
        self.throttle_scope = "orders_list" if self.request.method == "GET" else "orders_create"
        return [throttle() for throttle in self.throttle_classes]

    def get_permissions(self):
        if self.request.method == "GET":
            return [IsAuthenticated()]
        return [AllowAny()]

    def get(self, request):
        params = request.query_params
        page = get_order_queries().customer_history(
            actor_id(request),
            status=params.get("status"),
            page=params.get("page", 1),
            page_size=params.get("page_size", 20),
        )
        return Response(page_body(page, OrderSummaryOut), status=status.HTTP_200_OK)

    def post(self, request):
        """Place an order.

        Returns:
            Response: One of the following.
            - 201 with the created order.
            - A replay of the stored response for a repeated
              ``Idempotency-Key`` with the same payload.
            - 409 ``IDEMPOTENCY_CONFLICT`` for the same key with another payload.
            - 400 for DTO validation, stock, coupon and address failures.
            - 404 ``PRODUCT_NOT_FOUND`` for unknown products.
        """
        idem_key = request.headers.get("Idempotency-Key")

        try:
            dto = CreateOrderDTO.model_validate(request.data)
        except DTOValidationError as e:
            return invalid_request(e)

        lifecycle = get_order_lifecycle()
        if not idem_key:
            order = lifecycle.create_order(dto.to_command(), actor_id=actor_id(request))
            return Response(order_body(order), status=status.HTTP_201_CREATED)

        with transaction.atomic():
            existing, rec = get_or_create_idempotent(idem_key, request.data)
            if existing:
                resp = Response(rec.response_body, status=rec.response_status or status.HTTP_200_OK)
                resp["Idempotent-Replay"] = "true"
                return resp

            try:
                order = lifecycle.create_order(dto.to_command(), actor_id=actor_id(request))
            except DomainError as e:
                if e.status_code >= 500:
                    raise
                body = {"detail": e.code}
                if e.message:
                    body["message"] = e.message
                finalize(rec, e.status_code, body)
                return Response(body, status=e.status_code)

            body = order_body(order)
            finalize(rec, status.HTTP_201_CREATED, body, order_id=order.pk)
        return Response(body, status=status.HTTP_201_CREATED)


class RetrieveOrderView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_detail"
    permission_classes = [IsAuthenticated]

    def get(self, request, oid):
        order = get_order_queries().get_by_id(oid, customer_id=actor_id(request))
        return Response(order_body(order), status=status.HTTP_200_OK)


class RetrieveOrderByNumberView(APIView):
    """Order lookup by its public number; guest orders are visible to anyone holding the number."""

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_detail"

    def get(self, request, order_number: str):
        order = get_order_queries().get_by_number(order_number, customer_id=actor_id(request))
        return Response(order_body(order), status=status.HTTP_200_OK)


class CancelOrderView(APIView):
    def patch(self, request, order_number: str):
        order = get_order_lifecycle().cancel(order_number, customer_id=actor_id(request))
        order = get_order_queries().get_by_id(order.pk)
        return Response(order_body(order), status=status.HTTP_200_OK)
