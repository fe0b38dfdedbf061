"""HTTP views for payment intents, verification, webhooks and refunds.

Domain errors propagate to ``gateway.exceptions.domain_exception_handler``.
The webhook view is the exception: it reads ``request.body`` before
anything else (the signature covers the exact bytes received) and answers
500 on unexpected failures so the gateway redelivers.
"""

import logging

from django.conf import settings
from pydantic import ValidationError as DTOValidationError
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from apps.core import errors
from apps.payments.domain import from_minor_units
from gateway.auth import IsAdminActor, actor_id
from .providers import get_payment_reconciler
from .schemas import CreateIntentDTO, IntentOut, RefundDTO, RefundOut, VerifyPaymentDTO

logger = logging.getLogger("payments")


def _invalid(e: DTOValidationError) -> Response:
    return Response({"detail": "VALIDATION_ERROR", "message": str(e)}, status=status.HTTP_400_BAD_REQUEST)


class CreatePaymentIntentView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "payments"

    def post(self, request):
        try:
            dto = CreateIntentDTO.model_validate(request.data)
        except DTOValidationError as e:
            return _invalid(e)

        order, intent = get_payment_reconciler().create_intent(dto.order_id)
        body = IntentOut(
            order_id=order.pk,
            order_number=order.order_number,
            gateway_order_id=intent.id,
            amount_minor=intent.amount_minor,
            currency=intent.currency,
            key_id=getattr(settings, "PAYMENT_GATEWAY_KEY_ID", None),
        )
        return Response(body.model_dump(mode="json"), status=status.HTTP_200_OK)


class VerifyPaymentView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "payments"

    def post(self, request):
        try:
            dto = VerifyPaymentDTO.model_validate(request.data)
        except DTOValidationError as e:
            return _invalid(e)

        order = get_payment_reconciler().verify(dto.gateway_order_id, dto.payment_id, dto.signature)
        return Response(
            {
                "order_id": str(order.pk),
                "order_number": order.order_number,
                "payment_status": order.payment_status,
            },
            status=status.HTTP_200_OK,
        )


class PaymentWebhookView(APIView):
    """Gateway callback. Unauthenticated; trust comes from the HMAC signature."""

    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request):
        raw_body = request.body
        signature = request.headers.get(settings.PAYMENT_GATEWAY_SIGNATURE_HEADER)
        try:
            outcome = get_payment_reconciler().handle_webhook(raw_body, signature)
        except errors.ValidationError as e:
            # covers InvalidSignature; permanent, the gateway must not retry
            return Response({"detail": e.code}, status=status.HTTP_400_BAD_REQUEST)
        except Exception:
            logger.exception("webhook processing failed")
            return Response({"detail": "WEBHOOK_PROCESSING_FAILED"}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
        return Response({"status": outcome}, status=status.HTTP_200_OK)


class RefundPaymentView(APIView):
    permission_classes = [IsAdminActor]

    def post(self, request):
        try:
            dto = RefundDTO.model_validate(request.data)
        except DTOValidationError as e:
            return _invalid(e)

        lifecycle = get_payment_reconciler().lifecycle
        result = lifecycle.refund(dto.order_id, amount=dto.amount, reason=dto.reason, actor_id=actor_id(request))
        body = RefundOut(
            refund_id=result.id,
            order_id=dto.order_id,
            amount=from_minor_units(result.amount_minor),
            status=result.status,
        )
        return Response(body.model_dump(mode="json"), status=status.HTTP_200_OK)
