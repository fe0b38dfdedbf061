"""HTTP views for coupon validation and listing.

Validation here is advisory: checkout re-validates the code inside the order
transaction, so a quote returned by this endpoint is not a reservation.
"""

from pydantic import ValidationError as DTOValidationError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from .engine import CouponEngine
from .schemas import ActiveCouponDTO, CouponQuoteDTO, ValidateCouponDTO


class ValidateCouponView(APIView):
    def post(self, request):
        try:
            dto = ValidateCouponDTO.model_validate(request.data)
        except DTOValidationError as e:
            return Response({"detail": "VALIDATION_ERROR", "message": str(e)}, status=status.HTTP_400_BAD_REQUEST)

        quote = CouponEngine().validate(dto.code, dto.cart_total)
        body = CouponQuoteDTO(
            code=quote.code,
            discount_type=quote.discount_type,
            discount_value=quote.discount_value,
            discount_amount=quote.discount_amount,
            description=quote.description,
        )
        return Response(body.model_dump(mode="json"), status=status.HTTP_200_OK)


class ActiveCouponsView(APIView):
    def get(self, request):
        coupons = CouponEngine().active_coupons()
        results = [ActiveCouponDTO.model_validate(c).model_dump(mode="json") for c in coupons]
        return Response({"results": results}, status=status.HTTP_200_OK)
