"""Back-office order endpoints; every view requires the ``admin`` role."""

from pydantic import ValidationError as DTOValidationError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from gateway.auth import IsAdminActor, actor_id
from .providers import get_order_lifecycle, get_order_queries
from .queries import AdminOrderFilter
from .schemas import AddNotesDTO, AdminListQuery, AdminOrderOut, UpdateStatusDTO, UpdateTrackingDTO
from .views import invalid_request, page_body


def admin_order_body(order_id) -> dict:
    order = get_order_queries().get_by_id(order_id)
    return AdminOrderOut.model_validate(order).model_dump(mode="json")


class AdminAPIView(APIView):
    permission_classes = [IsAdminActor]


class AdminOrdersView(AdminAPIView):
    def get(self, request):
        try:
            q = AdminListQuery.model_validate(request.query_params.dict())
        except DTOValidationError as e:
            return invalid_request(e)

        filters = AdminOrderFilter(
            status=q.status.value if q.status else None,
            payment_status=q.payment_status,
            search=q.search,
            start_date=q.start_date,
            end_date=q.end_date,
        )
        page = get_order_queries().admin_list(filters, page=q.page, page_size=q.page_size)
        return Response(page_body(page, AdminOrderOut), status=status.HTTP_200_OK)


class AdminOrderStatsView(AdminAPIView):
    def get(self, request):
        stats = get_order_queries().status_counts()
        stats["paid_revenue"] = str(stats["paid_revenue"])
        return Response(stats, status=status.HTTP_200_OK)


class AdminOrderDetailView(AdminAPIView):
    def get(self, request, oid):
        return Response(admin_order_body(oid), status=status.HTTP_200_OK)


class AdminOrderStatusView(AdminAPIView):
    def put(self, request, oid):
        try:
            dto = UpdateStatusDTO.model_validate(request.data)
        except DTOValidationError as e:
            return invalid_request(e)
        get_order_lifecycle().update_status(oid, dto.status, actor_id(request), comment=dto.comment)
        return Response(admin_order_body(oid), status=status.HTTP_200_OK)


class AdminOrderTrackingView(AdminAPIView):
    def put(self, request, oid):
        try:
            dto = UpdateTrackingDTO.model_validate(request.data)
        except DTOValidationError as e:
            return invalid_request(e)
        get_order_lifecycle().update_tracking(oid, dto.tracking_number, dto.shipping_method)
        return Response(admin_order_body(oid), status=status.HTTP_200_OK)


class AdminOrderNotesView(AdminAPIView):
    def post(self, request, oid):
        try:
            dto = AddNotesDTO.model_validate(request.data)
        except DTOValidationError as e:
            return invalid_request(e)
        get_order_lifecycle().add_notes(oid, dto.notes, actor_id(request))
        return Response(admin_order_body(oid), status=status.HTTP_200_OK)
