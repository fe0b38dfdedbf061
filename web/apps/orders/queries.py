"""Read side for orders: lookups, customer history and the admin listing."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from django.core.paginator import Paginator
from django.db.models import Count, Q, Sum

from apps.core import errors
from .domain import OrderStatus, PaymentStatus, parse_status
from .models import Order

MAX_PAGE_SIZE = 100


@dataclass
class AdminOrderFilter:
    status: Optional[str] = None
    payment_status: Optional[str] = None
    search: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


@dataclass
class Page:
    results: list
    count: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return (self.count + self.page_size - 1) // self.page_size if self.page_size else 0


def _page_params(page, page_size) -> tuple[int, int]:
    try:
        page = max(int(page or 1), 1)
        page_size = int(page_size or 20)
    except (TypeError, ValueError):
        raise errors.ValidationError("INVALID_PAGINATION", "page and page_size must be integers") from None
    return page, min(max(page_size, 1), MAX_PAGE_SIZE)


def _paginate(qs, page, page_size) -> Page:
    page, page_size = _page_params(page, page_size)
    paginator = Paginator(qs, page_size)
    page_obj = paginator.get_page(page)
    return Page(results=list(page_obj.object_list), count=paginator.count, page=page_obj.number, page_size=page_size)


class OrderQueryService:
    """Read-only queries; every result carries its items and history prefetched."""

    def _base(self):
        return Order.objects.prefetch_related("items", "history")

    def _status(self, value) -> str:
        try:
            return parse_status(value).value
        except ValueError:
            raise errors.ValidationError("INVALID_STATUS", f"Invalid order status: {value!r}") from None

    def get_by_id(self, order_id, customer_id: str | None = None) -> Order:
        """Fetch one order.

        When ``customer_id`` is given, orders owned by someone else are
        reported as not found.
        """
        qs = self._base().filter(pk=order_id)
        if customer_id is not None:
            qs = qs.filter(customer_id=customer_id)
        order = qs.first()
        if order is None:
            raise errors.OrderNotFound(message=f"Order {order_id} not found")
        return order

    def get_by_number(self, order_number: str, customer_id: str | None = None) -> Order:
        """Fetch by public order number.

        Guest orders are visible to anyone holding the number; orders placed
        by a signed-in customer only to that customer.
        """
        owner = Q(customer_id__isnull=True)
        if customer_id is not None:
            owner |= Q(customer_id=customer_id)
        qs = self._base().filter(owner, order_number=order_number)
        order = qs.first()
        if order is None:
            raise errors.OrderNotFound(message=f"Order {order_number} not found")
        return order

    def customer_history(self, customer_id: str, status: str | None = None, page=1, page_size=20) -> Page:
        qs = self._base().filter(customer_id=customer_id).order_by("-created_at")
        if status:
            qs = qs.filter(status=self._status(status))
        return _paginate(qs, page, page_size)

    def admin_list(self, filters: AdminOrderFilter | None = None, page=1, page_size=20) -> Page:
        """Filtered, newest-first listing of all orders.

        ``search`` matches order number, customer email or phone
        (case-insensitive substring). Date bounds apply to ``created_at``
        and are inclusive.
        """
        filters = filters or AdminOrderFilter()
        qs = self._base().order_by("-created_at")
        if filters.status:
            qs = qs.filter(status=self._status(filters.status))
        if filters.payment_status:
            try:
                qs = qs.filter(payment_status=PaymentStatus(filters.payment_status).value)
            except ValueError:
                raise errors.ValidationError(
                    "INVALID_PAYMENT_STATUS", f"Invalid payment status: {filters.payment_status!r}"
                ) from None
        if filters.search:
            term = filters.search.strip()
            qs = qs.filter(
                Q(order_number__icontains=term) | Q(customer_email__icontains=term) | Q(customer_phone__icontains=term)
            )
        if filters.start_date:
            qs = qs.filter(created_at__gte=filters.start_date)
        if filters.end_date:
            qs = qs.filter(created_at__lte=filters.end_date)
        return _paginate(qs, page, page_size)

    def status_counts(self) -> dict:
        """Dashboard figures: counts per status plus paid revenue."""
        by_status = {s.value: 0 for s in OrderStatus}
        for row in Order.objects.values("status").annotate(n=Count("id")):
            by_status[row["status"]] = row["n"]
        totals = Order.objects.aggregate(
            total=Count("id"),
            revenue=Sum("total_amount", filter=Q(payment_status=PaymentStatus.PAID.value)),
        )
        return {
            "total_orders": totals["total"],
            "by_status": by_status,
            "paid_revenue": totals["revenue"] or Decimal("0.00"),
        }
