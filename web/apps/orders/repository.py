"""Repository layer for persisting orders.

Keeps ORM access for the order aggregate in one place: creating an order
together with its item snapshots, and loading order rows under a row lock
for the transitions that must serialize (status changes, payment
application, refunds).
"""

from django.db import IntegrityError, transaction

from apps.core import errors
from .models import Order, OrderItem
from .numbers import new_order_number

ORDER_NUMBER_ATTEMPTS = 5


class OrderRepository:
    def create(self, fields: dict, lines) -> Order:
        """Persist a new order and its items.

        The order number is generated here and retried inside a savepoint
        when it collides with an existing one, so a collision never aborts
        the caller's transaction.

        Args:
            fields: Order column values (everything except ``order_number``).
            lines: Iterable of ``LinePlan`` snapshots.

        Returns:
            The persisted ``Order``.
        """
        order = None
        for attempt in range(ORDER_NUMBER_ATTEMPTS):
            number = new_order_number()
            try:
                with transaction.atomic():
                    order = Order.objects.create(order_number=number, **fields)
                break
            except IntegrityError:
                if not Order.objects.filter(order_number=number).exists():
                    raise
                if attempt == ORDER_NUMBER_ATTEMPTS - 1:
                    raise errors.InternalError("ORDER_NUMBER_EXHAUSTED", "Could not allocate a unique order number")

        OrderItem.objects.bulk_create(
            [
                OrderItem(
                    order=order,
                    product_id=line.product_id,
                    name=line.name,
                    slug=line.slug,
                    price=line.price,
                    quantity=line.quantity,
                    line_total=line.line_total,
                )
                for line in lines
            ]
        )
        return order

    def lock(self, order_id) -> Order:
        """Load an order by id with ``SELECT ... FOR UPDATE``.

        Must be called inside ``transaction.atomic()``.
        """
        order = Order.objects.select_for_update().filter(pk=order_id).first()
        if order is None:
            raise errors.OrderNotFound(message=f"Order {order_id} not found")
        return order

    def lock_by_number(self, order_number: str) -> Order:
        order = Order.objects.select_for_update().filter(order_number=order_number).first()
        if order is None:
            raise errors.OrderNotFound(message=f"Order {order_number} not found")
        return order

    def lock_by_gateway_order(self, gateway_order_id: str) -> Order:
        order = Order.objects.select_for_update().filter(gateway_order_id=gateway_order_id).first()
        if order is None:
            raise errors.OrderNotFound(message=f"No order for gateway order {gateway_order_id}")
        return order

    def get(self, order_id) -> Order:
        order = Order.objects.filter(pk=order_id).first()
        if order is None:
            raise errors.OrderNotFound(message=f"Order {order_id} not found")
        return order

    def items(self, order: Order):
        return list(order.items.all())

    def save(self, order: Order, fields: list[str]) -> Order:
        order.save(update_fields=[*fields, "updated_at"])
        return order
