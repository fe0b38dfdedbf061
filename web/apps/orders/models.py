import uuid

from django.db import models

from .domain import OrderStatus, PaymentMethod, PaymentStatus


def _choices(enum_cls):
    return [(member.value, member.value.replace("_", " ").title()) for member in enum_cls]


class Order(models.Model):
    # UUID PK exposed in the API; order_number is the human-facing reference
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order_number = models.CharField(max_length=40, unique=True)

    status = models.CharField(max_length=32, choices=_choices(OrderStatus), default=OrderStatus.PENDING.value)
    payment_status = models.CharField(max_length=16, choices=_choices(PaymentStatus), default=PaymentStatus.PENDING.value)
    payment_method = models.CharField(max_length=24, choices=_choices(PaymentMethod))

    # Customer snapshot
    customer_id = models.CharField(max_length=64, null=True, blank=True, db_index=True)
    customer_email = models.EmailField(max_length=254)
    customer_phone = models.CharField(max_length=32)
    shipping_address = models.JSONField()
    billing_address = models.JSONField()
    notes = models.TextField(null=True, blank=True)

    # Money, frozen at creation
    subtotal = models.DecimalField(max_digits=12, decimal_places=2)
    shipping_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2)
    coupon_code = models.CharField(max_length=50, null=True, blank=True)

    # Payment gateway references
    gateway_order_id = models.CharField(max_length=64, null=True, blank=True, unique=True)
    gateway_payment_id = models.CharField(max_length=64, null=True, blank=True)
    gateway_signature = models.CharField(max_length=128, null=True, blank=True)
    payment_details = models.JSONField(null=True, blank=True)

    # Fulfilment
    tracking_number = models.CharField(max_length=64, null=True, blank=True)
    shipping_method = models.CharField(max_length=64, null=True, blank=True)
    admin_notes = models.TextField(null=True, blank=True)
    stock_released = models.BooleanField(default=False)

    # Refund bookkeeping
    refund_id = models.CharField(max_length=64, null=True, blank=True)
    refund_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    refund_reason = models.TextField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)
    shipped_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(condition=models.Q(subtotal__gte=0), name="order_subtotal_non_negative"),
            models.CheckConstraint(condition=models.Q(shipping_amount__gte=0), name="order_shipping_non_negative"),
            models.CheckConstraint(condition=models.Q(tax_amount__gte=0), name="order_tax_non_negative"),
            models.CheckConstraint(condition=models.Q(discount_amount__gte=0), name="order_discount_non_negative"),
        ]

    def __str__(self):
        return self.order_number


class OrderItem(models.Model):
    """Immutable snapshot of a purchased line.

    ``product`` is nulled if the catalog row is deleted; the snapshot fields
    keep historical orders stable.
    """

    order = models.ForeignKey(Order, related_name="items", on_delete=models.CASCADE)
    product = models.ForeignKey("catalog.Product", null=True, blank=True, on_delete=models.SET_NULL, related_name="+")
    name = models.CharField(max_length=255)
    slug = models.CharField(max_length=255, blank=True, default="")
    price = models.DecimalField(max_digits=12, decimal_places=2)
    quantity = models.PositiveIntegerField()
    line_total = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        db_table = "order_items"
        constraints = [
            models.CheckConstraint(condition=models.Q(quantity__gt=0), name="order_item_quantity_positive"),
        ]


class OrderStatusHistory(models.Model):
    """Append-only audit trail of status changes and admin notes."""

    order = models.ForeignKey(Order, related_name="history", on_delete=models.CASCADE)
    status = models.CharField(max_length=32)
    comment = models.TextField(null=True, blank=True)
    created_by = models.CharField(max_length=64, null=True, blank=True)
    notify_customer = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "order_status_history"
        ordering = ["created_at", "id"]


class IdempotencyKey(models.Model):
    """Stored response of a checkout request made with an ``Idempotency-Key``."""

    key = models.CharField(max_length=200, unique=True)
    request_hash = models.CharField(max_length=64)
    response_status = models.PositiveSmallIntegerField(default=0)
    response_body = models.JSONField(default=dict)
    order = models.ForeignKey(Order, null=True, blank=True, on_delete=models.SET_NULL, related_name="+")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "idempotency_keys"
