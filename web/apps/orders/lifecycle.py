"""The order lifecycle: checkout, status transitions, payments and refunds.

``OrderLifecycle`` owns every write to an order after it is created. It is
wired with its collaborators through ports (stock ledger, coupon engine,
payment gateway, history sink) so tests can drive it with stubs, and it
draws its transaction boundaries with ``transaction.atomic``:

- checkout reserves stock, redeems the coupon and persists the order in
  one transaction, so a failure leaves no reservation or coupon usage behind;
- status changes, payment application and refunds lock the order row
  (``SELECT ... FOR UPDATE``) so the synchronous verify call, the gateway
  webhook and admin actions serialize on the same order;
- history entries are written after the transition commits and cannot
  fail it.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Callable

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from apps.core import errors
from apps.payments.domain import (
    PaymentDetails,
    PaymentGatewayPort,
    PaymentIntent,
    PaymentOutcome,
    RefundResult,
    from_minor_units,
    to_minor_units,
)
from .domain import (
    CUSTOMER_CANCELLABLE,
    REQUIRED_ADDRESS_FIELDS,
    TERMINAL_STATUSES,
    CheckoutCommand,
    CouponEnginePort,
    HistoryEntry,
    HistorySinkPort,
    LinePlan,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    StockLedgerPort,
    is_allowed_transition,
    parse_status,
)
from .models import Order
from .numbers import new_tracking_number
from .repository import OrderRepository

logger = logging.getLogger("orders")

CENT = Decimal("0.01")


def _money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT)


class OrderLifecycle:
    """State machine and orchestration for a single order."""

    def __init__(
        self,
        stock: StockLedgerPort,
        coupons: CouponEnginePort,
        gateway: PaymentGatewayPort,
        history: HistorySinkPort,
        repository: OrderRepository | None = None,
        clock: Callable[[], datetime] = timezone.now,
        strict_transitions: bool | None = None,
        currency: str | None = None,
    ):
        self.stock = stock
        self.coupons = coupons
        self.gateway = gateway
        self.history = history
        self.repository = repository or OrderRepository()
        self.clock = clock
        if strict_transitions is None:
            strict_transitions = getattr(settings, "ORDERS_STRICT_TRANSITIONS", False)
        self.strict_transitions = strict_transitions
        self.currency = currency or getattr(settings, "PAYMENT_CURRENCY", "INR")

    # ------------------------------------------------------------------ #
    # Checkout
    # ------------------------------------------------------------------ #

    def create_order(self, cmd: CheckoutCommand, actor_id: str | None = None) -> Order:
        """Validate a checkout, commit stock and coupon usage, persist the order.

        Steps, all inside one transaction:

        1. Validate lines, address and amounts.
        2. Snapshot products and compute the subtotal (a declared subtotal
           must match it).
        3. Validate the coupon against the subtotal.
        4. Reserve stock line by line, then redeem the coupon.
        5. Persist the order (status ``pending``, payment ``pending``) and
           its item snapshots under a fresh order number.

        Returns:
            The created ``Order``.

        Raises:
            ValidationError: Bad input, ``CouponRejected``,
                ``InsufficientStock``.
            ProductNotFound: A line references an unknown product.
            ConflictError: The coupon's last use was taken concurrently.
        """
        self._validate_checkout(cmd)

        with transaction.atomic():
            plans = self._plan_lines(cmd)
            subtotal = sum((p.line_total for p in plans), Decimal("0.00"))
            if cmd.declared_subtotal is not None and _money(cmd.declared_subtotal) != subtotal:
                raise errors.ValidationError(
                    "SUBTOTAL_MISMATCH", f"Declared subtotal {cmd.declared_subtotal} does not match {subtotal}"
                )

            quote = None
            discount = Decimal("0.00")
            coupon_code = None
            if cmd.coupon_code:
                quote = self.coupons.validate(cmd.coupon_code, subtotal, now=self.clock())
                discount = _money(quote.discount_amount)
                coupon_code = quote.code

            for plan in plans:
                self.stock.reserve(plan.product_id, plan.quantity)

            if quote is not None:
                self.coupons.redeem(quote.coupon_id)

            shipping = _money(cmd.shipping_amount)
            tax = _money(cmd.tax_amount)
            address = dict(cmd.shipping_address)
            order = self.repository.create(
                {
                    "status": OrderStatus.PENDING.value,
                    "payment_status": PaymentStatus.PENDING.value,
                    "payment_method": cmd.payment_method.value,
                    "customer_id": actor_id,
                    "customer_email": address["email"],
                    "customer_phone": address["phone"],
                    "shipping_address": address,
                    "billing_address": dict(cmd.billing_address or address),
                    "notes": cmd.notes,
                    "subtotal": subtotal,
                    "shipping_amount": shipping,
                    "tax_amount": tax,
                    "discount_amount": discount,
                    "total_amount": subtotal + shipping + tax - discount,
                    "coupon_code": coupon_code,
                },
                plans,
            )

        logger.info(
            "order created",
            extra={"order_number": order.order_number, "total_amount": str(order.total_amount), "lines": len(plans)},
        )
        self._record(order, OrderStatus.PENDING.value, "Order placed", actor_id)
        return order

    def _validate_checkout(self, cmd: CheckoutCommand) -> None:
        if not cmd.items:
            raise errors.ValidationError("EMPTY_ORDER", "Order must contain at least one item")
        for line in cmd.items:
            if not isinstance(line.quantity, int) or line.quantity <= 0:
                raise errors.ValidationError("INVALID_QUANTITY", f"Invalid quantity for product {line.product_id}")
        address = cmd.shipping_address or {}
        missing = [f for f in REQUIRED_ADDRESS_FIELDS if not str(address.get(f) or "").strip()]
        if missing:
            raise errors.ValidationError(
                "INCOMPLETE_ADDRESS", f"Please provide complete shipping address (missing: {', '.join(missing)})"
            )
        if not isinstance(cmd.payment_method, PaymentMethod):
            raise errors.ValidationError("INVALID_PAYMENT_METHOD", "Please select a payment method")
        if Decimal(str(cmd.shipping_amount)) < 0 or Decimal(str(cmd.tax_amount)) < 0:
            raise errors.ValidationError("INVALID_AMOUNT", "Shipping and tax amounts must be non-negative")

    def _plan_lines(self, cmd: CheckoutCommand) -> list[LinePlan]:
        from apps.catalog.models import Product

        ids = {line.product_id for line in cmd.items}
        products = Product.objects.in_bulk(ids)
        plans = []
        for line in cmd.items:
            product = products.get(line.product_id)
            if product is None:
                raise errors.ProductNotFound(message=f"Product {line.product_id} not found")
            if not product.is_active:
                raise errors.ValidationError("PRODUCT_UNAVAILABLE", f"Product {line.product_id} is not available")
            plans.append(
                LinePlan(
                    product_id=product.pk,
                    name=product.name,
                    slug=product.slug,
                    price=_money(product.price),
                    quantity=line.quantity,
                )
            )
        return plans

    # ------------------------------------------------------------------ #
    # Status transitions
    # ------------------------------------------------------------------ #

    def update_status(self, order_id, new_status, actor_id: str | None, comment: str | None = None) -> Order:
        """Move an order to ``new_status`` and apply that state's side effects.

        Any member of ``OrderStatus`` is accepted unless strict transitions
        are enabled, in which case the forward-only table applies.

        Raises:
            ValidationError: ``INVALID_STATUS`` for values outside the set.
            OrderNotFound: Unknown order id.
            InvalidTransition: Strict mode and the move is not in the table.
        """
        try:
            target = parse_status(new_status)
        except ValueError:
            raise errors.ValidationError("INVALID_STATUS", f"Invalid order status: {new_status!r}") from None

        with transaction.atomic():
            order = self.repository.lock(order_id)
            current = OrderStatus(order.status)
            if self.strict_transitions and not is_allowed_transition(current, target):
                raise errors.InvalidTransition(
                    message=f"Cannot move order from {current.value} to {target.value}"
                )
            changed = self._apply_status(order, target)
            self.repository.save(order, changed)

        logger.info(
            "order status updated",
            extra={"order_number": order.order_number, "from": current.value, "to": target.value},
        )
        self._record(order, target.value, comment, actor_id)
        return order

    def cancel(self, order_number: str, customer_id: str | None = None) -> Order:
        """Customer-initiated cancellation.

        Only ``pending``, ``confirmed`` and ``processing`` orders can be
        cancelled this way. Stock is released exactly once.

        Raises:
            OrderNotFound: Unknown number, or the order belongs to another customer.
            InvalidTransition: ``ORDER_NOT_CANCELLABLE`` for any other status.
        """
        with transaction.atomic():
            order = self.repository.lock_by_number(order_number)
            if order.customer_id is not None and order.customer_id != customer_id:
                raise errors.OrderNotFound(message=f"Order {order_number} not found")
            current = OrderStatus(order.status)
            if current not in CUSTOMER_CANCELLABLE:
                raise errors.InvalidTransition(
                    "ORDER_NOT_CANCELLABLE", f"Cannot cancel order with status: {current.value}"
                )
            changed = self._apply_status(order, OrderStatus.CANCELLED)
            self.repository.save(order, changed)

        logger.info("order cancelled", extra={"order_number": order.order_number})
        self._record(order, OrderStatus.CANCELLED.value, "Cancelled by customer", customer_id)
        return order

    def _apply_status(self, order: Order, target: OrderStatus) -> list[str]:
        """Set ``target`` and its side effects on a locked order; return changed fields."""
        now = self.clock()
        order.status = target.value
        changed = ["status"]

        if target == OrderStatus.SHIPPED:
            if order.shipped_at is None:
                order.shipped_at = now
                changed.append("shipped_at")
            if not order.tracking_number:
                order.tracking_number = new_tracking_number(now)
                changed.append("tracking_number")

        elif target == OrderStatus.DELIVERED:
            if order.delivered_at is None:
                order.delivered_at = now
                changed.append("delivered_at")
            if (
                order.payment_method == PaymentMethod.CASH_ON_DELIVERY.value
                and order.payment_status in (PaymentStatus.PENDING.value, PaymentStatus.FAILED.value)
            ):
                order.payment_status = PaymentStatus.PAID.value
                changed.append("payment_status")
                if order.paid_at is None:
                    order.paid_at = now
                    changed.append("paid_at")

        elif target == OrderStatus.CANCELLED:
            if order.cancelled_at is None:
                order.cancelled_at = now
                changed.append("cancelled_at")
            if not order.stock_released:
                self._release_stock(order)
                order.stock_released = True
                changed.append("stock_released")

        elif target == OrderStatus.REFUNDED:
            if order.refunded_at is None:
                order.refunded_at = now
                changed.append("refunded_at")

        return changed

    def _release_stock(self, order: Order) -> None:
        for item in self.repository.items(order):
            if item.product_id is None:
                continue
            self.stock.release(item.product_id, item.quantity)

    # ------------------------------------------------------------------ #
    # Payments
    # ------------------------------------------------------------------ #

    def open_payment_intent(self, order_id) -> tuple[Order, PaymentIntent]:
        """Create (or reuse) the gateway order a customer pays against.

        An intent already attached to a still-pending order is reused, so a
        retried call does not create a second gateway order. The gateway is
        called with the order row locked; on ``GatewayError`` nothing is
        written.

        Raises:
            OrderNotFound: Unknown order id.
            ConflictError: ``ALREADY_PAID`` when the order is paid or refunded.
            InvalidTransition: ``ORDER_NOT_PAYABLE`` for cancelled/refunded orders.
            GatewayError: The provider failed.
        """
        with transaction.atomic():
            order = self.repository.lock(order_id)
            if order.payment_status in (PaymentStatus.PAID.value, PaymentStatus.REFUNDED.value):
                raise errors.ConflictError("ALREADY_PAID", "Order is already paid")
            if OrderStatus(order.status) in TERMINAL_STATUSES:
                raise errors.InvalidTransition("ORDER_NOT_PAYABLE", f"Order is {order.status}")

            amount_minor = to_minor_units(order.total_amount)
            if order.gateway_order_id and order.payment_status == PaymentStatus.PENDING.value:
                intent = PaymentIntent(
                    id=order.gateway_order_id,
                    amount_minor=amount_minor,
                    currency=self.currency,
                    receipt=order.order_number,
                )
                return order, intent

            intent = self.gateway.create_intent(
                amount_minor,
                self.currency,
                receipt=order.order_number,
                notes={"order_id": str(order.pk), "order_number": order.order_number},
            )
            order.gateway_order_id = intent.id
            self.repository.save(order, ["gateway_order_id"])

        logger.info(
            "payment intent attached",
            extra={"order_number": order.order_number, "gateway_order_id": intent.id, "amount_minor": amount_minor},
        )
        return order, intent

    def apply_payment_result(
        self,
        gateway_order_id: str,
        outcome,
        payment_id: str | None = None,
        signature: str | None = None,
        details: PaymentDetails | None = None,
    ) -> Order:
        """Record a payment outcome reported by verify or by webhook.

        Idempotent under concurrent delivery: the order row is locked, a
        ``paid`` outcome on an already paid (or refunded) order changes
        nothing, and ``failed`` only moves ``pending`` to ``failed`` so a late
        failure event cannot undo a payment.

        Args:
            gateway_order_id: The gateway's order reference (not our order number).
            outcome: ``PaymentOutcome`` or its string value.
            payment_id: Gateway payment id; required for ``paid``.
            signature: Client signature from the verify path, if any.
            details: Best-effort payment enrichment.

        Raises:
            OrderNotFound: No order carries that gateway order id.
        """
        outcome = PaymentOutcome(outcome)
        with transaction.atomic():
            order = self.repository.lock_by_gateway_order(gateway_order_id)
            current = order.payment_status

            if outcome == PaymentOutcome.PAID:
                if current in (PaymentStatus.PAID.value, PaymentStatus.REFUNDED.value):
                    logger.info(
                        "duplicate payment result ignored",
                        extra={"order_number": order.order_number, "payment_status": current},
                    )
                    return order
                if not payment_id:
                    raise errors.ValidationError("MISSING_PAYMENT_ID", "A paid outcome needs a payment id")
                order.payment_status = PaymentStatus.PAID.value
                order.gateway_payment_id = payment_id
                changed = ["payment_status", "gateway_payment_id"]
                if signature:
                    order.gateway_signature = signature
                    changed.append("gateway_signature")
                if order.paid_at is None:
                    order.paid_at = self.clock()
                    changed.append("paid_at")
                if details is not None:
                    order.payment_details = details.as_dict()
                    changed.append("payment_details")
                self.repository.save(order, changed)
                if OrderStatus(order.status) in TERMINAL_STATUSES:
                    logger.warning("payment captured for closed order", extra={"order_number": order.order_number})
                logger.info("order marked paid", extra={"order_number": order.order_number, "payment_id": payment_id})
                return order

            if current != PaymentStatus.PENDING.value:
                logger.info(
                    "payment failure ignored",
                    extra={"order_number": order.order_number, "payment_status": current},
                )
                return order
            order.payment_status = PaymentStatus.FAILED.value
            self.repository.save(order, ["payment_status"])
            logger.warning("order payment failed", extra={"order_number": order.order_number})
            return order

    def refund(self, order_id, amount=None, reason: str | None = None, actor_id: str | None = None) -> RefundResult:
        """Refund a paid order through the gateway.

        Stock is not touched; a refund is a financial reversal, not a
        cancellation. The gateway is called with the order row locked, so
        two concurrent refund requests cannot both reach the provider.

        Args:
            order_id: Order to refund.
            amount: Major-unit amount for a partial refund; None refunds in full.
            reason: Free-form reason stored with the refund.
            actor_id: Caller, for the history entry.

        Raises:
            OrderNotFound: Unknown order id.
            NotPaid: ``payment_status`` is not ``paid``; the gateway is not called.
            ConflictError: ``NO_GATEWAY_PAYMENT`` when there is nothing to refund
                at the gateway (e.g. cash on delivery).
            ValidationError: ``INVALID_REFUND_AMOUNT``.
            GatewayError: The provider failed; the order is unchanged.
        """
        with transaction.atomic():
            order = self.repository.lock(order_id)
            if order.payment_status != PaymentStatus.PAID.value:
                raise errors.NotPaid(message="Order is not paid yet")
            if not order.gateway_payment_id:
                raise errors.ConflictError("NO_GATEWAY_PAYMENT", "No payment ID found for this order")

            total_minor = to_minor_units(order.total_amount)
            amount_minor = to_minor_units(amount) if amount is not None else None
            if amount_minor is not None and not (0 < amount_minor <= total_minor):
                raise errors.ValidationError("INVALID_REFUND_AMOUNT", f"Refund amount must be in (0, {order.total_amount}]")

            result = self.gateway.refund(
                order.gateway_payment_id,
                amount_minor,
                notes={"order_number": order.order_number, "reason": reason or ""},
            )
            booked_minor = result.amount_minor
            if booked_minor is None:
                booked_minor = amount_minor if amount_minor is not None else total_minor

            order.payment_status = PaymentStatus.REFUNDED.value
            order.refund_id = result.id
            order.refund_amount = from_minor_units(booked_minor)
            order.refund_reason = reason
            changed = ["payment_status", "refund_id", "refund_amount", "refund_reason"]
            if order.refunded_at is None:
                order.refunded_at = self.clock()
                changed.append("refunded_at")
            self.repository.save(order, changed)

        logger.info(
            "order refunded",
            extra={"order_number": order.order_number, "refund_id": result.id, "amount": str(order.refund_amount)},
        )
        self._record(order, order.status, f"Refund {result.id} of {order.refund_amount}", actor_id)
        return RefundResult(id=result.id, payment_id=result.payment_id, amount_minor=booked_minor, status=result.status)

    # ------------------------------------------------------------------ #
    # Admin bookkeeping
    # ------------------------------------------------------------------ #

    def update_tracking(self, order_id, tracking_number: str, shipping_method: str | None = None) -> Order:
        """Set the carrier tracking number, and the shipping method when given.

        Status is unchanged; shipping an order assigns a generated number
        only when none was set here first.

        Raises:
            ValidationError: ``INVALID_TRACKING_NUMBER`` for a blank number.
            OrderNotFound: Unknown order id.
        """
        if not (tracking_number or "").strip():
            raise errors.ValidationError("INVALID_TRACKING_NUMBER", "Tracking number is required")
        with transaction.atomic():
            order = self.repository.lock(order_id)
            order.tracking_number = tracking_number.strip()
            changed = ["tracking_number"]
            if shipping_method:
                order.shipping_method = shipping_method
                changed.append("shipping_method")
            self.repository.save(order, changed)
        return order

    def add_notes(self, order_id, notes: str, actor_id: str | None) -> Order:
        """Replace the internal admin notes and log them in the history.

        The history entry is flagged ``notify_customer=False``.

        Raises:
            ValidationError: ``INVALID_NOTES`` for blank notes.
            OrderNotFound: Unknown order id.
        """
        if not (notes or "").strip():
            raise errors.ValidationError("INVALID_NOTES", "Notes are required")
        with transaction.atomic():
            order = self.repository.lock(order_id)
            order.admin_notes = notes
            self.repository.save(order, ["admin_notes"])
        self.history.record(
            HistoryEntry(
                order_id=order.pk,
                status=order.status,
                comment=f"Admin note: {notes}",
                created_by=actor_id,
                notify_customer=False,
            )
        )
        return order

    def _record(self, order: Order, status: str, comment: str | None, actor_id: str | None) -> None:
        self.history.record(HistoryEntry(order_id=order.pk, status=status, comment=comment, created_by=actor_id))
