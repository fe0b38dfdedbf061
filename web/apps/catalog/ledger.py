"""Atomic stock reservation and release against ``Product.stock_quantity``.

Both operations are a single conditional ``UPDATE`` so the check and the
decrement can never be split across two round trips: two checkouts racing
for the last unit resolve inside the database, and exactly one of them sees
an affected row. ``stock_status`` is recomputed in the same statement.

The ledger never caches product state; every call reads the current row.
"""

import logging
from dataclasses import dataclass

from django.db.models import Case, F, Value, When

from apps.core import errors
from .models import Product, StockStatus

logger = logging.getLogger("catalog")


@dataclass(frozen=True)
class Reservation:
    """Result of a successful ``reserve`` call.

    Attributes:
        product_id: Product the units were taken from.
        quantity: Units requested.
        tracked: False when the product does not manage stock, in which case
            nothing was decremented and nothing must be released.
    """

    product_id: int
    quantity: int
    tracked: bool = True


def _check_quantity(quantity) -> None:
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
        raise errors.ValidationError("INVALID_QUANTITY", f"Quantity must be a positive integer, got {quantity!r}")


class ProductStockLedger:
    """Reserve and release product stock with single-statement updates."""

    def reserve(self, product_id: int, quantity: int) -> Reservation:
        """Take ``quantity`` units of ``product_id`` out of stock.

        Raises:
            ProductNotFound: No product row with that id.
            InsufficientStock: Fewer than ``quantity`` units are available.
                Stock is left untouched.
        """
        _check_quantity(quantity)
        manage_stock = Product.objects.filter(pk=product_id).values_list("manage_stock", flat=True).first()
        if manage_stock is None:
            raise errors.ProductNotFound(message=f"Product {product_id} not found")
        if not manage_stock:
            return Reservation(product_id=product_id, quantity=quantity, tracked=False)

        updated = Product.objects.filter(
            pk=product_id, manage_stock=True, stock_quantity__gte=quantity
        ).update(
            stock_quantity=F("stock_quantity") - quantity,
            # evaluated against the pre-update value
            stock_status=Case(
                When(stock_quantity__gt=quantity, then=Value(StockStatus.IN_STOCK)),
                default=Value(StockStatus.OUT_OF_STOCK),
            ),
        )
        if updated == 0:
            logger.info("stock reservation refused", extra={"product_id": product_id, "quantity": quantity})
            raise errors.InsufficientStock(product_id=product_id, requested=quantity)

        logger.info("stock reserved", extra={"product_id": product_id, "quantity": quantity})
        return Reservation(product_id=product_id, quantity=quantity)

    def release(self, product_id: int, quantity: int) -> bool:
        """Put ``quantity`` units back into stock.

        Returns True when a stock counter was incremented; False when the
        product no longer exists or does not manage stock. Callers own
        idempotency: releasing twice adds the units twice.
        """
        _check_quantity(quantity)
        updated = Product.objects.filter(pk=product_id, manage_stock=True).update(
            stock_quantity=F("stock_quantity") + quantity,
            stock_status=StockStatus.IN_STOCK,
        )
        if updated:
            logger.info("stock released", extra={"product_id": product_id, "quantity": quantity})
        return bool(updated)

    def available(self, product_id: int) -> int | None:
        """Current stock for a managed product, None when unmanaged or missing."""
        row = Product.objects.filter(pk=product_id).values("stock_quantity", "manage_stock").first()
        if row is None or not row["manage_stock"]:
            return None
        return row["stock_quantity"]
