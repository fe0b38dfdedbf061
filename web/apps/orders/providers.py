"""Factories wiring ``OrderLifecycle`` and ``OrderQueryService`` with their ports.

The stock ledger, coupon engine and history recorder are always the
database-backed implementations; the payment gateway comes from
``apps.payments.providers.get_payment_gateway`` (HTTP client or stub,
depending on ``settings.USE_HTTP_ADAPTERS``).
"""

from apps.catalog.ledger import ProductStockLedger
from apps.coupons.engine import CouponEngine
from apps.payments.domain import PaymentGatewayPort
from apps.payments.providers import get_payment_gateway
from .history import StatusHistoryRecorder
from .lifecycle import OrderLifecycle
from .queries import OrderQueryService
from .repository import OrderRepository


def get_order_lifecycle(gateway: PaymentGatewayPort | None = None) -> OrderLifecycle:
    return OrderLifecycle(
        stock=ProductStockLedger(),
        coupons=CouponEngine(),
        gateway=gateway or get_payment_gateway(),
        history=StatusHistoryRecorder(),
        repository=OrderRepository(),
    )


def get_order_queries() -> OrderQueryService:
    return OrderQueryService()
