"""Wiring for the payment gateway port.

``get_payment_gateway`` returns the HTTP client when
``settings.USE_HTTP_ADAPTERS`` is truthy and the in-process stub otherwise
(tests and local development).
"""

from django.conf import settings

from .adapters import GatewayStub
from .domain import PaymentGatewayPort
from .http_adapters import HttpGatewayClient


def get_payment_gateway() -> PaymentGatewayPort:
    if getattr(settings, "USE_HTTP_ADAPTERS", False):
        return HttpGatewayClient()
    return GatewayStub()


def get_payment_reconciler(gateway: PaymentGatewayPort | None = None):
    from apps.orders.providers import get_order_lifecycle
    from .reconciliation import PaymentReconciler

    gateway = gateway or get_payment_gateway()
    return PaymentReconciler(gateway=gateway, lifecycle=get_order_lifecycle(gateway=gateway))
