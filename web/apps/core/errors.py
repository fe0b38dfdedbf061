"""Error taxonomy shared by the catalog, coupon, payment and order apps.

Every error carries a short machine-readable ``code`` (also its ``str()``)
and the HTTP status the API edge answers with. Views never build error
responses for these by hand; ``gateway.exceptions.domain_exception_handler``
renders them.
"""


class DomainError(Exception):
    """Base class for errors raised by the order fulfillment domain."""

    status_code = 400
    default_code = "DOMAIN_ERROR"

    def __init__(self, code: str | None = None, message: str | None = None):
        self.code = code or self.default_code
        self.message = message
        super().__init__(self.code)


# ---- 400: client-correctable ----
class ValidationError(DomainError):
    default_code = "VALIDATION_ERROR"


class InsufficientStock(ValidationError):
    default_code = "INSUFFICIENT_STOCK"

    def __init__(self, product_id=None, requested: int | None = None, message: str | None = None):
        self.product_id = product_id
        self.requested = requested
        if message is None and product_id is not None:
            message = f"Insufficient stock for product {product_id} (requested {requested})"
        super().__init__(message=message)


class CouponRejected(ValidationError):
    default_code = "COUPON_REJECTED"


class InvalidSignature(ValidationError):
    default_code = "INVALID_SIGNATURE"


# ---- 404 ----
class NotFoundError(DomainError):
    status_code = 404
    default_code = "NOT_FOUND"


class ProductNotFound(NotFoundError):
    default_code = "PRODUCT_NOT_FOUND"


class OrderNotFound(NotFoundError):
    default_code = "ORDER_NOT_FOUND"


# ---- 409 / 400: state conflicts ----
class ConflictError(DomainError):
    status_code = 409
    default_code = "CONFLICT"


class InvalidTransition(ConflictError):
    status_code = 400
    default_code = "INVALID_TRANSITION"


class NotPaid(ConflictError):
    status_code = 400
    default_code = "NOT_PAID"


# ---- upstream / internal ----
class GatewayError(DomainError):
    """The payment provider failed, timed out or answered unexpectedly."""

    status_code = 502
    default_code = "GATEWAY_ERROR"


class InternalError(DomainError):
    status_code = 500
    default_code = "INTERNAL_ERROR"
