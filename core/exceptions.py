"""
Error taxonomy shared by the order, coupon, inventory and payment services.

Services raise these; views translate them into HTTP responses.
"""
from typing import Optional


class StorefrontError(Exception):
    """Base class for all domain errors."""
    status_code = 400
    default_message = 'Request could not be processed'

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(StorefrontError):
    """Bad input that the caller can correct."""
    default_message = 'Invalid request'


class OrderValidationError(ValidationError):
    """Raised when order items or owner details are malformed."""
    pass


class ProductUnavailableError(StorefrontError):
    """Raised when a product is missing, disabled or lacks the requested size."""
    default_message = 'Product is not available'


class InsufficientStockError(StorefrontError):
    """Raised when there's not enough stock for an order item."""

    def __init__(self, product_id: int, name: str, requested: int, available: Optional[int] = None,
                 size: Optional[str] = None):
        self.product_id = product_id
        self.name = name
        self.requested = requested
        self.available = available
        self.size = size
        label = f"{name} (size {size})" if size else name
        if available is None:
            message = f"Insufficient stock for {label}: requested {requested}"
        else:
            message = f"Insufficient stock for {label}. Only {available} left."
        super().__init__(message)


class OutOfStockError(InsufficientStockError):
    """Raised by the pricing step, before any stock is touched."""
    pass


class CouponRejectedError(StorefrontError):
    """Any coupon rule failure; the message carries the specific reason."""
    default_message = 'Invalid coupon'


class OrderCreationFailed(StorefrontError):
    default_message = 'Failed to place order'


class InvalidStatusTransition(StorefrontError):
    def __init__(self, current: str, requested: str, reason: Optional[str] = None):
        self.current = current
        self.requested = requested
        message = f"Cannot move order from {current} to {requested}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class InvalidSignatureError(StorefrontError):
    """Webhook authenticity failure. Never shown to end users."""
    default_message = 'Security Error: Invalid Signature'


class PaymentMismatchError(StorefrontError):
    """Signed notification whose amount or currency disagrees with the order."""
    default_message = 'Payment amount mismatch'


class PaymentConfigurationError(StorefrontError):
    status_code = 500
    default_message = 'Server Configuration Error: Payment Gateway not setup.'


class StockReconciliationAnomaly(StorefrontError):
    """
    Payment cleared but stock was exhausted in the meantime.

    Raised inside the promotion transaction so it rolls back; the
    reconciler converts it into an order flagged for manual review.
    """

    def __init__(self, order_number: str, shortage: InsufficientStockError):
        self.order_number = order_number
        self.shortage = shortage
        super().__init__(f"Order #{order_number} paid but stock exhausted: {shortage.message}")
