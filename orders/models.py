"""
Order Models - durable orders with status and stock tracking.

Order Status Flow:
    PENDING -> CONFIRMED -> PROCESSING -> SHIPPED -> DELIVERED
    PENDING/CONFIRMED -> CANCELLED
    SHIPPED/DELIVERED -> RETURNED
    CONFIRMED..DELIVERED -> REFUNDED (online payments only)

Orders are never deleted; line items and the shipping address are
snapshots taken when the order was committed.
"""
import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models

from .pricing import PricedItem


class Order(models.Model):
    """
    Order entity created by COD checkout or by promotion of a paid pending order.

    Status:
        - PENDING: COD order placed, awaiting shop confirmation
        - CONFIRMED: Confirmed by the shop, or paid online
        - PROCESSING / SHIPPED / DELIVERED: Fulfillment workflow
        - CANCELLED / RETURNED / REFUNDED: Terminal, stock restored
    """

    class Status(models.TextChoices):
        PENDING = 'PENDING', 'Pending'
        CONFIRMED = 'CONFIRMED', 'Confirmed'
        PROCESSING = 'PROCESSING', 'Processing'
        SHIPPED = 'SHIPPED', 'Shipped'
        DELIVERED = 'DELIVERED', 'Delivered'
        CANCELLED = 'CANCELLED', 'Cancelled'
        RETURNED = 'RETURNED', 'Returned'
        REFUNDED = 'REFUNDED', 'Refunded'

    class PaymentMethod(models.TextChoices):
        COD = 'COD', 'Cash on delivery'
        PAYHERE = 'PAYHERE', 'PayHere'

    class StockStatus(models.TextChoices):
        DEDUCTED = 'DEDUCTED', 'Deducted'
        RESTORED = 'RESTORED', 'Restored'
        NOT_DEDUCTED = 'NOT_DEDUCTED', 'Not deducted'

    order_number = models.CharField(
        max_length=20,
        unique=True,
        help_text="Customer and payment provider visible reference"
    )
    guest_token = models.UUIDField(
        default=uuid.uuid4,
        unique=True,
        editable=False,
        help_text="Opaque token for tracking without an account"
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='orders'
    )
    email = models.EmailField()
    shipping_address = models.JSONField(help_text="Address snapshot at order time")
    items = models.JSONField(help_text="Line item snapshots at order time")
    total_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00')
    )
    discount_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00')
    )
    coupon_code = models.CharField(max_length=50, null=True, blank=True)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True
    )
    payment_method = models.CharField(
        max_length=20,
        choices=PaymentMethod.choices,
        default=PaymentMethod.COD
    )
    tracking_number = models.CharField(
        max_length=100,
        null=True,
        blank=True,
        help_text="Courier tracking number, or the provider payment id for online orders"
    )
    stock_status = models.CharField(
        max_length=20,
        choices=StockStatus.choices,
        default=StockStatus.DEDUCTED,
        help_text="What the stock ledger has done for this order"
    )
    requires_review = models.BooleanField(default=False, db_index=True)
    review_note = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Order'
        verbose_name_plural = 'Orders'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', 'created_at'], name='order_user_created_idx'),
            models.Index(fields=['status', 'created_at'], name='order_status_created_idx'),
        ]

    def __str__(self):
        return f"Order #{self.order_number} ({self.status})"

    @property
    def line_items(self):
        return [PricedItem.from_dict(item) for item in self.items]

    @property
    def subtotal(self) -> Decimal:
        return sum((item.line_total for item in self.line_items), Decimal('0.00'))

    @property
    def is_online_payment(self) -> bool:
        return self.payment_method == self.PaymentMethod.PAYHERE

    @property
    def guest_tracking_open(self) -> bool:
        """Guest tracking links stop working once the order was delivered or cancelled."""
        return self.status not in (self.Status.DELIVERED, self.Status.CANCELLED)

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.line_items)
