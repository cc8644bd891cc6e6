"""
Coupon Models - discount codes and their redemption history.

Usage counters change only when an order is committed; see
coupons.services.record_redemption.
"""
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models


def normalize_code(code) -> str:
    return (code or '').strip().upper()


class Coupon(models.Model):
    """
    Discount code with usage limits.

    Limits:
        - max_uses: Global redemption cap (null = unlimited)
        - limit_per_user: Redemptions allowed per user (null = unlimited, guests allowed)
        - is_public: Guests may redeem only public coupons without a per-user limit
    """

    class Type(models.TextChoices):
        PERCENTAGE = 'PERCENTAGE', 'Percentage'
        FIXED = 'FIXED', 'Fixed amount'

    code = models.CharField(
        max_length=50,
        unique=True,
        help_text="Stored upper-case"
    )
    type = models.CharField(max_length=20, choices=Type.choices)
    value = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    min_order_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    max_discount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)
    max_uses = models.PositiveIntegerField(null=True, blank=True)
    limit_per_user = models.PositiveIntegerField(null=True, blank=True)
    used_count = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)
    is_public = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Coupon'
        verbose_name_plural = 'Coupons'
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.code} ({self.type} {self.value})"

    def save(self, *args, **kwargs):
        self.code = normalize_code(self.code)
        super().save(*args, **kwargs)


class CouponRedemption(models.Model):
    """One row per committed order that applied a coupon."""
    coupon = models.ForeignKey(
        Coupon,
        on_delete=models.PROTECT,
        related_name='redemptions'
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='coupon_redemptions'
    )
    order = models.OneToOneField(
        'orders.Order',
        on_delete=models.CASCADE,
        related_name='coupon_redemption'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = 'Coupon Redemption'
        verbose_name_plural = 'Coupon Redemptions'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['coupon', 'user'], name='redemption_coupon_user_idx'),
        ]

    def __str__(self):
        return f"{self.coupon.code} on order {self.order_id}"
