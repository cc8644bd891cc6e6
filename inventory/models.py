"""
Catalog stock and price records consulted by order intake.

Models:
    - Product: Sellable item with base price, stored discount and scalar stock
    - ProductVariant: Per-size stock for products sold in sizes (unique per product/size)
"""
from decimal import Decimal, ROUND_HALF_UP

from django.core.validators import MinValueValidator
from django.db import models

CENT = Decimal('0.01')


class Product(models.Model):
    """
    Product entity. When a product has variants, the variant rows hold its
    stock and the scalar ``stock`` column is ignored.
    """

    class DiscountType(models.TextChoices):
        NONE = 'NONE', 'None'
        PERCENTAGE = 'PERCENTAGE', 'Percentage'
        FIXED = 'FIXED', 'Fixed amount'

    sku = models.CharField(
        max_length=64,
        unique=True,
        help_text="Stock keeping unit"
    )
    name = models.CharField(
        max_length=200,
        db_index=True,
        help_text="Product name for display"
    )
    price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text="Base price before the product discount"
    )
    discount_type = models.CharField(
        max_length=20,
        choices=DiscountType.choices,
        default=DiscountType.NONE
    )
    discount_value = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    stock = models.PositiveIntegerField(
        default=0,
        help_text="Scalar stock, used when the product has no size variants"
    )
    is_available = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Whether product can currently be sold"
    )
    image_url = models.URLField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Product'
        verbose_name_plural = 'Products'
        ordering = ['name']

    def __str__(self):
        return f"{self.name} ({self.sku})"

    @property
    def has_variants(self) -> bool:
        return self.variants.exists()

    @property
    def unit_price(self) -> Decimal:
        """Base price with the stored discount applied, never below zero."""
        price = self.price
        if self.discount_type == self.DiscountType.PERCENTAGE:
            price = price - price * self.discount_value / Decimal('100')
        elif self.discount_type == self.DiscountType.FIXED:
            price = price - self.discount_value
        return max(price, Decimal('0.00')).quantize(CENT, rounding=ROUND_HALF_UP)


class ProductVariant(models.Model):
    """Stock for one size of a product."""
    product = models.ForeignKey(
        Product,
        on_delete=models.CASCADE,
        related_name='variants'
    )
    size = models.CharField(max_length=20)
    stock = models.PositiveIntegerField(default=0)

    class Meta:
        verbose_name = 'Product Variant'
        verbose_name_plural = 'Product Variants'
        ordering = ['product', 'size']
        constraints = [
            models.UniqueConstraint(
                fields=['product', 'size'],
                name='unique_product_size_variant'
            )
        ]

    def __str__(self):
        return f"{self.product.name} [{self.size}]: {self.stock} units"
