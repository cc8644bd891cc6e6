"""
Tests for the stock ledger.

Test Cases:
1. Scalar and variant stock deducted by line quantity
2. Shortage on any line raises and rolls back earlier lines
3. Restore puts back exactly what was deducted
4. Deduction outside a transaction is refused
5. Product discount pricing
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from django.db import transaction
from django.test import TestCase, TransactionTestCase

from core.exceptions import InsufficientStockError
from inventory.ledger import deduct_stock, restore_stock
from inventory.models import Product, ProductVariant


@dataclass
class Line:
    product_id: int
    name: str
    quantity: int
    size: Optional[str] = None


class StockLedgerTestCase(TestCase):

    def setUp(self):
        self.mug = Product.objects.create(sku='MUG-1', name='Mug', price=Decimal('1500.00'), stock=10)
        self.shirt = Product.objects.create(sku='TEE-1', name='Shirt', price=Decimal('2500.00'), stock=0)
        self.shirt_m = ProductVariant.objects.create(product=self.shirt, size='M', stock=3)
        self.shirt_l = ProductVariant.objects.create(product=self.shirt, size='L', stock=1)

    def test_deducts_scalar_and_variant_stock(self):
        with transaction.atomic():
            deduct_stock([
                Line(self.shirt.id, 'Shirt', 2, 'M'),
                Line(self.mug.id, 'Mug', 4),
            ])

        self.mug.refresh_from_db()
        self.shirt_m.refresh_from_db()
        self.shirt_l.refresh_from_db()
        self.assertEqual(self.mug.stock, 6)
        self.assertEqual(self.shirt_m.stock, 1)
        self.assertEqual(self.shirt_l.stock, 1)

    def test_shortage_rolls_back_whole_deduction(self):
        """
        Given: Mug has 10 units, Shirt L has 1
        When: Deducting 4 mugs and 2 shirts (L) together
        Then: InsufficientStockError names the shirt and no mug stock is lost
        """
        with self.assertRaises(InsufficientStockError) as ctx:
            with transaction.atomic():
                deduct_stock([
                    Line(self.mug.id, 'Mug', 4),
                    Line(self.shirt.id, 'Shirt', 2, 'L'),
                ])

        self.assertEqual(ctx.exception.available, 1)
        self.assertIn('Shirt', ctx.exception.message)
        self.assertIn('Only 1 left', ctx.exception.message)

        self.mug.refresh_from_db()
        self.shirt_l.refresh_from_db()
        self.assertEqual(self.mug.stock, 10)
        self.assertEqual(self.shirt_l.stock, 1)

    def test_exact_stock_reaches_zero(self):
        with transaction.atomic():
            deduct_stock([Line(self.mug.id, 'Mug', 10)])

        self.mug.refresh_from_db()
        self.assertEqual(self.mug.stock, 0)

    def test_restore_reverses_deduction(self):
        lines = [Line(self.mug.id, 'Mug', 3), Line(self.shirt.id, 'Shirt', 1, 'L')]
        with transaction.atomic():
            deduct_stock(lines)
        with transaction.atomic():
            restore_stock(lines)

        self.mug.refresh_from_db()
        self.shirt_l.refresh_from_db()
        self.assertEqual(self.mug.stock, 10)
        self.assertEqual(self.shirt_l.stock, 1)

    def test_restore_skips_missing_variant(self):
        with self.assertLogs('inventory.ledger', level='WARNING'):
            restore_stock([Line(self.shirt.id, 'Shirt', 1, 'XXL')])


class ProductPricingTestCase(TestCase):

    def test_percentage_discount(self):
        product = Product(
            sku='P', name='P', price=Decimal('999.99'),
            discount_type=Product.DiscountType.PERCENTAGE, discount_value=Decimal('10')
        )
        self.assertEqual(product.unit_price, Decimal('899.99'))

    def test_fixed_discount_never_negative(self):
        product = Product(
            sku='F', name='F', price=Decimal('100.00'),
            discount_type=Product.DiscountType.FIXED, discount_value=Decimal('150.00')
        )
        self.assertEqual(product.unit_price, Decimal('0.00'))

    def test_no_discount(self):
        product = Product(sku='N', name='N', price=Decimal('250.00'))
        self.assertEqual(product.unit_price, Decimal('250.00'))


class LedgerOutsideTransactionTestCase(TransactionTestCase):

    def test_deduct_requires_transaction(self):
        mug = Product.objects.create(sku='MUG-2', name='Mug', price=Decimal('10.00'), stock=5)

        with self.assertRaises(RuntimeError):
            deduct_stock([Line(mug.id, 'Mug', 1)])

        mug.refresh_from_db()
        self.assertEqual(mug.stock, 5)
