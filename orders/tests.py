"""
Tests for order intake and fulfillment.

Test Cases:
1. Pricing resolves catalog prices and reports shortages without touching stock
2. COD order deducts stock, redeems coupon and clears the cart atomically
3. Second COD order for the last units fails, nothing oversold
4. Online order parks a pending entry and leaves stock alone
5. Status transitions follow the workflow and restore stock once
6. Customers can cancel only before confirmation
7. HTTP surface: placement, tracking, customer and admin endpoints
8. Concurrent orders race for the same stock (PostgreSQL only)
"""
import threading
from decimal import Decimal
from unittest import skipUnless
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.db import connection, connections
from django.test import TestCase, TransactionTestCase, override_settings
from rest_framework.test import APIClient

from core.exceptions import (
    CouponRejectedError,
    InsufficientStockError,
    InvalidStatusTransition,
    OrderValidationError,
    OutOfStockError,
    PaymentConfigurationError,
    ProductUnavailableError,
    ValidationError,
)
from coupons.models import Coupon, CouponRedemption
from customers.models import Address, Cart
from inventory.models import Product, ProductVariant
from notifications.models import EmailLog
from orders.fulfillment import cancel_order_by_customer, transition_order
from orders.models import Order
from orders.pending import PendingOrderStore
from orders.pricing import resolve_prices
from orders.services import commit_cod_order, place_order, prepare_checkout

User = get_user_model()

GUEST_ADDRESS = {
    'first_name': 'Kamal',
    'last_name': 'Perera',
    'phone_number': '0771234567',
    'address_line': '12 Galle Road',
    'city': 'Colombo',
    'postal_code': '00300',
}

PAYHERE_SETTINGS = {
    'PAYHERE_MERCHANT_ID': '1211149',
    'PAYHERE_SECRET': 'test-secret',
    'PAYHERE_CURRENCY': 'LKR',
}


class CatalogMixin:
    """Shared catalog: a scalar-stock mug and a sized shirt."""

    def make_catalog(self):
        cache.clear()
        self.mug = Product.objects.create(
            sku='MUG-1', name='Mug', price=Decimal('1250.00'), stock=10
        )
        self.shirt = Product.objects.create(
            sku='TEE-1', name='Shirt', price=Decimal('2500.00'),
            discount_type=Product.DiscountType.PERCENTAGE, discount_value=Decimal('20')
        )
        self.shirt_m = ProductVariant.objects.create(product=self.shirt, size='M', stock=5)

    def place_guest_cod(self, items, **kwargs):
        return place_order(
            items, Order.PaymentMethod.COD,
            email='guest@example.com', address=GUEST_ADDRESS, **kwargs
        )


class PricingTestCase(CatalogMixin, TestCase):

    def setUp(self):
        self.make_catalog()

    def test_resolves_discounted_price_and_subtotal(self):
        cart = resolve_prices([
            {'product_id': self.mug.id, 'quantity': 2},
            {'product_id': self.shirt.id, 'quantity': 1, 'size': 'M', 'color': 'Blue'},
        ])

        self.assertEqual(cart.items[0].price, Decimal('1250.00'))
        self.assertEqual(cart.items[1].price, Decimal('2000.00'))
        self.assertEqual(cart.items[1].color, 'Blue')
        self.assertEqual(cart.subtotal, Decimal('4500.00'))

    def test_ignores_client_price(self):
        cart = resolve_prices([{'product_id': self.mug.id, 'quantity': 1, 'price': '1.00'}])
        self.assertEqual(cart.subtotal, Decimal('1250.00'))

    def test_unknown_product(self):
        with self.assertRaisesMessage(ProductUnavailableError, 'Product not found'):
            resolve_prices([{'product_id': 9999, 'quantity': 1}])

    def test_unavailable_product(self):
        self.mug.is_available = False
        self.mug.save()
        with self.assertRaisesMessage(ProductUnavailableError, 'Product Mug is unavailable'):
            resolve_prices([{'product_id': self.mug.id, 'quantity': 1}])

    def test_unknown_size(self):
        with self.assertRaisesMessage(ProductUnavailableError, 'Size XL not found for Shirt'):
            resolve_prices([{'product_id': self.shirt.id, 'quantity': 1, 'size': 'XL'}])

    def test_size_required_for_sized_product(self):
        with self.assertRaisesMessage(OrderValidationError, 'Please select a size for Shirt'):
            resolve_prices([{'product_id': self.shirt.id, 'quantity': 1}])

    def test_out_of_stock_reports_available_without_deducting(self):
        with self.assertRaises(OutOfStockError) as ctx:
            resolve_prices([{'product_id': self.mug.id, 'quantity': 11}])

        self.assertEqual(ctx.exception.available, 10)
        self.mug.refresh_from_db()
        self.assertEqual(self.mug.stock, 10)

    def test_invalid_lines(self):
        with self.assertRaises(OrderValidationError):
            resolve_prices([])
        with self.assertRaises(OrderValidationError):
            resolve_prices([{'product_id': self.mug.id, 'quantity': 0}])
        with self.assertRaises(OrderValidationError):
            resolve_prices([
                {'product_id': self.mug.id, 'quantity': 1},
                {'product_id': self.mug.id, 'quantity': 2},
            ])


class CodOrderTestCase(CatalogMixin, TestCase):

    def setUp(self):
        self.make_catalog()
        self.user = User.objects.create_user(username='nimal', email='nimal@example.com', password='pw')
        self.address = Address.objects.create(
            user=self.user, first_name='Nimal', phone_number='0711111111',
            address_line='5 Temple Road', city='Kandy'
        )
        Cart.objects.create(user=self.user, items=[{'product_id': self.mug.id, 'quantity': 2}])

    def test_guest_cod_order(self):
        """
        Given: Mug 10 units, Shirt M 5 units
        When: Guest orders 2 mugs and 1 shirt (M) cash on delivery
        Then: Order is PENDING, stock deducted, totals consistent
        """
        result = self.place_guest_cod([
            {'product_id': self.mug.id, 'quantity': 2},
            {'product_id': self.shirt.id, 'quantity': 1, 'size': 'M'},
        ])
        order = Order.objects.get(order_number=result.order_number)

        self.assertIsNone(result.payment_request)
        self.assertEqual(order.status, Order.Status.PENDING)
        self.assertEqual(order.stock_status, Order.StockStatus.DEDUCTED)
        self.assertIsNone(order.user)
        self.assertEqual(order.shipping_address['city'], 'Colombo')
        self.assertEqual(str(order.guest_token), result.guest_token)
        self.assertEqual(len(order.order_number), 8)

        # 2 * 1250 + 1 * 2000
        self.assertEqual(order.total_amount, Decimal('4500.00'))
        self.assertEqual(order.total_amount, order.subtotal - order.discount_amount)

        self.mug.refresh_from_db()
        self.shirt_m.refresh_from_db()
        self.assertEqual(self.mug.stock, 8)
        self.assertEqual(self.shirt_m.stock, 4)

    def test_coupon_applied_and_redeemed_once(self):
        Coupon.objects.create(code='SAVE10', type=Coupon.Type.PERCENTAGE, value=Decimal('10'))
        self.mug.price = Decimal('2500.00')
        self.mug.save()

        result = self.place_guest_cod([{'product_id': self.mug.id, 'quantity': 2}], coupon_code='save10')
        order = result.order

        self.assertEqual(order.discount_amount, Decimal('500.00'))
        self.assertEqual(order.total_amount, Decimal('4500.00'))
        self.assertEqual(order.coupon_code, 'SAVE10')
        self.assertEqual(Coupon.objects.get(code='SAVE10').used_count, 1)
        self.assertTrue(CouponRedemption.objects.filter(order=order).exists())

    def test_total_never_negative(self):
        Coupon.objects.create(code='BIG', type=Coupon.Type.FIXED, value=Decimal('99999.00'))

        order = self.place_guest_cod([{'product_id': self.mug.id, 'quantity': 1}], coupon_code='BIG').order

        self.assertEqual(order.total_amount, Decimal('0.00'))
        self.assertEqual(order.discount_amount, Decimal('1250.00'))

    def test_logged_in_order_uses_saved_address_and_clears_cart(self):
        result = place_order(
            [{'product_id': self.mug.id, 'quantity': 1}], Order.PaymentMethod.COD,
            user=self.user, address_id=self.address.id
        )

        self.assertEqual(result.order.user, self.user)
        self.assertEqual(result.order.email, 'nimal@example.com')
        self.assertEqual(result.order.shipping_address['city'], 'Kandy')
        self.assertEqual(Cart.objects.get(user=self.user).items, [])

    def test_foreign_address_rejected(self):
        other = User.objects.create_user(username='other', email='o@example.com', password='pw')
        with self.assertRaisesMessage(OrderValidationError, 'Invalid Address ID'):
            place_order(
                [{'product_id': self.mug.id, 'quantity': 1}], Order.PaymentMethod.COD,
                user=other, address_id=self.address.id
            )

    def test_guest_needs_email(self):
        with self.assertRaises(OrderValidationError):
            place_order([{'product_id': self.mug.id, 'quantity': 1}], address=GUEST_ADDRESS)

    def test_failed_coupon_writes_nothing(self):
        with self.assertRaises(CouponRejectedError):
            self.place_guest_cod([{'product_id': self.mug.id, 'quantity': 1}], coupon_code='NOPE')

        self.assertEqual(Order.objects.count(), 0)
        self.mug.refresh_from_db()
        self.assertEqual(self.mug.stock, 10)

    def test_second_order_for_last_units_fails(self):
        """
        Given: Mug has 2 units
        When: Two COD checkouts for 2 mugs are both priced, then committed in turn
        Then: The first commits, the second raises and stock ends at 0
        """
        self.mug.stock = 2
        self.mug.save()
        items = [{'product_id': self.mug.id, 'quantity': 2}]
        first = prepare_checkout(items, email='a@example.com', address=GUEST_ADDRESS)
        second = prepare_checkout(items, email='b@example.com', address=GUEST_ADDRESS)

        commit_cod_order(first)
        with self.assertRaises(InsufficientStockError):
            commit_cod_order(second)

        self.mug.refresh_from_db()
        self.assertEqual(self.mug.stock, 0)
        self.assertEqual(Order.objects.count(), 1)

    def test_coupon_cap_race_rolls_back_stock(self):
        Coupon.objects.create(code='ONCE', type=Coupon.Type.FIXED, value=Decimal('100'), max_uses=1)
        items = [{'product_id': self.mug.id, 'quantity': 1}]
        first = prepare_checkout(items, email='a@example.com', address=GUEST_ADDRESS, coupon_code='ONCE')
        second = prepare_checkout(items, email='b@example.com', address=GUEST_ADDRESS, coupon_code='ONCE')

        commit_cod_order(first)
        with self.assertRaisesMessage(CouponRejectedError, 'Coupon usage limit reached'):
            commit_cod_order(second)

        self.mug.refresh_from_db()
        self.assertEqual(self.mug.stock, 9)

    @patch('notifications.tasks.send_email_task.delay')
    @override_settings(SHOP_EMAIL='shop@example.com')
    def test_notifications_queued_after_commit(self, mock_delay):
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            result = self.place_guest_cod([{'product_id': self.mug.id, 'quantity': 1}])

        self.assertEqual(len(callbacks), 1)
        logs = EmailLog.objects.filter(order_number=result.order_number)
        self.assertEqual(
            set(logs.values_list('category', flat=True)),
            {EmailLog.Category.CONFIRMATION, EmailLog.Category.ADMIN_ALERT}
        )
        self.assertEqual(mock_delay.call_count, 2)

    @patch('notifications.tasks.send_email_task.delay', side_effect=ConnectionError('broker down'))
    def test_notification_failure_does_not_fail_order(self, mock_delay):
        with self.captureOnCommitCallbacks(execute=True):
            result = self.place_guest_cod([{'product_id': self.mug.id, 'quantity': 1}])

        self.assertTrue(Order.objects.filter(order_number=result.order_number).exists())


@override_settings(**PAYHERE_SETTINGS)
class OnlineOrderTestCase(CatalogMixin, TestCase):

    def setUp(self):
        self.make_catalog()
        Coupon.objects.create(code='SAVE10', type=Coupon.Type.PERCENTAGE, value=Decimal('10'))

    def test_online_order_is_only_pending(self):
        result = place_order(
            [{'product_id': self.mug.id, 'quantity': 4}], Order.PaymentMethod.PAYHERE,
            email='guest@example.com', address=GUEST_ADDRESS, coupon_code='SAVE10'
        )

        self.assertIsNone(result.order)
        self.assertFalse(Order.objects.exists())
        self.mug.refresh_from_db()
        self.assertEqual(self.mug.stock, 10)
        self.assertEqual(Coupon.objects.get(code='SAVE10').used_count, 0)

        pending = PendingOrderStore().get(result.order_number)
        self.assertIsNotNone(pending)
        self.assertEqual(pending.total_amount, Decimal('4500.00'))
        self.assertEqual(pending.items[0].quantity, 4)

        params = result.payment_request
        self.assertEqual(params['order_id'], result.order_number)
        self.assertEqual(params['amount'], '4500.00')
        self.assertEqual(params['currency'], 'LKR')
        self.assertEqual(len(params['hash']), 32)
        self.assertTrue(params['notify_url'].endswith('/api/payments/payhere/notify/'))

    @override_settings(PAYHERE_SECRET='')
    def test_missing_credentials(self):
        with self.assertRaises(PaymentConfigurationError):
            place_order(
                [{'product_id': self.mug.id, 'quantity': 1}], Order.PaymentMethod.PAYHERE,
                email='guest@example.com', address=GUEST_ADDRESS
            )
        self.assertFalse(Order.objects.exists())


class FulfillmentTestCase(CatalogMixin, TestCase):

    def setUp(self):
        self.make_catalog()
        self.order = self.place_guest_cod([
            {'product_id': self.mug.id, 'quantity': 3},
            {'product_id': self.shirt.id, 'quantity': 2, 'size': 'M'},
        ]).order
        self.mug.refresh_from_db()
        self.assertEqual(self.mug.stock, 7)

    def assert_stock(self, mug, shirt_m):
        self.mug.refresh_from_db()
        self.shirt_m.refresh_from_db()
        self.assertEqual(self.mug.stock, mug)
        self.assertEqual(self.shirt_m.stock, shirt_m)

    def test_happy_path(self):
        transition_order(self.order.id, 'confirmed')
        transition_order(self.order.id, Order.Status.PROCESSING)
        transition_order(self.order.id, Order.Status.SHIPPED, tracking_number='TRK-1')
        order = transition_order(self.order.id, Order.Status.DELIVERED)

        self.assertEqual(order.status, Order.Status.DELIVERED)
        self.assertEqual(order.tracking_number, 'TRK-1')
        self.assert_stock(7, 3)

    def test_shipping_requires_tracking_number(self):
        transition_order(self.order.id, Order.Status.CONFIRMED)
        transition_order(self.order.id, Order.Status.PROCESSING)

        with self.assertRaisesMessage(ValidationError, 'Tracking number required'):
            transition_order(self.order.id, Order.Status.SHIPPED, tracking_number='  ')

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PROCESSING)

    def test_cancel_restores_stock_once(self):
        transition_order(self.order.id, Order.Status.CANCELLED)
        self.assert_stock(10, 5)

        order = transition_order(self.order.id, Order.Status.CANCELLED)
        self.assertEqual(order.stock_status, Order.StockStatus.RESTORED)
        self.assert_stock(10, 5)

    def test_shipped_cannot_be_cancelled(self):
        transition_order(self.order.id, Order.Status.CONFIRMED)
        transition_order(self.order.id, Order.Status.PROCESSING)
        transition_order(self.order.id, Order.Status.SHIPPED, tracking_number='TRK-1')

        with self.assertRaises(InvalidStatusTransition):
            transition_order(self.order.id, Order.Status.CANCELLED)
        self.assert_stock(7, 3)

    def test_return_restores_stock(self):
        transition_order(self.order.id, Order.Status.CONFIRMED)
        transition_order(self.order.id, Order.Status.PROCESSING)
        transition_order(self.order.id, Order.Status.SHIPPED, tracking_number='TRK-1')
        transition_order(self.order.id, Order.Status.RETURNED)

        self.assert_stock(10, 5)

    def test_cod_order_cannot_be_refunded(self):
        transition_order(self.order.id, Order.Status.CONFIRMED)
        with self.assertRaisesMessage(InvalidStatusTransition, 'only online payments can be refunded'):
            transition_order(self.order.id, Order.Status.REFUNDED)

    def test_online_refund_restores_stock(self):
        Order.objects.filter(pk=self.order.pk).update(
            payment_method=Order.PaymentMethod.PAYHERE, status=Order.Status.CONFIRMED
        )
        transition_order(self.order.id, Order.Status.REFUNDED)
        self.assert_stock(10, 5)

    def test_refund_after_cancel_rejected(self):
        Order.objects.filter(pk=self.order.pk).update(
            payment_method=Order.PaymentMethod.PAYHERE, status=Order.Status.CONFIRMED
        )
        transition_order(self.order.id, Order.Status.CANCELLED)

        with self.assertRaises(InvalidStatusTransition):
            transition_order(self.order.id, Order.Status.REFUNDED)
        self.assert_stock(10, 5)

    def test_cancel_of_unreconciled_order_restores_nothing(self):
        Order.objects.filter(pk=self.order.pk).update(stock_status=Order.StockStatus.NOT_DEDUCTED)

        order = transition_order(self.order.id, Order.Status.CANCELLED)

        self.assertEqual(order.stock_status, Order.StockStatus.NOT_DEDUCTED)
        self.assert_stock(7, 3)

    def test_unknown_status(self):
        with self.assertRaises(InvalidStatusTransition):
            transition_order(self.order.id, 'LOST')

    def test_customer_cancel_only_while_pending(self):
        cancel_order_by_customer(self.order)
        self.assert_stock(10, 5)

        other = self.place_guest_cod([{'product_id': self.mug.id, 'quantity': 1}]).order
        transition_order(other.id, Order.Status.CONFIRMED)
        with self.assertRaisesMessage(InvalidStatusTransition, 'can no longer be cancelled'):
            cancel_order_by_customer(other)

    @patch('notifications.tasks.send_email_task.delay')
    def test_status_email_after_commit(self, mock_delay):
        transition_order(self.order.id, Order.Status.CONFIRMED)
        with self.captureOnCommitCallbacks(execute=True):
            transition_order(self.order.id, Order.Status.PROCESSING)

        log = EmailLog.objects.get(order_number=self.order.order_number)
        self.assertEqual(log.category, EmailLog.Category.PROCESSING)
        self.assertEqual(log.recipient, 'guest@example.com')
        mock_delay.assert_called_once_with(log.id)

    @patch('notifications.tasks.send_email_task.delay')
    def test_no_op_transition_sends_nothing(self, mock_delay):
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            transition_order(self.order.id, Order.Status.PENDING)

        self.assertEqual(callbacks, [])
        mock_delay.assert_not_called()


@override_settings(RATE_LIMIT_ENABLED=False, **PAYHERE_SETTINGS)
class OrderAPITestCase(CatalogMixin, TestCase):

    def setUp(self):
        self.make_catalog()
        self.client = APIClient()
        self.user = User.objects.create_user(username='nimal', email='nimal@example.com', password='pw')
        self.staff = User.objects.create_user(username='staff', email='s@example.com', password='pw', is_staff=True)
        self.address = Address.objects.create(
            user=self.user, first_name='Nimal', phone_number='0711111111',
            address_line='5 Temple Road', city='Kandy'
        )

    def guest_payload(self, **overrides):
        payload = {
            'items': [{'product_id': self.mug.id, 'quantity': 2}],
            'payment_method': 'COD',
            'email': 'guest@example.com',
            'address': GUEST_ADDRESS,
        }
        payload.update(overrides)
        return payload

    def test_place_cod_order(self):
        response = self.client.post('/api/orders/', self.guest_payload(), format='json')

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['order']['status'], 'PENDING')
        self.assertEqual(response.data['order']['total_amount'], '2500.00')
        self.assertIn('guest_token', response.data)

    def test_place_online_order(self):
        response = self.client.post('/api/orders/', self.guest_payload(payment_method='PAYHERE'), format='json')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['payhere_params']['amount'], '2500.00')
        self.assertFalse(Order.objects.exists())

    def test_out_of_stock_is_actionable(self):
        payload = self.guest_payload(items=[{'product_id': self.mug.id, 'quantity': 50}])
        response = self.client.post('/api/orders/', payload, format='json')

        self.assertEqual(response.status_code, 400)
        self.assertIn('Only 10 left', response.data['detail'])

    def test_invalid_payload(self):
        response = self.client.post('/api/orders/', {'items': []}, format='json')
        self.assertEqual(response.status_code, 400)

    def test_guest_tracking_and_cancel(self):
        created = self.client.post('/api/orders/', self.guest_payload(), format='json')
        token = created.data['guest_token']

        response = self.client.get(f'/api/orders/track/{token}/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['order_number'], created.data['order_number'])

        response = self.client.patch(f'/api/orders/track/{token}/cancel/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['status'], 'CANCELLED')

        response = self.client.get(f'/api/orders/track/{token}/')
        self.assertEqual(response.status_code, 410)

    def test_my_orders_are_private(self):
        self.client.force_authenticate(self.user)
        created = self.client.post(
            '/api/orders/',
            {'items': [{'product_id': self.mug.id, 'quantity': 1}], 'address_id': self.address.id},
            format='json'
        )
        self.assertEqual(created.status_code, 201)
        order_id = created.data['order']['id']

        response = self.client.get('/api/orders/mine/')
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(self.client.get(f'/api/orders/mine/{order_id}/').status_code, 200)

        intruder = User.objects.create_user(username='x', email='x@example.com', password='pw')
        self.client.force_authenticate(intruder)
        self.assertEqual(self.client.get(f'/api/orders/mine/{order_id}/').status_code, 404)
        self.assertEqual(self.client.patch(f'/api/orders/mine/{order_id}/cancel/').status_code, 404)

    def test_admin_status_update(self):
        order = self.place_guest_cod([{'product_id': self.mug.id, 'quantity': 1}]).order
        url = f'/api/admin/orders/{order.id}/status/'

        self.client.force_authenticate(self.user)
        self.assertEqual(self.client.patch(url, {'status': 'CONFIRMED'}, format='json').status_code, 403)

        self.client.force_authenticate(self.staff)
        response = self.client.patch(url, {'status': 'confirmed'}, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['status'], 'CONFIRMED')

        response = self.client.patch(url, {'status': 'DELIVERED'}, format='json')
        self.assertEqual(response.status_code, 400)

        response = self.client.patch('/api/admin/orders/99999/status/', {'status': 'CONFIRMED'}, format='json')
        self.assertEqual(response.status_code, 404)

    def test_admin_list_filter_and_refund(self):
        cod = self.place_guest_cod([{'product_id': self.mug.id, 'quantity': 1}]).order
        online = self.place_guest_cod([{'product_id': self.mug.id, 'quantity': 1}]).order
        Order.objects.filter(pk=online.pk).update(
            payment_method=Order.PaymentMethod.PAYHERE, status=Order.Status.CONFIRMED
        )
        self.client.force_authenticate(self.staff)

        response = self.client.get('/api/admin/orders/', {'status': 'confirmed'})
        self.assertEqual([row['id'] for row in response.data['results']], [online.id])

        self.assertEqual(self.client.post(f'/api/admin/orders/{cod.id}/refund/').status_code, 400)
        response = self.client.post(f'/api/admin/orders/{online.id}/refund/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['stock_status'], 'RESTORED')


@skipUnless(connection.vendor == 'postgresql', 'Needs a database with concurrent writers')
@patch('notifications.tasks.send_email_task.delay')
class ConcurrentOrderTestCase(CatalogMixin, TransactionTestCase):
    """
    Two real transactions race for the same stock.

    The conditional stock UPDATE only meets a competing writer on a server
    database (PostgreSQL). SQLite takes a database-wide write lock, so the
    second thread fails with "database is locked" instead of racing; there
    the same outcome is covered sequentially by
    test_second_order_for_last_units_fails.
    """

    def setUp(self):
        self.make_catalog()
        self.mug.stock = 10
        self.mug.save()

    def test_concurrent_orders_no_overselling(self, mock_delay):
        """
        Given: 10 units in stock
        When: Two concurrent COD orders of 8 units each
        Then: Exactly one succeeds and stock ends at 2
        """
        results = {}

        def place(key):
            try:
                self.place_guest_cod([{'product_id': self.mug.id, 'quantity': 8}])
                results[key] = 'placed'
            except InsufficientStockError:
                results[key] = 'rejected'
            finally:
                connections.close_all()

        threads = [threading.Thread(target=place, args=(key,)) for key in ('first', 'second')]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.mug.refresh_from_db()
        self.assertEqual(sorted(results.values()), ['placed', 'rejected'])
        self.assertEqual(self.mug.stock, 2)
        self.assertEqual(Order.objects.count(), 1)
