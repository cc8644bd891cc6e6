"""
Tests for PayHere signing and webhook reconciliation.

Test Cases:
1. Checkout hash and notification signature match PayHere's scheme
2. Tampered or foreign notifications change nothing
3. Success promotes the pending order exactly once across redeliveries
4. Failure and pending status codes
5. Paid order with exhausted stock or a deleted coupon is created flagged for review
6. Notify endpoint status codes
"""
from decimal import Decimal
from unittest.mock import patch

from django.core.cache import cache
from django.test import TestCase, override_settings
from rest_framework.test import APIClient

from core.exceptions import InvalidSignatureError, PaymentMismatchError
from core.locks import IdempotencyLock
from coupons.models import Coupon, CouponRedemption
from inventory.models import Product
from notifications.models import EmailLog
from orders.models import Order
from orders.pending import PendingOrderStore
from orders.services import place_order
from payments import payhere
from payments.services import WebhookOutcome, lock_key, reconcile_payhere_notification

MERCHANT_ID = '1211149'
SECRET = 'test-secret'

GUEST_ADDRESS = {
    'first_name': 'Kamal',
    'phone_number': '0771234567',
    'address_line': '12 Galle Road',
    'city': 'Colombo',
}


def signed_notification(order_id, amount, status_code=payhere.STATUS_SUCCESS, currency='LKR',
                        merchant_id=MERCHANT_ID, payment_id='320025071278'):
    return {
        'merchant_id': merchant_id,
        'order_id': order_id,
        'payment_id': payment_id,
        'payhere_amount': amount,
        'payhere_currency': currency,
        'status_code': status_code,
        'md5sig': payhere.notification_signature(merchant_id, order_id, amount, currency, status_code, SECRET),
    }


class PayHereSigningTestCase(TestCase):

    def test_checkout_hash(self):
        # UPPER(MD5(merchant + order + amount + currency + UPPER(MD5(secret))))
        inner = payhere._md5_upper(SECRET)
        expected = payhere._md5_upper(f"{MERCHANT_ID}ORD11000.00LKR{inner}")

        self.assertEqual(payhere.checkout_hash(MERCHANT_ID, 'ORD1', '1000.00', 'LKR', SECRET), expected)
        self.assertEqual(expected, expected.upper())

    def test_amount_formatting(self):
        self.assertEqual(payhere.format_amount(Decimal('1000')), '1000.00')
        self.assertEqual(payhere.format_amount(Decimal('12345.678')), '12345.68')

    @override_settings(PAYHERE_MERCHANT_ID=MERCHANT_ID, PAYHERE_SECRET=SECRET)
    def test_verify_accepts_lower_case_signature(self):
        payload = signed_notification('10000001', '100.00')
        payload['md5sig'] = payload['md5sig'].lower()
        payhere.verify_notification(payload)

    @override_settings(PAYHERE_MERCHANT_ID=MERCHANT_ID, PAYHERE_SECRET=SECRET)
    def test_verify_rejects_foreign_merchant(self):
        payload = signed_notification('10000001', '100.00', merchant_id='9999999')
        with self.assertRaises(InvalidSignatureError):
            payhere.verify_notification(payload)


@override_settings(PAYHERE_MERCHANT_ID=MERCHANT_ID, PAYHERE_SECRET=SECRET, PAYHERE_CURRENCY='LKR')
@patch('notifications.tasks.send_email_task.delay')
class WebhookReconciliationTestCase(TestCase):

    def setUp(self):
        cache.clear()
        self.mug = Product.objects.create(sku='MUG-1', name='Mug', price=Decimal('1250.00'), stock=5)
        Coupon.objects.create(code='SAVE10', type=Coupon.Type.PERCENTAGE, value=Decimal('10'))
        result = place_order(
            [{'product_id': self.mug.id, 'quantity': 2}], Order.PaymentMethod.PAYHERE,
            email='guest@example.com', address=GUEST_ADDRESS, coupon_code='SAVE10'
        )
        self.order_number = result.order_number
        self.guest_token = result.guest_token
        # 2 * 1250 - 10%
        self.amount = '2250.00'

    def assert_mug_stock(self, expected):
        self.mug.refresh_from_db()
        self.assertEqual(self.mug.stock, expected)

    def test_success_promotes_pending_order(self, mock_delay):
        with self.captureOnCommitCallbacks(execute=True):
            outcome = reconcile_payhere_notification(signed_notification(self.order_number, self.amount))

        self.assertEqual(outcome, WebhookOutcome.PROMOTED)
        order = Order.objects.get(order_number=self.order_number)
        self.assertEqual(order.status, Order.Status.CONFIRMED)
        self.assertEqual(order.payment_method, Order.PaymentMethod.PAYHERE)
        self.assertEqual(order.tracking_number, '320025071278')
        self.assertEqual(order.total_amount, Decimal('2250.00'))
        self.assertEqual(str(order.guest_token), self.guest_token)
        self.assertFalse(order.requires_review)
        self.assert_mug_stock(3)

        self.assertEqual(Coupon.objects.get(code='SAVE10').used_count, 1)
        self.assertIsNone(PendingOrderStore().get(self.order_number))
        self.assertTrue(
            EmailLog.objects.filter(order_number=self.order_number, category=EmailLog.Category.CONFIRMATION).exists()
        )
        # Lock released
        self.assertIsNone(cache.get(lock_key(self.order_number)))

    def test_redelivery_creates_one_order(self, mock_delay):
        payload = signed_notification(self.order_number, self.amount)
        outcomes = [reconcile_payhere_notification(payload) for _ in range(3)]

        self.assertEqual(outcomes, [WebhookOutcome.PROMOTED, WebhookOutcome.DUPLICATE, WebhookOutcome.DUPLICATE])
        self.assertEqual(Order.objects.filter(order_number=self.order_number).count(), 1)
        self.assertEqual(CouponRedemption.objects.count(), 1)
        self.assert_mug_stock(3)

    def test_concurrent_delivery_sees_lock(self, mock_delay):
        lock = IdempotencyLock(lock_key(self.order_number), ttl=30)
        self.assertTrue(lock.acquire())
        try:
            outcome = reconcile_payhere_notification(signed_notification(self.order_number, self.amount))
        finally:
            lock.release()

        self.assertEqual(outcome, WebhookOutcome.DUPLICATE)
        self.assertFalse(Order.objects.exists())
        self.assertIsNotNone(PendingOrderStore().get(self.order_number))

    def test_tampered_signature_changes_nothing(self, mock_delay):
        payload = signed_notification(self.order_number, self.amount)
        payload['payhere_amount'] = '1.00'

        with self.assertRaises(InvalidSignatureError):
            reconcile_payhere_notification(payload)

        self.assertFalse(Order.objects.exists())
        self.assertIsNotNone(PendingOrderStore().get(self.order_number))
        self.assert_mug_stock(5)

    def test_failed_payment_discards_pending(self, mock_delay):
        outcome = reconcile_payhere_notification(
            signed_notification(self.order_number, self.amount, status_code=payhere.STATUS_FAILED)
        )

        self.assertEqual(outcome, WebhookOutcome.DISCARDED)
        self.assertFalse(Order.objects.exists())
        self.assertIsNone(PendingOrderStore().get(self.order_number))
        self.assertEqual(Coupon.objects.get(code='SAVE10').used_count, 0)
        self.assert_mug_stock(5)

    def test_provider_pending_keeps_entry(self, mock_delay):
        outcome = reconcile_payhere_notification(
            signed_notification(self.order_number, self.amount, status_code=payhere.STATUS_PENDING)
        )

        self.assertEqual(outcome, WebhookOutcome.AWAITING)
        self.assertIsNotNone(PendingOrderStore().get(self.order_number))

    def test_amount_mismatch_keeps_pending(self, mock_delay):
        with self.assertRaises(PaymentMismatchError):
            reconcile_payhere_notification(signed_notification(self.order_number, '100.00'))

        self.assertFalse(Order.objects.exists())
        self.assertIsNotNone(PendingOrderStore().get(self.order_number))

    def test_unknown_order(self, mock_delay):
        outcome = reconcile_payhere_notification(signed_notification('99999999', self.amount))
        self.assertEqual(outcome, WebhookOutcome.UNKNOWN_ORDER)

    def test_stock_gone_before_payment_flags_order(self, mock_delay):
        """
        Given: Pending order for 2 mugs, then the last mugs sell elsewhere
        When: The payment success notification arrives
        Then: The order exists, CONFIRMED, not deducted, flagged for review
        """
        Product.objects.filter(pk=self.mug.pk).update(stock=1)

        with self.assertLogs('payments.services', level='ERROR'):
            outcome = reconcile_payhere_notification(signed_notification(self.order_number, self.amount))

        self.assertEqual(outcome, WebhookOutcome.PROMOTED_FOR_REVIEW)
        order = Order.objects.get(order_number=self.order_number)
        self.assertEqual(order.status, Order.Status.CONFIRMED)
        self.assertEqual(order.stock_status, Order.StockStatus.NOT_DEDUCTED)
        self.assertTrue(order.requires_review)
        self.assertIn('Only 1 left', order.review_note)
        self.assert_mug_stock(1)
        self.assertEqual(CouponRedemption.objects.filter(order=order).count(), 1)
        self.assertIsNone(PendingOrderStore().get(self.order_number))

    def test_coupon_deleted_before_payment_still_promotes(self, mock_delay):
        """
        Given: Pending order with SAVE10, then the coupon is deleted
        When: The payment success notification arrives
        Then: The order exists with its paid discount, flagged for review
        """
        Coupon.objects.filter(code='SAVE10').delete()

        with self.assertLogs('coupons.services', level='ERROR'):
            outcome = reconcile_payhere_notification(signed_notification(self.order_number, self.amount))

        self.assertEqual(outcome, WebhookOutcome.PROMOTED_FOR_REVIEW)
        order = Order.objects.get(order_number=self.order_number)
        self.assertEqual(order.status, Order.Status.CONFIRMED)
        self.assertEqual(order.total_amount, Decimal('2250.00'))
        self.assertEqual(order.coupon_code, 'SAVE10')
        self.assertTrue(order.requires_review)
        self.assertIn('SAVE10', order.review_note)
        self.assertFalse(CouponRedemption.objects.exists())
        self.assert_mug_stock(3)
        self.assertIsNone(PendingOrderStore().get(self.order_number))


@override_settings(PAYHERE_MERCHANT_ID=MERCHANT_ID, PAYHERE_SECRET=SECRET, PAYHERE_CURRENCY='LKR')
@patch('notifications.tasks.send_email_task.delay')
class PayHereNotifyViewTestCase(TestCase):
    url = '/api/payments/payhere/notify/'

    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.mug = Product.objects.create(sku='MUG-1', name='Mug', price=Decimal('1000.00'), stock=5)
        self.order_number = place_order(
            [{'product_id': self.mug.id, 'quantity': 1}], Order.PaymentMethod.PAYHERE,
            email='guest@example.com', address=GUEST_ADDRESS
        ).order_number

    def test_success_then_duplicate(self, mock_delay):
        payload = signed_notification(self.order_number, '1000.00')

        response = self.client.post(self.url, payload)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['outcome'], 'promoted')

        response = self.client.post(self.url, payload)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['outcome'], 'duplicate')

    def test_bad_signature_is_400(self, mock_delay):
        payload = signed_notification(self.order_number, '1000.00')
        payload['md5sig'] = '0' * 32

        with self.assertLogs('payments.views', level='WARNING'):
            response = self.client.post(self.url, payload)
        self.assertEqual(response.status_code, 400)
        self.assertFalse(Order.objects.exists())

    def test_missing_fields_is_400(self, mock_delay):
        response = self.client.post(self.url, {'order_id': self.order_number})
        self.assertEqual(response.status_code, 400)

    def test_unknown_order_is_404(self, mock_delay):
        response = self.client.post(self.url, signed_notification('12345678', '1000.00'))
        self.assertEqual(response.status_code, 404)

    def test_cancelled_payment_is_200(self, mock_delay):
        payload = signed_notification(self.order_number, '1000.00', status_code=payhere.STATUS_CANCELLED)
        response = self.client.post(self.url, payload)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['outcome'], 'discarded')

    @override_settings(PAYHERE_SECRET='')
    def test_unconfigured_gateway_is_500(self, mock_delay):
        response = self.client.post(self.url, signed_notification(self.order_number, '1000.00'))
        self.assertEqual(response.status_code, 500)

    def test_deleted_coupon_does_not_fail_webhook(self, mock_delay):
        Coupon.objects.create(code='WELCOME', type=Coupon.Type.FIXED, value=Decimal('100.00'))
        order_number = place_order(
            [{'product_id': self.mug.id, 'quantity': 1}], Order.PaymentMethod.PAYHERE,
            email='guest@example.com', address=GUEST_ADDRESS, coupon_code='WELCOME'
        ).order_number
        Coupon.objects.filter(code='WELCOME').delete()
        payload = signed_notification(order_number, '900.00')

        response = self.client.post(self.url, payload)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['outcome'], 'promoted_for_review')

        response = self.client.post(self.url, payload)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['outcome'], 'duplicate')
        self.assertEqual(Order.objects.filter(order_number=order_number).count(), 1)
