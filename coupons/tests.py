"""
Tests for coupon rules and redemption.

Test Cases:
1. Percentage coupon on a 5000 subtotal gives 500 off
2. Each rule rejects with its own message, in order
3. Redemption counts exactly one use per committed order
4. Cap re-checked under lock at commit time
5. Deleted coupon: COD rejected, paid order skips redemption; redeemed coupons are protected
6. Preview endpoint never records usage
"""
from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import ProtectedError
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework.test import APIClient

from core.exceptions import CouponRejectedError, ValidationError
from coupons.models import Coupon, CouponRedemption
from coupons.services import compute_discount, record_redemption, validate_coupon
from orders.models import Order

User = get_user_model()


def make_order(order_number='10000001', user=None):
    return Order.objects.create(
        order_number=order_number,
        user=user,
        email='buyer@example.com',
        shipping_address={'first_name': 'Nimal', 'city': 'Colombo'},
        items=[],
        total_amount=Decimal('4500.00'),
        discount_amount=Decimal('500.00'),
        coupon_code='SAVE10',
    )


class CouponValidationTestCase(TestCase):

    def setUp(self):
        self.user = User.objects.create_user(username='nimal', email='nimal@example.com', password='pw')
        self.save10 = Coupon.objects.create(code='save10', type=Coupon.Type.PERCENTAGE, value=Decimal('10'))

    def test_code_is_stored_upper_case(self):
        self.assertEqual(self.save10.code, 'SAVE10')

    def test_save10_on_5000(self):
        quote = validate_coupon('save10', None, Decimal('5000.00'))

        self.assertEqual(quote.code, 'SAVE10')
        self.assertEqual(quote.discount, Decimal('500.00'))
        self.assertEqual(Decimal('5000.00') - quote.discount, Decimal('4500.00'))

    def test_percentage_capped_by_max_discount(self):
        self.save10.max_discount = Decimal('300.00')
        self.assertEqual(compute_discount(self.save10, Decimal('5000.00')), Decimal('300.00'))

    def test_fixed_discount_never_exceeds_subtotal(self):
        coupon = Coupon(code='FLAT', type=Coupon.Type.FIXED, value=Decimal('1000.00'))
        self.assertEqual(compute_discount(coupon, Decimal('400.00')), Decimal('400.00'))

    def test_blank_code(self):
        with self.assertRaises(ValidationError):
            validate_coupon('  ', None, Decimal('100.00'))

    def test_unknown_code(self):
        with self.assertRaisesMessage(CouponRejectedError, 'Invalid coupon code'):
            validate_coupon('NOPE', None, Decimal('100.00'))

    def test_disabled(self):
        self.save10.is_active = False
        self.save10.save()
        with self.assertRaisesMessage(CouponRejectedError, 'Coupon is disabled'):
            validate_coupon('SAVE10', None, Decimal('100.00'))

    def test_expired(self):
        self.save10.expires_at = timezone.now() - timedelta(days=1)
        self.save10.save()
        with self.assertRaisesMessage(CouponRejectedError, 'Coupon has expired'):
            validate_coupon('SAVE10', None, Decimal('100.00'))

    def test_usage_limit_reached(self):
        self.save10.max_uses = 2
        self.save10.used_count = 2
        self.save10.save()
        with self.assertRaisesMessage(CouponRejectedError, 'Coupon usage limit reached'):
            validate_coupon('SAVE10', None, Decimal('100.00'))

    def test_minimum_order(self):
        self.save10.min_order_amount = Decimal('3000.00')
        self.save10.save()
        with self.assertRaisesMessage(CouponRejectedError, 'Minimum order of 3000.00 required'):
            validate_coupon('SAVE10', None, Decimal('2999.99'))

    def test_expiry_checked_before_minimum(self):
        self.save10.expires_at = timezone.now() - timedelta(days=1)
        self.save10.min_order_amount = Decimal('3000.00')
        self.save10.save()
        with self.assertRaisesMessage(CouponRejectedError, 'Coupon has expired'):
            validate_coupon('SAVE10', None, Decimal('10.00'))

    def test_per_user_limit(self):
        self.save10.limit_per_user = 1
        self.save10.save()
        CouponRedemption.objects.create(coupon=self.save10, user=self.user, order=make_order(user=self.user))

        with self.assertRaisesMessage(CouponRejectedError, 'You have already used this coupon'):
            validate_coupon('SAVE10', self.user.id, Decimal('100.00'))

    def test_guest_needs_login_for_limited_coupon(self):
        self.save10.limit_per_user = 1
        self.save10.save()
        with self.assertRaisesMessage(CouponRejectedError, 'Login required to use this coupon'):
            validate_coupon('SAVE10', None, Decimal('100.00'))

    def test_guest_needs_login_for_private_coupon(self):
        self.save10.is_public = False
        self.save10.save()
        with self.assertRaisesMessage(CouponRejectedError, 'Login required to use this coupon'):
            validate_coupon('SAVE10', None, Decimal('100.00'))
        self.assertEqual(validate_coupon('SAVE10', self.user.id, Decimal('100.00')).discount, Decimal('10.00'))


class CouponRedemptionTestCase(TestCase):

    def setUp(self):
        self.coupon = Coupon.objects.create(code='SAVE10', type=Coupon.Type.PERCENTAGE, value=Decimal('10'), max_uses=1)

    def test_redemption_increments_once(self):
        order = make_order()
        with transaction.atomic():
            record_redemption('save10', None, order)

        self.coupon.refresh_from_db()
        self.assertEqual(self.coupon.used_count, 1)
        self.assertEqual(CouponRedemption.objects.filter(order=order).count(), 1)

    def test_cap_enforced_at_commit(self):
        with transaction.atomic():
            record_redemption('SAVE10', None, make_order('10000001'))

        with self.assertRaisesMessage(CouponRejectedError, 'Coupon usage limit reached'):
            with transaction.atomic():
                record_redemption('SAVE10', None, make_order('10000002'))

        self.coupon.refresh_from_db()
        self.assertEqual(self.coupon.used_count, 1)

    def test_paid_order_may_exceed_cap(self):
        with transaction.atomic():
            record_redemption('SAVE10', None, make_order('10000001'))
        with transaction.atomic():
            record_redemption('SAVE10', None, make_order('10000002'), enforce_cap=False)

        self.coupon.refresh_from_db()
        self.assertEqual(self.coupon.used_count, 2)

    def test_missing_coupon_rejects_cod_order(self):
        self.coupon.delete()
        with self.assertRaisesMessage(CouponRejectedError, 'Invalid coupon code'):
            with transaction.atomic():
                record_redemption('SAVE10', None, make_order())

    def test_missing_coupon_skipped_for_paid_order(self):
        self.coupon.delete()
        with self.assertLogs('coupons.services', level='ERROR'):
            with transaction.atomic():
                redemption = record_redemption('SAVE10', None, make_order(), enforce_cap=False)

        self.assertIsNone(redemption)
        self.assertFalse(CouponRedemption.objects.exists())

    def test_redeemed_coupon_cannot_be_deleted(self):
        with transaction.atomic():
            record_redemption('SAVE10', None, make_order())

        with self.assertRaises(ProtectedError):
            self.coupon.delete()
        self.assertTrue(Coupon.objects.filter(code='SAVE10').exists())


@override_settings(RATE_LIMIT_ENABLED=False)
class CouponValidateViewTestCase(TestCase):

    def setUp(self):
        self.client = APIClient()
        self.coupon = Coupon.objects.create(code='SAVE10', type=Coupon.Type.PERCENTAGE, value=Decimal('10'))

    def test_preview(self):
        response = self.client.post('/api/coupons/validate/', {'code': 'save10', 'cart_total': '5000.00'}, format='json')

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['discount'], '500.00')
        self.assertEqual(response.data['final_total'], '4500.00')

        self.coupon.refresh_from_db()
        self.assertEqual(self.coupon.used_count, 0)

    def test_rejection_message(self):
        response = self.client.post('/api/coupons/validate/', {'code': 'BOGUS', 'cart_total': '100'}, format='json')

        self.assertEqual(response.status_code, 400)
        self.assertFalse(response.data['success'])
        self.assertEqual(response.data['message'], 'Invalid coupon code')
