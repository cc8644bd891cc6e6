"""
Tests for email queueing and delivery.

Test Cases:
1. enqueue_email records the email and hands it to the worker
2. Already-sent emails are not sent again
3. Failures are recorded, the last one permanently, with an admin alert
4. Admin retry and history endpoints
"""
from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core import mail
from django.test import TestCase, override_settings
from rest_framework.test import APIClient

from notifications import messages
from notifications.models import EmailLog
from notifications.services import deliver_email, enqueue_email, retry_failed_email
from notifications.tasks import send_email_task
from orders.models import Order

User = get_user_model()


def make_order(**kwargs):
    defaults = dict(
        order_number='10000001',
        email='guest@example.com',
        shipping_address={'first_name': 'Kamal', 'city': 'Colombo'},
        items=[{'product_id': 1, 'sku': 'MUG-1', 'name': 'Mug', 'price': '1250.00', 'quantity': 2}],
        total_amount=Decimal('2500.00'),
    )
    defaults.update(kwargs)
    return Order.objects.create(**defaults)


@patch('notifications.tasks.send_email_task.delay')
class EnqueueEmailTestCase(TestCase):

    def test_enqueue_creates_log_and_dispatches(self, mock_delay):
        log = enqueue_email('a@example.com', 'Hi', 'Body', '10000001', EmailLog.Category.SHIPPED)

        self.assertEqual(log.status, EmailLog.Status.QUEUED)
        self.assertEqual(log.category, EmailLog.Category.SHIPPED)
        mock_delay.assert_called_once_with(log.id)

    def test_broker_down_keeps_log_queued(self, mock_delay):
        mock_delay.side_effect = ConnectionError('broker down')

        log = enqueue_email('a@example.com', 'Hi', 'Body')

        log.refresh_from_db()
        self.assertEqual(log.status, EmailLog.Status.QUEUED)

    def test_no_recipient_is_skipped(self, mock_delay):
        self.assertIsNone(enqueue_email('', 'Hi', 'Body'))
        mock_delay.assert_not_called()


class DeliverEmailTestCase(TestCase):

    def setUp(self):
        self.log = EmailLog.objects.create(
            recipient='a@example.com', subject='Order Shipped', body='On its way',
            category=EmailLog.Category.SHIPPED, order_number='10000001'
        )

    def test_delivers_and_marks_sent(self):
        result = deliver_email(self.log.id)

        self.assertEqual(result['status'], 'success')
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].subject, 'Order Shipped')
        self.log.refresh_from_db()
        self.assertEqual(self.log.status, EmailLog.Status.SENT)
        self.assertEqual(self.log.attempts, 1)
        self.assertIsNotNone(self.log.sent_at)

    def test_sent_email_not_resent(self):
        deliver_email(self.log.id)
        result = deliver_email(self.log.id)

        self.assertEqual(result['status'], 'skipped')
        self.assertEqual(len(mail.outbox), 1)

    @patch('notifications.services.send_mail', side_effect=OSError('SMTP down'))
    def test_failure_recorded_and_reraised(self, mock_send):
        with self.assertRaises(OSError):
            deliver_email(self.log.id)

        self.log.refresh_from_db()
        self.assertEqual(self.log.status, EmailLog.Status.FAILED)
        self.assertEqual(self.log.attempts, 1)
        self.assertEqual(self.log.error_message, 'SMTP down')

    @override_settings(ADMIN_EMAIL='ops@example.com')
    @patch('notifications.services.send_mail')
    def test_final_failure_is_permanent_and_alerts_admin(self, mock_send):
        mock_send.side_effect = [OSError('SMTP down'), None]

        with self.assertRaises(OSError):
            deliver_email(self.log.id, final_attempt=True)

        self.log.refresh_from_db()
        self.assertEqual(self.log.status, EmailLog.Status.PERMANENTLY_FAILED)
        alert = mock_send.call_args_list[1]
        self.assertEqual(alert.kwargs['recipient_list'], ['ops@example.com'])

    @patch('notifications.services.send_mail', side_effect=OSError('SMTP down'))
    def test_task_gives_up_after_last_retry(self, mock_send):
        # Eager apply with retries exhausted runs the final attempt
        result = send_email_task.apply(args=[self.log.id], retries=send_email_task.max_retries)

        self.assertEqual(result.get()['status'], 'failed')
        self.log.refresh_from_db()
        self.assertEqual(self.log.status, EmailLog.Status.PERMANENTLY_FAILED)

    @patch('notifications.tasks.send_email_task.delay')
    def test_retry_requeues_failed_email(self, mock_delay):
        EmailLog.objects.filter(pk=self.log.pk).update(
            status=EmailLog.Status.PERMANENTLY_FAILED, attempts=6, error_message='SMTP down'
        )

        log = retry_failed_email(self.log.id)

        self.assertEqual(log.status, EmailLog.Status.QUEUED)
        self.assertEqual(log.attempts, 0)
        mock_delay.assert_called_once_with(self.log.id)

    def test_retry_refuses_sent_email(self):
        deliver_email(self.log.id)
        with self.assertRaises(ValueError):
            retry_failed_email(self.log.id)


@override_settings(FRONTEND_URL='https://shop.example.com')
class MessageTestCase(TestCase):

    def test_guest_link_uses_token(self):
        order = make_order()
        self.assertEqual(
            messages.tracking_link(order),
            f'https://shop.example.com/track-order?token={order.guest_token}'
        )

    def test_owner_link_uses_order_id(self):
        user = User.objects.create_user(username='nimal', password='pw')
        order = make_order(user=user)
        self.assertEqual(messages.tracking_link(order), f'https://shop.example.com/profile/orders/{order.id}')

    def test_closed_guest_orders_omit_tracking_link(self):
        for number, closed in (('10000002', Order.Status.DELIVERED), ('10000003', Order.Status.CANCELLED)):
            order = make_order(order_number=number, status=closed)
            self.assertIsNone(messages.tracking_link(order))
            subject, body = messages.status_update(order)
            self.assertNotIn('track-order', body)

        shipped = make_order(order_number='10000009', status=Order.Status.SHIPPED, tracking_number='TRK1')
        self.assertIn('track-order?token=', messages.status_update(shipped)[1])

    def test_closed_owner_orders_keep_profile_link(self):
        user = User.objects.create_user(username='nimal', password='pw')
        order = make_order(user=user, status=Order.Status.DELIVERED)
        self.assertIn(f'/profile/orders/{order.id}', messages.status_update(order)[1])

    def test_confirmation_contains_invoice(self):
        subject, body = messages.order_confirmation(make_order())

        self.assertIn('#10000001', subject)
        self.assertIn('2x Mug', body)
        self.assertIn('2500.00', body)

    def test_no_email_for_confirmed(self):
        self.assertIsNone(messages.status_update(make_order(status=Order.Status.CONFIRMED)))


class EmailAdminAPITestCase(TestCase):

    def setUp(self):
        self.client = APIClient()
        self.staff = User.objects.create_user(username='staff', password='pw', is_staff=True)
        self.failed = EmailLog.objects.create(
            recipient='a@example.com', subject='S', body='B', category=EmailLog.Category.CONFIRMATION,
            order_number='10000001', status=EmailLog.Status.PERMANENTLY_FAILED, attempts=6
        )
        EmailLog.objects.create(
            recipient='a@example.com', subject='S', body='B', category=EmailLog.Category.SHIPPED,
            order_number='10000001', status=EmailLog.Status.SENT
        )

    def test_requires_staff(self):
        self.assertEqual(self.client.get('/api/admin/emails/failed/').status_code, 403)

    def test_failed_list(self):
        self.client.force_authenticate(self.staff)
        response = self.client.get('/api/admin/emails/failed/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['id'], self.failed.id)

    @patch('notifications.tasks.send_email_task.delay')
    def test_retry(self, mock_delay):
        self.client.force_authenticate(self.staff)
        response = self.client.post(f'/api/admin/emails/{self.failed.id}/retry/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['email']['status'], EmailLog.Status.QUEUED)
        self.assertEqual(self.client.post('/api/admin/emails/99999/retry/').status_code, 404)

    def test_order_history(self):
        self.client.force_authenticate(self.staff)
        response = self.client.get('/api/admin/emails/order/10000001/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data), 2)
