"""
Notification Service Layer - enqueue contract and delivery logic.

Order code only calls the notify_* helpers, and only from
transaction.on_commit callbacks. Nothing here raises back into the
caller: a notification that cannot be queued is logged and left for an
operator to re-send.
"""
import logging
from typing import Optional

from django.conf import settings
from django.core.mail import send_mail
from django.utils import timezone

from . import messages
from .models import EmailLog

logger = logging.getLogger(__name__)

STATUS_CATEGORIES = {
    'PROCESSING': EmailLog.Category.PROCESSING,
    'SHIPPED': EmailLog.Category.SHIPPED,
    'DELIVERED': EmailLog.Category.DELIVERED,
    'CANCELLED': EmailLog.Category.CANCELLED,
    'RETURNED': EmailLog.Category.RETURNED,
    'REFUNDED': EmailLog.Category.REFUNDED,
}


def enqueue_email(recipient: str, subject: str, body: str, order_number: str = '',
                  category: str = EmailLog.Category.CONFIRMATION) -> Optional[EmailLog]:
    """
    Record an email and hand it to the delivery worker.

    Returns:
        The EmailLog row, or None if the email could not even be recorded
    """
    if not recipient:
        logger.warning(f"Skipping {category} email for order #{order_number}: no recipient")
        return None

    try:
        log = EmailLog.objects.create(
            recipient=recipient,
            subject=subject,
            body=body,
            category=category,
            order_number=order_number or '',
        )
    except Exception as e:
        logger.error(f"Failed to record {category} email for order #{order_number}: {e}")
        return None

    _dispatch(log)
    return log


def _dispatch(log: EmailLog) -> None:
    try:
        from .tasks import send_email_task
        send_email_task.delay(log.id)
        logger.info(f"Email queued: {log.category} to {log.recipient}")
    except Exception as e:
        # Row stays QUEUED; retry_failed_email or an operator can pick it up
        logger.error(f"Failed to queue email #{log.id}: {e}")


def deliver_email(email_log_id: int, final_attempt: bool = False) -> dict:
    """
    Send one logged email.

    Args:
        email_log_id: EmailLog to send
        final_attempt: No retries remain; a failure is permanent

    Raises:
        Exception: Whatever the mail backend raised, so the task can retry
    """
    try:
        log = EmailLog.objects.get(id=email_log_id)
    except EmailLog.DoesNotExist:
        logger.error(f"Email log #{email_log_id} not found")
        return {'status': 'error', 'message': f'Email log {email_log_id} not found'}

    if log.status == EmailLog.Status.SENT:
        logger.info(f"Email already sent: {log.category} to {log.recipient}")
        return {'status': 'skipped', 'reason': 'Email already sent'}

    log.attempts += 1
    try:
        send_mail(
            subject=log.subject,
            message=log.body,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[log.recipient],
        )
    except Exception as e:
        log.error_message = str(e)
        log.status = EmailLog.Status.PERMANENTLY_FAILED if final_attempt else EmailLog.Status.FAILED
        log.save(update_fields=['attempts', 'error_message', 'status', 'updated_at'])
        if final_attempt:
            logger.error(
                f"Email permanently failed after {log.attempts} attempts: "
                f"{log.category} to {log.recipient}: {e}"
            )
            _alert_admin(log)
        else:
            logger.warning(f"Email #{log.id} failed (attempt {log.attempts}): {e}")
        raise

    log.status = EmailLog.Status.SENT
    log.sent_at = timezone.now()
    log.error_message = ''
    log.save(update_fields=['attempts', 'status', 'sent_at', 'error_message', 'updated_at'])
    logger.info(f"Email sent successfully: {log.category} to {log.recipient}")
    return {'status': 'success', 'email_log_id': log.id}


def _alert_admin(log: EmailLog) -> None:
    if not settings.ADMIN_EMAIL:
        return
    try:
        send_mail(
            subject=f"Critical: Email delivery failed - {log.category}",
            message=(
                f"Email delivery has permanently failed after {log.attempts} attempts.\n\n"
                f"Email Type: {log.category}\n"
                f"Recipient: {log.recipient}\n"
                f"Order: {log.order_number or 'N/A'}\n"
                f"Error: {log.error_message}\n\n"
                f"Please check the admin panel to manually resend this email."
            ),
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[settings.ADMIN_EMAIL],
        )
    except Exception as e:
        logger.error(f"Failed to send admin alert: {e}")


def retry_failed_email(email_log_id: int) -> EmailLog:
    """
    Re-queue a permanently failed email with its stored body.

    Raises:
        EmailLog.DoesNotExist: Unknown id
        ValueError: Email was already sent
    """
    log = EmailLog.objects.get(id=email_log_id)
    if log.status == EmailLog.Status.SENT:
        raise ValueError('Email was already sent')

    log.status = EmailLog.Status.QUEUED
    log.attempts = 0
    log.error_message = ''
    log.save(update_fields=['status', 'attempts', 'error_message', 'updated_at'])
    _dispatch(log)
    return log


# =============================================================================
# Order notifications
# =============================================================================

def notify_order_placed(order) -> None:
    """Customer confirmation plus the shop's new-order alert."""
    subject, body = messages.order_confirmation(order)
    enqueue_email(order.email, subject, body, order.order_number, EmailLog.Category.CONFIRMATION)

    subject, body = messages.shop_new_order(order)
    enqueue_email(settings.SHOP_EMAIL, subject, body, order.order_number, EmailLog.Category.ADMIN_ALERT)


def notify_status_change(order) -> None:
    category = STATUS_CATEGORIES.get(order.status)
    rendered = messages.status_update(order)
    if category is None or rendered is None:
        return
    subject, body = rendered
    enqueue_email(order.email, subject, body, order.order_number, category)
