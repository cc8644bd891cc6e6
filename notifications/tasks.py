"""
Celery tasks for notification delivery.

Tasks:
    - send_email_task: Deliver one logged email with exponential backoff
"""
import logging

from celery import shared_task
from django.conf import settings

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    max_retries=getattr(settings, 'EMAIL_MAX_RETRIES', 5),
    default_retry_delay=2,
)
def send_email_task(self, email_log_id: int):
    """
    Async delivery of a queued email.

    Retries with 2s, 4s, 8s... delays; the last failure marks the log
    permanently failed and alerts the admin.

    Args:
        email_log_id: ID of the EmailLog row to send
    """
    from notifications.services import deliver_email

    final_attempt = self.request.retries >= self.max_retries
    try:
        return deliver_email(email_log_id, final_attempt=final_attempt)
    except Exception as exc:
        if final_attempt:
            return {'status': 'failed', 'email_log_id': email_log_id, 'message': str(exc)}
        raise self.retry(exc=exc, countdown=2 ** (self.request.retries + 1))
