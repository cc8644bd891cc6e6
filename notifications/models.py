"""
Email log - one row per queued customer or shop email.

Status Flow:
    QUEUED -> SENT
    QUEUED -> FAILED (attempt failed, retry scheduled) -> ... -> SENT
    FAILED -> PERMANENTLY_FAILED (retries exhausted; admin may re-queue)
"""
from django.db import models


class EmailLog(models.Model):

    class Status(models.TextChoices):
        QUEUED = 'QUEUED', 'Queued'
        SENT = 'SENT', 'Sent'
        FAILED = 'FAILED', 'Failed'
        PERMANENTLY_FAILED = 'PERMANENTLY_FAILED', 'Permanently failed'

    class Category(models.TextChoices):
        CONFIRMATION = 'confirmation', 'Order confirmation'
        PROCESSING = 'processing', 'Processing'
        SHIPPED = 'shipped', 'Shipped'
        DELIVERED = 'delivered', 'Delivered'
        CANCELLED = 'cancelled', 'Cancelled'
        RETURNED = 'returned', 'Returned'
        REFUNDED = 'refunded', 'Refunded'
        ADMIN_ALERT = 'admin-alert', 'Shop alert'

    recipient = models.EmailField()
    subject = models.CharField(max_length=255)
    body = models.TextField(help_text="Rendered body, kept so the email can be re-sent")
    category = models.CharField(max_length=20, choices=Category.choices)
    order_number = models.CharField(max_length=20, blank=True, default='', db_index=True)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.QUEUED,
        db_index=True
    )
    attempts = models.PositiveIntegerField(default=0)
    error_message = models.TextField(blank=True, default='')
    sent_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Email Log'
        verbose_name_plural = 'Email Logs'
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.category} to {self.recipient} ({self.status})"
