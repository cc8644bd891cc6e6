"""
Django Admin configuration for email logs.
"""
from django.contrib import admin, messages

from .models import EmailLog
from .services import retry_failed_email


@admin.register(EmailLog)
class EmailLogAdmin(admin.ModelAdmin):
    list_display = ['id', 'category', 'recipient', 'order_number', 'status', 'attempts', 'sent_at', 'created_at']
    list_filter = ['status', 'category', 'created_at']
    search_fields = ['recipient', 'order_number', 'subject']
    ordering = ['-created_at']
    readonly_fields = ['attempts', 'error_message', 'sent_at', 'created_at', 'updated_at']
    actions = ['resend']

    @admin.action(description='Re-send selected emails')
    def resend(self, request, queryset):
        queued = 0
        for log in queryset.exclude(status=EmailLog.Status.SENT):
            retry_failed_email(log.id)
            queued += 1
        self.message_user(request, f"{queued} email(s) queued", messages.SUCCESS)
