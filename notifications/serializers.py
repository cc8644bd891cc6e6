"""
Serializers for email logs.
"""
from rest_framework import serializers
from .models import EmailLog


class EmailLogSerializer(serializers.ModelSerializer):

    class Meta:
        model = EmailLog
        fields = [
            'id', 'recipient', 'subject', 'category', 'order_number', 'status',
            'attempts', 'error_message', 'sent_at', 'created_at', 'updated_at'
        ]
        read_only_fields = fields
