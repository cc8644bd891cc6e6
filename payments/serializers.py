"""
Serializers for the PayHere notify callback.
"""
from rest_framework import serializers


class PayHereNotificationSerializer(serializers.Serializer):
    """
    Form-encoded body PayHere posts to the notify_url.

    Values are kept as the exact strings PayHere sent; the signature is
    computed over them verbatim.
    """
    merchant_id = serializers.CharField(max_length=50, trim_whitespace=False)
    order_id = serializers.CharField(max_length=20, trim_whitespace=False)
    payment_id = serializers.CharField(max_length=50, required=False, allow_blank=True, default='')
    payhere_amount = serializers.CharField(max_length=20, trim_whitespace=False)
    payhere_currency = serializers.CharField(max_length=3, trim_whitespace=False)
    status_code = serializers.CharField(max_length=3, trim_whitespace=False)
    md5sig = serializers.CharField(max_length=64, trim_whitespace=False)
