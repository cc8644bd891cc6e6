"""
Serializers for coupon models and the checkout preview request.
"""
from decimal import Decimal

from rest_framework import serializers
from .models import Coupon


class CouponSerializer(serializers.ModelSerializer):
    """Admin view of a coupon."""

    class Meta:
        model = Coupon
        fields = [
            'id', 'code', 'type', 'value', 'min_order_amount', 'max_discount',
            'expires_at', 'max_uses', 'limit_per_user', 'used_count',
            'is_active', 'is_public', 'created_at'
        ]
        read_only_fields = ['id', 'used_count', 'created_at']


class CouponValidateSerializer(serializers.Serializer):
    """
    Request format:
    {
        "code": "SAVE10",
        "cart_total": "5000.00"
    }
    """
    code = serializers.CharField(max_length=50)
    cart_total = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.00'))
