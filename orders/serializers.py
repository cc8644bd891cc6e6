"""
Serializers for orders and the checkout request.
"""
from rest_framework import serializers
from .models import Order


class OrderItemCreateSerializer(serializers.Serializer):
    """One cart line in an order creation request."""
    product_id = serializers.IntegerField(min_value=1)
    quantity = serializers.IntegerField(min_value=1)
    sku = serializers.CharField(max_length=64, required=False, allow_blank=True)
    size = serializers.CharField(max_length=20, required=False, allow_blank=True, allow_null=True)
    color = serializers.CharField(max_length=50, required=False, allow_blank=True, allow_null=True)


class ShippingAddressSerializer(serializers.Serializer):
    """Guest shipping address; logged-in customers send address_id instead."""
    first_name = serializers.CharField(max_length=100)
    last_name = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    phone_number = serializers.CharField(max_length=20)
    address_line = serializers.CharField(max_length=255)
    city = serializers.CharField(max_length=100)
    postal_code = serializers.CharField(max_length=20, required=False, allow_blank=True, default='')


class OrderCreateSerializer(serializers.Serializer):
    """
    Serializer for creating orders via POST /orders/

    Request format:
    {
        "items": [
            {"product_id": 1, "quantity": 2, "size": "M"},
            {"product_id": 3, "quantity": 1}
        ],
        "payment_method": "COD",
        "email": "guest@example.com",
        "address": {"first_name": "...", "phone_number": "...", "address_line": "...", "city": "..."},
        "coupon_code": "SAVE10"
    }
    """
    items = OrderItemCreateSerializer(many=True)
    payment_method = serializers.ChoiceField(choices=Order.PaymentMethod.choices, default=Order.PaymentMethod.COD)
    email = serializers.EmailField(required=False, allow_blank=True)
    address = ShippingAddressSerializer(required=False)
    address_id = serializers.IntegerField(required=False, min_value=1)
    coupon_code = serializers.CharField(max_length=50, required=False, allow_blank=True, allow_null=True)

    def validate_items(self, value):
        if not value:
            raise serializers.ValidationError("At least one item is required")

        # Same product twice is fine only in different sizes
        keys = [(item['product_id'], item.get('size') or None) for item in value]
        if len(keys) != len(set(keys)):
            raise serializers.ValidationError("Duplicate products in order items")

        return value


class OrderSerializer(serializers.ModelSerializer):
    """Full order detail, as shown to its owner or to staff."""
    subtotal = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    item_count = serializers.IntegerField(read_only=True)

    class Meta:
        model = Order
        fields = [
            'id', 'order_number', 'email', 'status', 'payment_method',
            'items', 'item_count', 'shipping_address', 'subtotal',
            'discount_amount', 'total_amount', 'coupon_code',
            'tracking_number', 'created_at', 'updated_at'
        ]
        read_only_fields = fields


class AdminOrderSerializer(OrderSerializer):
    """Order detail plus the internal reconciliation fields."""

    class Meta(OrderSerializer.Meta):
        fields = OrderSerializer.Meta.fields + [
            'user', 'guest_token', 'stock_status', 'requires_review', 'review_note'
        ]
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    """Compact row for order lists."""
    item_count = serializers.IntegerField(read_only=True)

    class Meta:
        model = Order
        fields = [
            'id', 'order_number', 'status', 'payment_method',
            'total_amount', 'item_count', 'requires_review', 'created_at'
        ]


class StatusUpdateSerializer(serializers.Serializer):
    """
    Request format:
    {
        "status": "SHIPPED",
        "tracking_number": "TRK123"
    }
    """
    status = serializers.CharField(max_length=20)
    tracking_number = serializers.CharField(max_length=100, required=False, allow_blank=True, allow_null=True)

    def validate_status(self, value):
        value = value.upper()
        if value not in Order.Status.values:
            raise serializers.ValidationError(f"Unknown status '{value}'")
        return value
