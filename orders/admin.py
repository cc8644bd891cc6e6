"""
Django Admin configuration for order models.
"""
from django.contrib import admin
from .models import Order


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = [
        'order_number', 'email', 'status', 'payment_method',
        'total_amount', 'item_count', 'requires_review', 'created_at'
    ]
    list_filter = ['status', 'payment_method', 'stock_status', 'requires_review', 'created_at']
    search_fields = ['order_number', 'email', 'tracking_number']
    ordering = ['-created_at']
    raw_id_fields = ['user']
    readonly_fields = [
        'order_number', 'guest_token', 'items', 'total_amount', 'discount_amount',
        'coupon_code', 'payment_method', 'stock_status', 'created_at', 'updated_at'
    ]

    def item_count(self, obj):
        return obj.item_count
    item_count.short_description = 'Items'
