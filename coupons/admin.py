"""
Django Admin configuration for coupon models.
"""
from django.contrib import admin
from .models import Coupon, CouponRedemption


@admin.register(Coupon)
class CouponAdmin(admin.ModelAdmin):
    list_display = ['id', 'code', 'type', 'value', 'used_count', 'max_uses', 'is_active', 'is_public', 'expires_at']
    list_filter = ['type', 'is_active', 'is_public']
    search_fields = ['code']
    ordering = ['-created_at']
    readonly_fields = ['used_count', 'created_at', 'updated_at']
    actions = ['disable_coupons']

    @admin.action(description='Disable selected coupons')
    def disable_coupons(self, request, queryset):
        updated = queryset.update(is_active=False)
        self.message_user(request, f'{updated} coupon(s) disabled.')


@admin.register(CouponRedemption)
class CouponRedemptionAdmin(admin.ModelAdmin):
    list_display = ['id', 'coupon', 'user', 'order', 'created_at']
    search_fields = ['coupon__code', 'order__order_number']
    raw_id_fields = ['coupon', 'user', 'order']
