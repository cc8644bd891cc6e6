"""
Django Admin configuration for customer models.
"""
from django.contrib import admin
from .models import Address, Cart


@admin.register(Address)
class AddressAdmin(admin.ModelAdmin):
    list_display = ['id', 'user', 'first_name', 'last_name', 'city', 'is_default']
    search_fields = ['user__email', 'first_name', 'last_name', 'city']
    raw_id_fields = ['user']


@admin.register(Cart)
class CartAdmin(admin.ModelAdmin):
    list_display = ['id', 'user', 'updated_at']
    raw_id_fields = ['user']
