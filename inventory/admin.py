"""
Django Admin configuration for inventory models.
"""
from django.contrib import admin
from .models import Product, ProductVariant


class ProductVariantInline(admin.TabularInline):
    model = ProductVariant
    extra = 0


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['id', 'sku', 'name', 'price', 'unit_price', 'stock', 'is_available', 'created_at']
    list_filter = ['is_available', 'discount_type', 'created_at']
    search_fields = ['sku', 'name']
    ordering = ['name']
    inlines = [ProductVariantInline]

    def unit_price(self, obj):
        return obj.unit_price
    unit_price.short_description = 'Selling price'


@admin.register(ProductVariant)
class ProductVariantAdmin(admin.ModelAdmin):
    list_display = ['id', 'product', 'size', 'stock']
    search_fields = ['product__name', 'product__sku']
    ordering = ['product', 'size']
    raw_id_fields = ['product']
