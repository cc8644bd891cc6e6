"""
Customer-owned records the order flow reads and writes: saved addresses
and the server-side cart.
"""
from django.conf import settings
from django.db import models


class Address(models.Model):
    """A saved shipping address. Orders copy it; they never reference it."""
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='addresses'
    )
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100, blank=True, default='')
    phone_number = models.CharField(max_length=30)
    address_line = models.CharField(max_length=300)
    city = models.CharField(max_length=100)
    postal_code = models.CharField(max_length=20, blank=True, default='')
    is_default = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = 'Address'
        verbose_name_plural = 'Addresses'
        ordering = ['-is_default', 'id']

    def __str__(self):
        return f"{self.first_name} {self.last_name}, {self.address_line}, {self.city}"

    def snapshot(self) -> dict:
        return {
            'first_name': self.first_name,
            'last_name': self.last_name,
            'phone_number': self.phone_number,
            'address_line': self.address_line,
            'city': self.city,
            'postal_code': self.postal_code,
        }


class Cart(models.Model):
    """One cart per user; items are the client's line items as JSON."""
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='cart'
    )
    items = models.JSONField(default=list, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Cart of {self.user} ({len(self.items)} items)"


def clear_cart(user_id) -> None:
    """Empty the user's cart, if they have one."""
    if user_id:
        Cart.objects.filter(user_id=user_id).update(items=[])
