"""
Pending-Order Cache - unconfirmed online orders awaiting payment.

A PendingOrder is not an Order: it has no database row, lives only in the
cache under ``pending_order:<order_number>`` and disappears on promotion,
on failed payment, or when its TTL runs out.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional, Tuple

from django.conf import settings
from django.core.cache import cache
from django.utils import timezone

from .pricing import PricedItem

logger = logging.getLogger(__name__)

KEY_PREFIX = 'pending_order'


def pending_key(order_number: str) -> str:
    return f"{KEY_PREFIX}:{order_number}"


@dataclass(frozen=True)
class PendingOrder:
    """Everything needed to rebuild the order once payment clears."""
    order_number: str
    guest_token: str
    user_id: Optional[int]
    email: str
    shipping_address: Dict
    items: Tuple[PricedItem, ...]
    subtotal: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    coupon_code: Optional[str]
    payment_method: str
    created_at: datetime = field(default_factory=timezone.now)

    def to_payload(self) -> Dict:
        return {
            'order_number': self.order_number,
            'guest_token': self.guest_token,
            'user_id': self.user_id,
            'email': self.email,
            'shipping_address': self.shipping_address,
            'items': [item.to_dict() for item in self.items],
            'subtotal': str(self.subtotal),
            'discount_amount': str(self.discount_amount),
            'total_amount': str(self.total_amount),
            'coupon_code': self.coupon_code,
            'payment_method': self.payment_method,
            'created_at': self.created_at.isoformat(),
        }

    @classmethod
    def from_payload(cls, payload: Dict) -> 'PendingOrder':
        return cls(
            order_number=payload['order_number'],
            guest_token=payload['guest_token'],
            user_id=payload.get('user_id'),
            email=payload['email'],
            shipping_address=payload['shipping_address'],
            items=tuple(PricedItem.from_dict(item) for item in payload['items']),
            subtotal=Decimal(payload['subtotal']),
            discount_amount=Decimal(payload['discount_amount']),
            total_amount=Decimal(payload['total_amount']),
            coupon_code=payload.get('coupon_code'),
            payment_method=payload['payment_method'],
            created_at=datetime.fromisoformat(payload['created_at']),
        )


class PendingOrderStore:
    """Cache-backed store with one entry per order number."""

    def __init__(self, ttl: Optional[int] = None):
        self.ttl = ttl if ttl is not None else settings.PENDING_ORDER_TTL

    def add(self, pending: PendingOrder) -> bool:
        """Store the entry unless one already exists for this order number."""
        added = cache.add(pending_key(pending.order_number), pending.to_payload(), timeout=self.ttl)
        if added:
            logger.info(f"Pending order #{pending.order_number} cached for {self.ttl}s")
        return added

    def get(self, order_number: str) -> Optional[PendingOrder]:
        payload = cache.get(pending_key(order_number))
        if payload is None:
            return None
        return PendingOrder.from_payload(payload)

    def exists(self, order_number: str) -> bool:
        return cache.get(pending_key(order_number)) is not None

    def delete(self, order_number: str) -> None:
        cache.delete(pending_key(order_number))
        logger.debug(f"Pending order #{order_number} removed from cache")
