"""
Coupon Service Layer.

validate_coupon is a pure read and may be called any number of times
(checkout preview, order intake). record_redemption is the only write and
runs inside the order commit transaction.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from core.exceptions import CouponRejectedError, ValidationError
from .models import Coupon, CouponRedemption, normalize_code

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')


@dataclass(frozen=True)
class CouponQuote:
    code: str
    discount: Decimal
    type: str


def compute_discount(coupon: Coupon, subtotal: Decimal) -> Decimal:
    """Discount for a subtotal, clamped to max_discount and to the subtotal itself."""
    if coupon.type == Coupon.Type.PERCENTAGE:
        discount = subtotal * coupon.value / Decimal('100')
        if coupon.max_discount is not None and discount > coupon.max_discount:
            discount = coupon.max_discount
    else:
        discount = coupon.value

    if discount > subtotal:
        discount = subtotal
    return max(discount, Decimal('0.00')).quantize(CENT, rounding=ROUND_HALF_UP)


def validate_coupon(code: str, user_id: Optional[int], subtotal: Decimal) -> CouponQuote:
    """
    Evaluate coupon rules against a cart subtotal.

    Checks short-circuit in order: existence, active, expiry, global cap,
    minimum order, per-user cap, guest eligibility.

    Raises:
        ValidationError: No code supplied
        CouponRejectedError: Any rule failed (message names the rule)
    """
    normalized = normalize_code(code)
    if not normalized:
        raise ValidationError('Coupon code is required')

    coupon = Coupon.objects.filter(code=normalized).first()
    if coupon is None:
        raise CouponRejectedError('Invalid coupon code')
    if not coupon.is_active:
        raise CouponRejectedError('Coupon is disabled')
    if coupon.expires_at and timezone.now() > coupon.expires_at:
        raise CouponRejectedError('Coupon has expired')
    if coupon.max_uses is not None and coupon.used_count >= coupon.max_uses:
        raise CouponRejectedError('Coupon usage limit reached')
    if coupon.min_order_amount and subtotal < coupon.min_order_amount:
        raise CouponRejectedError(f'Minimum order of {coupon.min_order_amount} required')

    if user_id:
        if coupon.limit_per_user is not None:
            used_by_user = CouponRedemption.objects.filter(coupon=coupon, user_id=user_id).count()
            if used_by_user >= coupon.limit_per_user:
                raise CouponRejectedError('You have already used this coupon')
    elif not coupon.is_public or coupon.limit_per_user is not None:
        raise CouponRejectedError('Login required to use this coupon')

    return CouponQuote(code=coupon.code, discount=compute_discount(coupon, subtotal), type=coupon.type)


def record_redemption(coupon_code: str, user_id: Optional[int], order,
                      enforce_cap: bool = True) -> Optional[CouponRedemption]:
    """
    Count one use of the coupon for a committed order.

    Must run inside the transaction that creates the order.

    Args:
        coupon_code: Code applied to the order
        user_id: Redeeming user, None for guests
        order: The order being committed
        enforce_cap: Re-check max_uses under the row lock; pass False when the
            customer has already paid and the order must go through anyway

    Returns:
        The redemption, or None when the coupon was deleted after checkout
        and enforce_cap is False (the paid order keeps its discount)

    Raises:
        CouponRejectedError: Coupon vanished (COD), or the cap was reached by a concurrent order
    """
    if not transaction.get_connection().in_atomic_block:
        raise RuntimeError('record_redemption must run inside transaction.atomic()')

    coupon = Coupon.objects.select_for_update().filter(code=normalize_code(coupon_code)).first()
    if coupon is None:
        if enforce_cap:
            raise CouponRejectedError('Invalid coupon code')
        logger.error(
            f"Coupon {normalize_code(coupon_code)} no longer exists; "
            f"paid order #{order.order_number} not redeemed"
        )
        return None

    if coupon.max_uses is not None and coupon.used_count >= coupon.max_uses:
        if enforce_cap:
            raise CouponRejectedError('Coupon usage limit reached')
        logger.warning(
            f"Coupon {coupon.code} over its cap ({coupon.used_count}/{coupon.max_uses}) "
            f"by paid order #{order.order_number}"
        )

    Coupon.objects.filter(pk=coupon.pk).update(used_count=F('used_count') + 1)
    redemption = CouponRedemption.objects.create(coupon=coupon, user_id=user_id, order=order)
    logger.info(f"Coupon {coupon.code} redeemed by order #{order.order_number}")
    return redemption
