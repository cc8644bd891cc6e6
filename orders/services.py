"""
Order Service Layer - order intake for both payment paths.

Common prefix (prepare_checkout):
1. Resolve the owner and snapshot the shipping address
2. Price every line against the catalog (read-only stock check)
3. Validate the coupon, if any (read-only)
4. Allocate a fresh order number and guest token

Then either:
- COD: deduct stock, redeem coupon, write the order and clear the cart
  in one transaction; notify after commit
- Online: cache a PendingOrder and return a signed payment request;
  nothing durable happens until the payment webhook arrives
"""
import logging
import secrets
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional

from django.conf import settings
from django.db import IntegrityError, transaction

from core.exceptions import OrderCreationFailed, OrderValidationError
from coupons.services import record_redemption, validate_coupon
from customers.models import Address, clear_cart
from inventory.ledger import deduct_stock
from .models import Order
from .pending import PendingOrder, PendingOrderStore
from .pricing import resolve_prices

logger = logging.getLogger(__name__)

ADDRESS_FIELDS = ('first_name', 'last_name', 'phone_number', 'address_line', 'city', 'postal_code')
REQUIRED_ADDRESS_FIELDS = ('first_name', 'phone_number', 'address_line', 'city')

ORDER_NUMBER_ATTEMPTS = 10


@dataclass(frozen=True)
class Checkout:
    """Priced, validated order that has not been committed anywhere yet."""
    order_number: str
    guest_token: str
    user_id: Optional[int]
    email: str
    shipping_address: Dict
    items: tuple
    subtotal: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    coupon_code: Optional[str]
    payment_method: str


@dataclass(frozen=True)
class PlacementResult:
    order_number: str
    guest_token: str
    order: Optional[Order] = None
    payment_request: Optional[Dict] = None


def generate_order_number() -> str:
    """
    Random numeric reference not used by any order or pending order.

    Raises:
        OrderCreationFailed: No free number found
    """
    length = settings.ORDER_NUMBER_LENGTH
    low = 10 ** (length - 1)
    store = PendingOrderStore()
    for _ in range(ORDER_NUMBER_ATTEMPTS):
        candidate = str(low + secrets.randbelow(9 * low))
        if not Order.objects.filter(order_number=candidate).exists() and not store.exists(candidate):
            return candidate
    raise OrderCreationFailed('Could not allocate an order number, please try again')


def resolve_owner(user=None, email: Optional[str] = None, address: Optional[Dict] = None,
                  address_id: Optional[int] = None):
    """
    Work out who the order belongs to and where it ships.

    Returns:
        Tuple of (user_id or None, email, address snapshot dict)

    Raises:
        OrderValidationError: Unknown address, or incomplete guest details
    """
    if user is not None and user.is_authenticated:
        if address_id is None:
            raise OrderValidationError('Invalid Address ID')
        try:
            saved = Address.objects.get(id=address_id, user=user)
        except Address.DoesNotExist:
            raise OrderValidationError('Invalid Address ID')
        return user.id, user.email, saved.snapshot()

    if not email:
        raise OrderValidationError('Email is required for guest checkout')
    address = address or {}
    missing = [name for name in REQUIRED_ADDRESS_FIELDS if not address.get(name)]
    if missing:
        raise OrderValidationError(f"Shipping address is missing: {', '.join(missing)}")
    snapshot = {name: str(address.get(name) or '') for name in ADDRESS_FIELDS}
    return None, email, snapshot


def prepare_checkout(items: List[Dict], payment_method: str = Order.PaymentMethod.COD, user=None,
                     email: Optional[str] = None, address: Optional[Dict] = None,
                     address_id: Optional[int] = None, coupon_code: Optional[str] = None) -> Checkout:
    """
    Run every read-only step of order intake.

    Raises:
        OrderValidationError: Bad items, owner or payment method
        ProductUnavailableError / OutOfStockError: From pricing
        CouponRejectedError: From coupon validation
    """
    if payment_method not in Order.PaymentMethod.values:
        raise OrderValidationError('Invalid payment method')

    user_id, customer_email, shipping_address = resolve_owner(user, email, address, address_id)
    cart = resolve_prices(items)

    discount = Decimal('0.00')
    applied_code = None
    if coupon_code:
        quote = validate_coupon(coupon_code, user_id, cart.subtotal)
        discount = quote.discount
        applied_code = quote.code

    return Checkout(
        order_number=generate_order_number(),
        guest_token=str(uuid.uuid4()),
        user_id=user_id,
        email=customer_email,
        shipping_address=shipping_address,
        items=cart.items,
        subtotal=cart.subtotal,
        discount_amount=discount,
        total_amount=max(Decimal('0.00'), cart.subtotal - discount),
        coupon_code=applied_code,
        payment_method=payment_method,
    )


def create_order_record(order_number: str, guest_token: str, user_id: Optional[int], email: str,
                        shipping_address: Dict, items, discount_amount: Decimal, total_amount: Decimal,
                        coupon_code: Optional[str], payment_method: str, **extra) -> Order:
    """
    Deduct-then-write core shared by COD commit and webhook promotion.

    Must run inside transaction.atomic(); callers pass status, stock_status
    and the like through ``extra``.
    """
    if extra.get('stock_status', Order.StockStatus.DEDUCTED) == Order.StockStatus.DEDUCTED:
        deduct_stock(items)

    order = Order.objects.create(
        order_number=order_number,
        guest_token=guest_token,
        user_id=user_id,
        email=email,
        shipping_address=shipping_address,
        items=[item.to_dict() for item in items],
        discount_amount=discount_amount,
        total_amount=total_amount,
        coupon_code=coupon_code,
        payment_method=payment_method,
        **extra
    )

    if coupon_code:
        redemption = record_redemption(
            coupon_code, user_id, order,
            enforce_cap=payment_method == Order.PaymentMethod.COD
        )
        if redemption is None:
            note = f"Coupon {coupon_code} was deleted before payment; discount {discount_amount} not redeemed"
            order.requires_review = True
            order.review_note = "\n".join(filter(None, [order.review_note, note]))
            order.save(update_fields=['requires_review', 'review_note'])

    clear_cart(user_id)
    return order


def schedule_order_placed_notifications(order: Order) -> None:
    """Queue confirmation + shop alert once the surrounding transaction commits."""
    def _notify():
        try:
            from notifications.services import notify_order_placed
            notify_order_placed(order)
        except Exception as e:
            # Don't fail the order if notification queuing fails
            logger.error(f"Failed to queue notifications for order #{order.order_number}: {e}")

    transaction.on_commit(_notify)


def commit_cod_order(checkout: Checkout) -> Order:
    """
    Synchronously commit a cash-on-delivery order.

    All-or-nothing: if a concurrent order took the stock after pricing, or
    the coupon ran out, nothing is written.

    Raises:
        InsufficientStockError: Stock ran out between pricing and commit
        CouponRejectedError: Coupon cap reached between validation and commit
        OrderCreationFailed: Database rejected the order row
    """
    try:
        with transaction.atomic():
            order = create_order_record(
                order_number=checkout.order_number,
                guest_token=checkout.guest_token,
                user_id=checkout.user_id,
                email=checkout.email,
                shipping_address=checkout.shipping_address,
                items=checkout.items,
                discount_amount=checkout.discount_amount,
                total_amount=checkout.total_amount,
                coupon_code=checkout.coupon_code,
                payment_method=Order.PaymentMethod.COD,
                status=Order.Status.PENDING,
                stock_status=Order.StockStatus.DEDUCTED,
            )
            schedule_order_placed_notifications(order)
    except IntegrityError as e:
        logger.error(f"Order #{checkout.order_number} rejected by database: {e}")
        raise OrderCreationFailed('Failed to place order, please try again')

    logger.info(
        f"Order #{order.order_number} placed (COD): {len(checkout.items)} lines, "
        f"total {order.total_amount}"
    )
    return order


def defer_online_order(checkout: Checkout) -> Dict:
    """
    Park an online-payment order in the pending cache.

    No stock, coupon or email side effects: those wait for a successful
    payment notification.

    Returns:
        Signed PayHere checkout parameters

    Raises:
        PaymentConfigurationError: Merchant credentials missing
        OrderCreationFailed: Order number already pending
    """
    from payments.payhere import build_checkout_request

    payment_request = build_checkout_request(
        checkout.order_number, checkout.total_amount, checkout.email, checkout.shipping_address
    )

    pending = PendingOrder(
        order_number=checkout.order_number,
        guest_token=checkout.guest_token,
        user_id=checkout.user_id,
        email=checkout.email,
        shipping_address=checkout.shipping_address,
        items=checkout.items,
        subtotal=checkout.subtotal,
        discount_amount=checkout.discount_amount,
        total_amount=checkout.total_amount,
        coupon_code=checkout.coupon_code,
        payment_method=checkout.payment_method,
    )
    if not PendingOrderStore().add(pending):
        raise OrderCreationFailed('Failed to place order, please try again')

    return payment_request


def place_order(items: List[Dict], payment_method: str = Order.PaymentMethod.COD, user=None,
                email: Optional[str] = None, address: Optional[Dict] = None,
                address_id: Optional[int] = None, coupon_code: Optional[str] = None) -> PlacementResult:
    """
    Entry point for checkout.

    Returns:
        PlacementResult holding the committed order (COD) or the signed
        payment request (online)
    """
    checkout = prepare_checkout(
        items, payment_method, user=user, email=email, address=address,
        address_id=address_id, coupon_code=coupon_code,
    )

    if checkout.payment_method == Order.PaymentMethod.COD:
        order = commit_cod_order(checkout)
        return PlacementResult(order.order_number, str(order.guest_token), order=order)

    payment_request = defer_online_order(checkout)
    return PlacementResult(checkout.order_number, checkout.guest_token, payment_request=payment_request)


def order_from_pending(pending: PendingOrder, **extra) -> Order:
    """Promote a paid PendingOrder into a durable Order (inside a transaction)."""
    return create_order_record(
        order_number=pending.order_number,
        guest_token=pending.guest_token,
        user_id=pending.user_id,
        email=pending.email,
        shipping_address=pending.shipping_address,
        items=pending.items,
        discount_amount=pending.discount_amount,
        total_amount=pending.total_amount,
        coupon_code=pending.coupon_code,
        payment_method=pending.payment_method,
        **extra
    )
