"""
Payment Webhook Reconciler - turns PayHere notifications into orders.

Per order number:  NO_RECORD -> PENDING_IN_CACHE -> {DISCARDED | PROMOTED_TO_ORDER}

1. Verify the signature (no state change on mismatch)
2. Take the per-order idempotency lock; a held lock means another
   worker has this notification
3. Pending entry gone + order exists -> duplicate; both gone -> unknown
4. Success -> deduct stock, redeem coupon, create CONFIRMED order, clear
   cart, drop the pending entry, notify after commit
5. Failure -> drop the pending entry; nothing else was ever written
6. Release the lock
"""
import enum
import logging
from decimal import Decimal, InvalidOperation
from typing import Mapping

from django.conf import settings
from django.db import transaction

from core.exceptions import (
    InsufficientStockError,
    PaymentMismatchError,
    StockReconciliationAnomaly,
)
from core.locks import idempotency_guard
from orders.models import Order
from orders.pending import PendingOrder, PendingOrderStore
from orders.services import order_from_pending, schedule_order_placed_notifications
from . import payhere

logger = logging.getLogger(__name__)


class WebhookOutcome(enum.Enum):
    PROMOTED = 'promoted'
    PROMOTED_FOR_REVIEW = 'promoted_for_review'
    DISCARDED = 'discarded'
    AWAITING = 'awaiting'
    DUPLICATE = 'duplicate'
    UNKNOWN_ORDER = 'unknown_order'


def lock_key(order_number: str) -> str:
    return f"payhere_lock:{order_number}"


def _check_amount(pending: PendingOrder, payload: Mapping[str, str]) -> None:
    try:
        paid = Decimal(payload['payhere_amount'])
    except (InvalidOperation, TypeError):
        raise PaymentMismatchError(f"Unreadable amount {payload['payhere_amount']!r}")
    if paid != pending.total_amount or payload['payhere_currency'] != settings.PAYHERE_CURRENCY:
        raise PaymentMismatchError(
            f"Order #{pending.order_number}: paid {payload['payhere_amount']} "
            f"{payload['payhere_currency']}, expected {pending.total_amount} {settings.PAYHERE_CURRENCY}"
        )


def _promote(pending: PendingOrder, payment_id: str) -> Order:
    try:
        with transaction.atomic():
            order = order_from_pending(
                pending,
                status=Order.Status.CONFIRMED,
                stock_status=Order.StockStatus.DEDUCTED,
                tracking_number=payment_id,
            )
            schedule_order_placed_notifications(order)
            return order
    except InsufficientStockError as shortage:
        raise StockReconciliationAnomaly(pending.order_number, shortage)


def _promote_for_review(pending: PendingOrder, payment_id: str, anomaly: StockReconciliationAnomaly) -> Order:
    with transaction.atomic():
        order = order_from_pending(
            pending,
            status=Order.Status.CONFIRMED,
            stock_status=Order.StockStatus.NOT_DEDUCTED,
            tracking_number=payment_id,
            requires_review=True,
            review_note=anomaly.shortage.message,
        )
        schedule_order_placed_notifications(order)
        return order


def reconcile_payhere_notification(payload: Mapping[str, str]) -> WebhookOutcome:
    """
    Process one PayHere notify callback.

    Args:
        payload: The form fields PayHere posted (see payhere.NOTIFY_FIELDS)

    Returns:
        WebhookOutcome describing what happened

    Raises:
        InvalidSignatureError: Signature did not verify; nothing changed
        PaymentMismatchError: Signed but for the wrong amount/currency; pending kept
        PaymentConfigurationError: Merchant credentials missing
    """
    payhere.verify_notification(payload)

    order_number = payload['order_id']
    status_code = str(payload['status_code'])

    with idempotency_guard(lock_key(order_number), ttl=settings.PAYMENT_LOCK_TTL) as lock:
        if lock is None:
            logger.info(f"Duplicate webhook ignored for Order #{order_number}")
            return WebhookOutcome.DUPLICATE

        store = PendingOrderStore()
        pending = store.get(order_number)
        if pending is None:
            if Order.objects.filter(order_number=order_number).exists():
                logger.info(f"Order #{order_number} already processed")
                return WebhookOutcome.DUPLICATE
            logger.warning(f"Notification for unknown or expired Order #{order_number} (status {status_code})")
            return WebhookOutcome.UNKNOWN_ORDER

        if status_code == payhere.STATUS_PENDING:
            logger.info(f"Payment still pending for Order #{order_number}")
            return WebhookOutcome.AWAITING

        if status_code != payhere.STATUS_SUCCESS:
            store.delete(order_number)
            logger.info(f"Payment failed for Order #{order_number} (status {status_code}), pending order discarded")
            return WebhookOutcome.DISCARDED

        _check_amount(pending, payload)
        payment_id = payload.get('payment_id') or ''

        try:
            order = _promote(pending, payment_id)
            if order.requires_review:
                logger.error(f"Order #{order_number} flagged for manual review: {order.review_note}")
                outcome = WebhookOutcome.PROMOTED_FOR_REVIEW
            else:
                outcome = WebhookOutcome.PROMOTED
            logger.info(f"Payment Success for Order #{order_number}")
        except StockReconciliationAnomaly as anomaly:
            logger.error(f"{anomaly.message}. Flagged for manual review (payment {payment_id}).")
            order = _promote_for_review(pending, payment_id, anomaly)
            outcome = WebhookOutcome.PROMOTED_FOR_REVIEW

        store.delete(order_number)
        logger.info(f"Order #{order.order_number} created from pending order ({outcome.value})")
        return outcome
