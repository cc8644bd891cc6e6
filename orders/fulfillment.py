"""
Order Fulfillment State Machine.

    PENDING -> CONFIRMED -> PROCESSING -> SHIPPED -> DELIVERED
    PENDING, CONFIRMED               -> CANCELLED
    SHIPPED, DELIVERED               -> RETURNED
    CONFIRMED .. DELIVERED           -> REFUNDED (online payments only)

CANCELLED, RETURNED and REFUNDED are terminal and give the order's stock
back. The order's stock_status, not its previous status, decides whether
stock is restored, so no sequence of requests can restore twice.
"""
import logging
from typing import Optional

from django.db import transaction

from core.exceptions import InvalidStatusTransition, ValidationError
from inventory.ledger import restore_stock
from .models import Order

logger = logging.getLogger(__name__)

Status = Order.Status

TRANSITIONS = {
    Status.PENDING: {Status.CONFIRMED, Status.CANCELLED},
    Status.CONFIRMED: {Status.PROCESSING, Status.CANCELLED, Status.REFUNDED},
    Status.PROCESSING: {Status.SHIPPED, Status.REFUNDED},
    Status.SHIPPED: {Status.DELIVERED, Status.RETURNED, Status.REFUNDED},
    Status.DELIVERED: {Status.RETURNED, Status.REFUNDED},
    Status.CANCELLED: set(),
    Status.RETURNED: set(),
    Status.REFUNDED: set(),
}

RESTOCKING_STATUSES = {Status.CANCELLED, Status.RETURNED, Status.REFUNDED}

CUSTOMER_CANCELLABLE = {Status.PENDING}


def check_transition(order: Order, new_status: str) -> None:
    """
    Raises:
        InvalidStatusTransition: new_status is not reachable from the current status
    """
    if new_status not in Status.values:
        raise InvalidStatusTransition(order.status, new_status, 'unknown status')
    if new_status not in TRANSITIONS[order.status]:
        raise InvalidStatusTransition(order.status, new_status)
    if new_status == Status.REFUNDED:
        if not order.is_online_payment:
            raise InvalidStatusTransition(order.status, new_status, 'only online payments can be refunded')
        if order.stock_status == Order.StockStatus.RESTORED:
            raise InvalidStatusTransition(order.status, new_status, 'stock already restored')


def _schedule_status_notification(order: Order) -> None:
    def _notify():
        try:
            from notifications.services import notify_status_change
            notify_status_change(order)
        except Exception as e:
            logger.error(f"Status email failed for order #{order.order_number}: {e}")

    transaction.on_commit(_notify)


def transition_order(order_id: int, new_status: str, tracking_number: Optional[str] = None,
                     allowed_from: Optional[set] = None) -> Order:
    """
    Move an order to a new status, restoring stock for terminal side branches.

    Requesting the status the order already has is a no-op.

    Args:
        order_id: Order primary key
        new_status: Target Order.Status value
        tracking_number: Required when new_status is SHIPPED
        allowed_from: Further restrict the statuses the move may start from

    Raises:
        Order.DoesNotExist: Unknown order
        ValidationError: SHIPPED without a tracking number
        InvalidStatusTransition: Transition not allowed
    """
    new_status = (new_status or '').upper()
    tracking_number = (tracking_number or '').strip()

    with transaction.atomic():
        order = Order.objects.select_for_update().get(pk=order_id)

        if order.status == new_status:
            logger.info(f"Order #{order.order_number} already {new_status}, nothing to do")
            return order

        if allowed_from is not None and order.status not in allowed_from:
            raise InvalidStatusTransition(order.status, new_status, 'order can no longer be cancelled online')
        check_transition(order, new_status)

        update_fields = ['status', 'updated_at']
        if new_status == Status.SHIPPED:
            if not tracking_number:
                raise ValidationError('Tracking number required')
            order.tracking_number = tracking_number
            update_fields.append('tracking_number')

        if new_status in RESTOCKING_STATUSES and order.stock_status == Order.StockStatus.DEDUCTED:
            restore_stock(order.line_items)
            order.stock_status = Order.StockStatus.RESTORED
            update_fields.append('stock_status')
            logger.info(f"Order #{order.order_number}: stock restored ({new_status})")

        previous = order.status
        order.status = new_status
        order.save(update_fields=update_fields)

        _schedule_status_notification(order)

    logger.info(f"Order #{order.order_number}: {previous} -> {new_status}")
    return order


def cancel_order_by_customer(order: Order) -> Order:
    """
    Customer-initiated cancellation, allowed only before the shop confirms.

    Raises:
        InvalidStatusTransition: Order is past the cancellable window
    """
    return transition_order(order.pk, Status.CANCELLED, allowed_from=CUSTOMER_CANCELLABLE)
