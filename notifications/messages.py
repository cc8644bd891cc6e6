"""
Plain-text email bodies for order notifications.
"""
from typing import Optional

from django.conf import settings


def tracking_link(order) -> Optional[str]:
    """Where the customer can follow the order; None once a guest link would be closed."""
    if order.user_id:
        return f"{settings.FRONTEND_URL}/profile/orders/{order.id}"
    if not order.guest_tracking_open:
        return None
    return f"{settings.FRONTEND_URL}/track-order?token={order.guest_token}"


def _wrap(title: str, content: str, order) -> str:
    link = tracking_link(order)
    view = f"View your order: {link}\n\n" if link else ''
    return (
        f"{settings.SHOP_NAME}\n"
        f"{'=' * 47}\n"
        f"{title}\n"
        f"{'=' * 47}\n\n"
        f"{content.strip()}\n\n"
        f"{view}"
        f"Thank you for shopping with us.\n"
        f"Questions? Reply to this email.\n"
    )


def _invoice(order) -> str:
    lines = []
    for item in order.line_items:
        label = item.name
        if item.size:
            label = f"{label} ({item.size})"
        lines.append(f"  - {item.quantity}x {label} @ {item.price} = {item.line_total}")
    payment = 'Cash on delivery' if order.payment_method == order.PaymentMethod.COD else 'Paid online'
    summary = [f"Subtotal: {order.subtotal}"]
    if order.discount_amount:
        summary.append(f"Discount ({order.coupon_code}): -{order.discount_amount}")
    summary.append(f"Total ({payment}): {settings.PAYHERE_CURRENCY} {order.total_amount}")
    return "\n".join(lines + [''] + summary)


def order_confirmation(order):
    subject = f"Invoice & Confirmation #{order.order_number}"
    body = _wrap(f"Order Confirmed #{order.order_number}", f"""
Hi there,

Thank you for your order! We have received it and will be in touch shortly.

INVOICE
{_invoice(order)}
""", order)
    return subject, body


def shop_new_order(order):
    subject = f"New Order #{order.order_number} - {settings.PAYHERE_CURRENCY} {order.total_amount}"
    address = order.shipping_address or {}
    review = f"\nNEEDS MANUAL REVIEW: {order.review_note}\n" if order.requires_review else ''
    body = f"""
New order #{order.order_number} ({order.payment_method})
{review}
Customer: {address.get('first_name', '')} {address.get('last_name', '')} <{order.email}>
Phone: {address.get('phone_number', '')}
Address: {address.get('address_line', '')}, {address.get('city', '')}

{_invoice(order)}
""".strip() + "\n"
    return subject, body


def status_update(order):
    """Subject and body for a fulfillment status change, or None if the status has no email."""
    Status = order.Status
    if order.status == Status.PROCESSING:
        return (
            f"Order #{order.order_number} is Processing",
            _wrap("We're preparing your order", "Your order is being packed and will ship soon.", order),
        )
    if order.status == Status.SHIPPED:
        return (
            f"Order #{order.order_number} Shipped!",
            _wrap("Your order is on the way", f"Tracking number: {order.tracking_number}", order),
        )
    if order.status == Status.DELIVERED:
        return (
            f"Order Delivered #{order.order_number}",
            _wrap("Your order has been delivered", "We hope you enjoy your purchase.", order),
        )
    if order.status == Status.CANCELLED:
        return (
            f"Order Cancelled #{order.order_number}",
            _wrap("Your order was cancelled", "If you did not request this, please contact us.", order),
        )
    if order.status == Status.RETURNED:
        return (
            f"Order Returned #{order.order_number}",
            _wrap("We received your return", "Your returned items have been processed.", order),
        )
    if order.status == Status.REFUNDED:
        return (
            f"Order Refunded #{order.order_number}",
            _wrap(
                "Your refund has been issued",
                f"{settings.PAYHERE_CURRENCY} {order.total_amount} will be returned to your original payment method.",
                order,
            ),
        )
    return None
