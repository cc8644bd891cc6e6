"""
PayHere checkout signing and notification verification.

Both hashes use the merchant secret only in its MD5-hashed, upper-cased
form:

    checkout:  MD5(merchant_id + order_id + amount + currency + MD5(secret))
    notify:    MD5(merchant_id + order_id + payhere_amount + payhere_currency
                   + status_code + MD5(secret))
"""
import hashlib
import hmac
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Mapping

from django.conf import settings

from core.exceptions import InvalidSignatureError, PaymentConfigurationError

STATUS_SUCCESS = '2'
STATUS_PENDING = '0'
STATUS_CANCELLED = '-1'
STATUS_FAILED = '-2'
STATUS_CHARGEDBACK = '-3'

NOTIFY_FIELDS = (
    'merchant_id', 'order_id', 'payment_id', 'payhere_amount',
    'payhere_currency', 'status_code', 'md5sig',
)


def _md5_upper(value: str) -> str:
    return hashlib.md5(value.encode('utf-8')).hexdigest().upper()


def format_amount(amount: Decimal) -> str:
    """PayHere expects exactly two decimals and no thousands separator."""
    return f"{Decimal(amount).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP):.2f}"


def get_credentials():
    merchant_id = settings.PAYHERE_MERCHANT_ID
    secret = settings.PAYHERE_SECRET
    if not merchant_id or not secret:
        raise PaymentConfigurationError()
    return merchant_id, secret


def checkout_hash(merchant_id: str, order_id: str, amount: str, currency: str, secret: str) -> str:
    return _md5_upper(f"{merchant_id}{order_id}{amount}{currency}{_md5_upper(secret)}")


def notification_signature(merchant_id: str, order_id: str, amount: str, currency: str,
                           status_code: str, secret: str) -> str:
    return _md5_upper(f"{merchant_id}{order_id}{amount}{currency}{status_code}{_md5_upper(secret)}")


def verify_notification(payload: Mapping[str, str]) -> None:
    """
    Check a notification's md5sig against our secret.

    Raises:
        InvalidSignatureError: Signature mismatch or foreign merchant id
        PaymentConfigurationError: Credentials are not configured
    """
    merchant_id, secret = get_credentials()
    expected = notification_signature(
        payload['merchant_id'],
        payload['order_id'],
        payload['payhere_amount'],
        payload['payhere_currency'],
        payload['status_code'],
        secret,
    )
    received = (payload.get('md5sig') or '').upper()
    signature_ok = hmac.compare_digest(expected, received)
    merchant_ok = hmac.compare_digest(str(payload['merchant_id']), str(merchant_id))
    if not (signature_ok and merchant_ok):
        raise InvalidSignatureError()


def build_checkout_request(order_number: str, amount: Decimal, email: str, shipping_address: Dict) -> Dict:
    """
    Signed form parameters the client posts to PayHere.

    Raises:
        PaymentConfigurationError: Credentials are not configured
    """
    merchant_id, secret = get_credentials()
    currency = settings.PAYHERE_CURRENCY
    formatted = format_amount(amount)
    address = shipping_address or {}

    return {
        'sandbox': settings.PAYHERE_SANDBOX,
        'merchant_id': merchant_id,
        'return_url': f"{settings.FRONTEND_URL}/checkout/success?orderNumber={order_number}",
        'cancel_url': f"{settings.FRONTEND_URL}/checkout",
        'notify_url': f"{settings.API_URL}/api/payments/payhere/notify/",
        'order_id': order_number,
        'items': f"Order #{order_number}",
        'currency': currency,
        'amount': formatted,
        'first_name': address.get('first_name') or 'Customer',
        'last_name': address.get('last_name') or '',
        'email': email,
        'phone': address.get('phone_number') or '',
        'address': address.get('address_line') or '',
        'city': address.get('city') or '',
        'country': settings.PAYHERE_COUNTRY,
        'hash': checkout_hash(merchant_id, order_number, formatted, currency, secret),
    }
