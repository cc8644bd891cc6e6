"""
Stock ledger operations - atomic deduct / restore of unit stock.

Every decrement is a conditional UPDATE (``stock >= quantity``), so two
transactions racing for the last units cannot both succeed. Callers must
run these inside ``transaction.atomic()``: a failure on any line raises
and the caller's transaction rolls back the lines already deducted.
"""
import logging
from typing import Iterable, Optional, Protocol

from django.db import transaction
from django.db.models import F

from core.exceptions import InsufficientStockError
from .models import Product, ProductVariant

logger = logging.getLogger(__name__)


class StockLine(Protocol):
    product_id: int
    name: str
    quantity: int
    size: Optional[str]


def _ordered(lines: Iterable[StockLine]):
    # Fixed lock order across transactions prevents deadlocks
    return sorted(lines, key=lambda line: (line.product_id, line.size or ''))


def _available(line: StockLine) -> Optional[int]:
    if line.size:
        qs = ProductVariant.objects.filter(product_id=line.product_id, size=line.size)
    else:
        qs = Product.objects.filter(pk=line.product_id)
    return qs.values_list('stock', flat=True).first()


def deduct_stock(lines: Iterable[StockLine]) -> None:
    """
    Deduct every line's quantity or raise InsufficientStockError.

    Raises:
        InsufficientStockError: A line's stock record is missing or too low
    """
    if not transaction.get_connection().in_atomic_block:
        raise RuntimeError('deduct_stock must run inside transaction.atomic()')

    for line in _ordered(lines):
        if line.size:
            updated = ProductVariant.objects.filter(
                product_id=line.product_id,
                size=line.size,
                stock__gte=line.quantity,
            ).update(stock=F('stock') - line.quantity)
        else:
            updated = Product.objects.filter(
                pk=line.product_id,
                stock__gte=line.quantity,
            ).update(stock=F('stock') - line.quantity)

        if not updated:
            raise InsufficientStockError(
                line.product_id, line.name, line.quantity, _available(line), size=line.size
            )

        logger.debug(f"Deducted {line.quantity} of product {line.product_id} (size {line.size})")


def restore_stock(lines: Iterable[StockLine]) -> None:
    """
    Put every line's quantity back.

    Lines whose product or size has since been removed are skipped with a warning.
    """
    for line in _ordered(lines):
        if line.size:
            updated = ProductVariant.objects.filter(
                product_id=line.product_id, size=line.size
            ).update(stock=F('stock') + line.quantity)
        else:
            updated = Product.objects.filter(
                pk=line.product_id
            ).update(stock=F('stock') + line.quantity)

        if not updated:
            logger.warning(
                f"Could not restore {line.quantity} of product {line.product_id} "
                f"(size {line.size}): stock record no longer exists"
            )
