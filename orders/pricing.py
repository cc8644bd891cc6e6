"""
Pricing Resolver - authoritative prices for cart lines at order time.

Read-only: reports stock shortfalls but never changes stock. The same
items against an unchanged catalog always price the same.
"""
import logging
from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from core.exceptions import OrderValidationError, OutOfStockError, ProductUnavailableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PricedItem:
    """Immutable line item snapshot stored on orders and pending orders."""
    product_id: int
    sku: str
    name: str
    price: Decimal
    quantity: int
    size: Optional[str] = None
    color: Optional[str] = None
    image: str = ''

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['price'] = str(self.price)
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'PricedItem':
        return cls(
            product_id=data['product_id'],
            sku=data.get('sku', ''),
            name=data.get('name', ''),
            price=Decimal(str(data['price'])),
            quantity=int(data['quantity']),
            size=data.get('size') or None,
            color=data.get('color') or None,
            image=data.get('image') or '',
        )


@dataclass(frozen=True)
class PricedCart:
    items: Tuple[PricedItem, ...]
    subtotal: Decimal


def validate_cart_items(items: List[Dict]) -> None:
    """
    Validate cart line structure.

    Raises:
        OrderValidationError: If validation fails
    """
    if not items:
        raise OrderValidationError("Order must contain at least one item")

    seen = set()
    for idx, item in enumerate(items):
        if 'product_id' not in item:
            raise OrderValidationError(f"Item {idx}: missing 'product_id'")

        quantity = item.get('quantity')
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
            raise OrderValidationError(f"Item {idx}: quantity must be a positive integer")

        key = (item['product_id'], item.get('size') or None)
        if key in seen:
            raise OrderValidationError(f"Item {idx}: duplicate product_id {item['product_id']}")
        seen.add(key)


def resolve_prices(items: List[Dict]) -> PricedCart:
    """
    Price cart lines against the catalog.

    Args:
        items: List of dicts with 'product_id', 'quantity' and optional
            'sku', 'size', 'color'

    Returns:
        PricedCart with one snapshot per line, in request order

    Raises:
        OrderValidationError: Malformed lines, or missing size for a sized product
        ProductUnavailableError: Product missing, disabled, or size unknown
        OutOfStockError: Not enough stock for a line right now
    """
    from inventory.models import Product

    validate_cart_items(items)

    product_ids = {item['product_id'] for item in items}
    products = {
        p.id: p for p in Product.objects.filter(id__in=product_ids).prefetch_related('variants')
    }

    priced = []
    subtotal = Decimal('0.00')

    for item in items:
        product = products.get(item['product_id'])
        if product is None:
            raise ProductUnavailableError(f"Product not found: {item.get('sku') or item['product_id']}")
        if not product.is_available:
            raise ProductUnavailableError(f"Product {product.name} is unavailable")

        size = item.get('size') or None
        variants = {v.size: v for v in product.variants.all()}
        if size:
            variant = variants.get(size)
            if variant is None:
                raise ProductUnavailableError(f"Size {size} not found for {product.name}")
            available = variant.stock
        elif variants:
            raise OrderValidationError(f"Please select a size for {product.name}")
        else:
            available = product.stock

        quantity = item['quantity']
        if available < quantity:
            raise OutOfStockError(product.id, product.name, quantity, available, size=size)

        line = PricedItem(
            product_id=product.id,
            sku=item.get('sku') or product.sku,
            name=product.name,
            price=product.unit_price,
            quantity=quantity,
            size=size,
            color=item.get('color') or None,
            image=product.image_url,
        )
        priced.append(line)
        subtotal += line.line_total

    return PricedCart(items=tuple(priced), subtotal=subtotal)
