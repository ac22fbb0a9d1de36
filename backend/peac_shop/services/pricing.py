"""
Pricing and Item Fingerprints

Normalizes buyer-supplied item lists, prices them against the catalog, and
computes the items fingerprint that binds a payment session to one exact
basket.
"""
import hashlib
import json
from dataclasses import dataclass
from typing import Any, Dict, List

from ..exceptions import ValidationError, invalid_sku
from ..mocks.catalog import Catalog
from ..models.orders import OrderItem
from ..models.tokens import CartLine


def create_canonical_json(data: Any) -> str:
    """
    Create canonical JSON representation for hashing.

    Ensures consistent serialization:
    - Sorted keys
    - No whitespace
    """
    return json.dumps(data, sort_keys=True, separators=(',', ':'))


def sha256_hex(data: Any) -> str:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def cents_to_usd(cents: int) -> float:
    return round(cents / 100, 2)


def parse_qty(value: Any) -> int:
    """
    Validate a quantity: missing means 1, otherwise a positive integer.

    Raises:
        ValidationError: qty is not a positive integer
    """
    if value is None:
        return 1
    # bool is an int subclass
    if isinstance(value, bool):
        raise ValidationError("invalid_qty", "qty must be a positive integer")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int) or value <= 0:
        raise ValidationError("invalid_qty", "qty must be a positive integer")
    return value


def normalize_items(raw_items: Any) -> List[CartLine]:
    """
    Normalize a direct-checkout item list.

    Args:
        raw_items: List of {"sku": str, "qty": int?} from the request body

    Returns:
        Lines sorted by sku, duplicate skus merged by summing qty

    Raises:
        ValidationError: missing_items, invalid_items, invalid_qty
    """
    if not isinstance(raw_items, list) or len(raw_items) == 0:
        raise ValidationError("missing_items", "items array required")

    merged: Dict[str, int] = {}
    for item in raw_items:
        if not isinstance(item, dict):
            raise ValidationError("invalid_items", "each item must be an object with a sku")
        sku = item.get("sku")
        if not isinstance(sku, str) or not sku:
            raise ValidationError("invalid_items", "each item must be an object with a sku")
        merged[sku] = merged.get(sku, 0) + parse_qty(item.get("qty"))

    return [CartLine(sku=sku, qty=qty) for sku, qty in sorted(merged.items())]


def canonical_lines(lines: List[CartLine]) -> List[CartLine]:
    """Sort by sku and merge duplicates (cart tokens are already merged)."""
    merged: Dict[str, int] = {}
    for line in lines:
        merged[line.sku] = merged.get(line.sku, 0) + line.qty
    return [CartLine(sku=sku, qty=qty) for sku, qty in sorted(merged.items())]


def items_fingerprint(lines: List[CartLine]) -> str:
    """SHA-256 hex of the canonical, sku-sorted {sku, qty} list."""
    canonical = [
        {"sku": line.sku, "qty": line.qty}
        for line in canonical_lines(lines)
    ]
    return sha256_hex(create_canonical_json(canonical))


@dataclass(frozen=True)
class PricedBasket:
    """Result of the QUOTING step."""
    lines: List[CartLine]
    order_items: List[OrderItem]
    subtotal_cents: int
    fingerprint: str

    @property
    def grand_total(self) -> float:
        return cents_to_usd(self.subtotal_cents)


def price_basket(lines: List[CartLine], catalog: Catalog) -> PricedBasket:
    """
    Resolve every sku against the catalog and total the basket.

    Raises:
        ValidationError: invalid_sku if any sku is unknown
    """
    lines = canonical_lines(lines)
    order_items: List[OrderItem] = []
    subtotal_cents = 0

    for line in lines:
        product = catalog.get(line.sku)
        if product is None:
            raise invalid_sku(line.sku)
        order_items.append(OrderItem(
            sku=line.sku,
            title=product.title,
            qty=line.qty,
            unit_price_usd=product.price_usd,
        ))
        subtotal_cents += line.qty * product.price_cents

    return PricedBasket(
        lines=lines,
        order_items=order_items,
        subtotal_cents=subtotal_cents,
        fingerprint=items_fingerprint(lines),
    )
