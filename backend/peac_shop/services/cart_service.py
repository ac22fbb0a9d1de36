"""
Cart Service

Stateless carts: the signed cart token is the only source of truth. Opening
a cart issues a token with no items; adding an item verifies the supplied
token and issues a new one. Losing the token loses the cart.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..exceptions import ValidationError, cart_id_mismatch, invalid_cart_token, invalid_sku
from ..mocks.catalog import Catalog
from ..models.tokens import CartClaims
from .pricing import parse_qty
from .token_codec import TokenError
from .tokens import CartTokens, new_id, now_iso

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CartView:
    cart_id: str
    cart_token: str
    items: List[Dict[str, Any]]


class CartService:

    def __init__(self, cart_tokens: CartTokens, catalog: Catalog):
        self.cart_tokens = cart_tokens
        self.catalog = catalog

    def open(self) -> CartView:
        """Create an empty cart and its first token."""
        cart = CartClaims(cart_id=new_id("cart_"), items=[], created_at=now_iso())
        token = self.cart_tokens.issue(cart)
        logger.info(f"Opened cart {cart.cart_id}")
        return CartView(cart_id=cart.cart_id, cart_token=token, items=[])

    def load(self, cart_id: Optional[str], cart_token: Optional[str]) -> CartClaims:
        """
        Verify a cart token and check it belongs to cart_id.

        Raises:
            ValidationError: missing_cart_id, missing_cart_token
            IntegrityError: invalid_cart_token, cart_id_mismatch
        """
        if not cart_id:
            raise ValidationError("missing_cart_id", "cart_id required")
        if not cart_token:
            raise ValidationError("missing_cart_token", "Cart token required")
        try:
            cart = self.cart_tokens.verify(cart_token)
        except TokenError as e:
            logger.warning(f"Cart token rejected for {cart_id}: {e.reason}")
            raise invalid_cart_token() from e
        if cart.cart_id != cart_id:
            raise cart_id_mismatch()
        return cart

    def add(self, cart_id: str, cart_token: Optional[str], sku: Optional[str], qty: Any = None) -> CartView:
        """
        Add qty of sku to the cart and re-sign.

        Returns:
            CartView with the new token and items enriched with title/price
        """
        if not isinstance(sku, str) or not sku:
            raise ValidationError("missing_sku", "sku required")
        if not cart_token:
            raise ValidationError("missing_cart_token", "Cart token required")
        quantity = parse_qty(qty)
        if self.catalog.get(sku) is None:
            raise invalid_sku(sku)

        cart = self.load(cart_id, cart_token).with_item(sku, quantity)
        new_token = self.cart_tokens.issue(cart)
        logger.info(f"Cart {cart_id}: added {quantity} x {sku}, {len(cart.items)} lines")

        return CartView(cart_id=cart.cart_id, cart_token=new_token, items=self.enrich(cart))

    def enrich(self, cart: CartClaims) -> List[Dict[str, Any]]:
        enriched = []
        for line in cart.items:
            product = self.catalog.get(line.sku)
            enriched.append({
                "sku": line.sku,
                "title": product.title if product else "Unknown",
                "price": product.price_usd if product else 0,
                "qty": line.qty,
            })
        return enriched
