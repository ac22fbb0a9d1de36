"""
Pydantic Order Model

The order returned as the body of a paid checkout. Its exact serialized bytes
are what the receipt's body_sha256 commits to.
"""
from typing import List

from pydantic import BaseModel, Field


class OrderItem(BaseModel):
    """Line item enriched with catalog data at checkout time."""
    sku: str
    title: str
    qty: int = Field(gt=0)
    unit_price_usd: float = Field(ge=0)


class OrderTotals(BaseModel):
    """All monetary values in dollars, rounded to 2 decimal places."""
    subtotal: float
    tax: float = 0
    fees: float = 0
    grand_total: float


class Order(BaseModel):
    """
    Order created exactly once per verified payment.

    order_id is derived from (session_id, items_fingerprint) so re-deriving it
    from the same inputs always yields the same id.
    """
    order_id: str = Field(pattern="^ord_")
    items: List[OrderItem]
    totals: OrderTotals
    created_at: str

    model_config = {
        "json_schema_extra": {
            "example": {
                "order_id": "ord_3f1c9a0b5d2e7f64",
                "items": [
                    {"sku": "sku_tea", "title": "Sencha Green Tea Sample", "qty": 1, "unit_price_usd": 0.01}
                ],
                "totals": {"subtotal": 0.01, "tax": 0, "fees": 0, "grand_total": 0.01},
                "created_at": "2026-01-01T00:00:00.000Z"
            }
        }
    }
