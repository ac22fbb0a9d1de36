"""
Mock Product Catalog

Simulates the storefront catalog the checkout prices against.
Prices are held in integer cents so totals are exact.

The checkout only relies on get(sku) -> Product | None.
"""
from typing import Any, Dict, Iterable, List, Optional
from dataclasses import dataclass, replace
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Product:
    """Product data structure."""
    sku: str
    title: str
    description: str
    category: str
    price_cents: int

    @property
    def price_usd(self) -> float:
        return round(self.price_cents / 100, 2)


# Demo catalog - micro-priced items for agent checkouts
PRODUCT_CATALOG: List[Product] = [
    Product(
        sku="sku_tea",
        title="Sencha Green Tea Sample",
        description="Single-serve sencha sachet",
        category="Pantry",
        price_cents=1,  # $0.01
    ),
    Product(
        sku="sku_coffee",
        title="Single Origin Coffee Sample",
        description="One pour-over portion, Ethiopia Yirgacheffe",
        category="Pantry",
        price_cents=2,  # $0.02
    ),
    Product(
        sku="sku_sticker",
        title="PEAC Protocol Sticker",
        description="Die-cut vinyl sticker",
        category="Merch",
        price_cents=5,  # $0.05
    ),
    Product(
        sku="sku_dataset",
        title="Weather Dataset Snapshot",
        description="24h of hourly observations, CSV",
        category="Data",
        price_cents=25,  # $0.25
    ),
    Product(
        sku="sku_report",
        title="Market Research Report",
        description="PDF report with licensing for AI summarization",
        category="Data",
        price_cents=1999,  # $19.99
    ),
]


class Catalog:
    """Read-only sku -> product lookup."""

    def __init__(self, products: Iterable[Product]):
        self._products: Dict[str, Product] = {p.sku: p for p in products}

    def get(self, sku: str) -> Optional[Product]:
        return self._products.get(sku)

    def list_products(self) -> List[Dict[str, Any]]:
        return [
            {
                "sku": p.sku,
                "title": p.title,
                "description": p.description,
                "category": p.category,
                "price_usd": p.price_usd,
            }
            for p in self._products.values()
        ]

    def with_price(self, sku: str, price_cents: int) -> "Catalog":
        """Return a copy of the catalog with one product repriced."""
        products = dict(self._products)
        products[sku] = replace(products[sku], price_cents=price_cents)
        logger.info(f"Catalog repriced {sku} to ${price_cents / 100:.2f}")
        return Catalog(products.values())


def default_catalog() -> Catalog:
    return Catalog(PRODUCT_CATALOG)
