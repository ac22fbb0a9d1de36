"""
Catalog and Public Key Endpoints

Read-only endpoints an agent needs around a checkout: the product catalog
and the issuer public key used to verify receipts offline.
"""
from fastapi import APIRouter, Depends
from typing import Any, Dict
import logging

from ..dependencies import ShopServices, get_services
from ..exceptions import PeacError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/api/shop/catalog")
async def get_catalog(services: ShopServices = Depends(get_services)) -> Dict[str, Any]:
    """
    List purchasable products.

    Returns:
        {
            "count": int,
            "items": [{"sku", "title", "description", "category", "price_usd"}]
        }
    """
    products = services.catalog.list_products()
    logger.debug(f"Catalog listing: {len(products)} products")
    return {
        "count": len(products),
        "items": products
    }


@router.get("/public-keys/{kid}.json")
async def get_public_key(kid: str, services: ShopServices = Depends(get_services)) -> Dict[str, Any]:
    """Publish the receipt signing key as a JWK."""
    key_manager = services.key_manager
    if kid != key_manager.kid:
        raise PeacError("unknown_kid", f"No public key with kid {kid}", status_code=404)
    return key_manager.public_jwk()


