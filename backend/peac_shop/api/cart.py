"""
Cart API Endpoints

Stateless carts carried in signed cart tokens. The server keeps nothing:
every response returns the token the client must send next.
"""
from fastapi import APIRouter, Body, Depends
from typing import Any, Dict, Optional
import logging

from ..dependencies import ShopServices, get_services

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/cart")
async def create_cart(services: ShopServices = Depends(get_services)) -> Dict[str, Any]:
    """
    Open an empty cart.

    Returns:
        {
            "cart_id": str,   # cart_*
            "items": [],
            "cart_token": str
        }
    """
    cart = services.cart_service.open()
    return {
        "cart_id": cart.cart_id,
        "items": cart.items,
        "cart_token": cart.cart_token
    }


@router.post("/cart/{cart_id}/add")
async def add_to_cart(
    cart_id: str,
    payload: Optional[Dict[str, Any]] = Body(None),
    services: ShopServices = Depends(get_services)
) -> Dict[str, Any]:
    """
    Add an item to a cart and receive the re-signed token.

    Request Body:
        {"sku": str, "qty": int (default 1), "cart_token": str}

    Returns:
        {
            "items": [{"sku", "title", "price", "qty"}],
            "cart_token": str
        }

    Example:
        POST /api/shop/cart/cart_x1y2z3/add
        {"sku": "sku_tea", "qty": 2, "cart_token": "eyJ..."}
    """
    payload = payload or {}
    cart = services.cart_service.add(
        cart_id,
        payload.get("cart_token"),
        payload.get("sku"),
        payload.get("qty"),
    )
    return {
        "items": cart.items,
        "cart_token": cart.cart_token
    }
