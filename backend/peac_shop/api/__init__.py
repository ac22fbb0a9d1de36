"""
HTTP routers for the PEAC x402 shop.
"""
from .cart import router as cart_router
from .checkout import router as checkout_router
from .catalog import router as catalog_router
from .verify import router as verify_router

__all__ = ["cart_router", "checkout_router", "catalog_router", "verify_router"]
