"""
Checkout API Endpoints

x402 checkout in two round trips:

1. POST without X-402-Proof -> 402 with a signed session token
2. POST again with X-402-Session, X-402-Proof and optional Idempotency-Key
   -> 200 with the order body and a PEAC-Receipt header

Both the cart and the direct variant share one state machine.
"""
from fastapi import APIRouter, Body, Depends, Header, Request, Response
from typing import Any, Dict, Optional
import logging

from ..dependencies import ShopServices, get_services
from ..services.checkout_service import CheckoutOutcome, PaymentHeaders, Quote, RequestInfo

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_response(outcome: CheckoutOutcome) -> Response:
    # body bytes are exactly what the receipt hashes; no re-serialization
    return Response(
        content=outcome.body,
        status_code=outcome.status_code,
        media_type="application/json",
        headers=outcome.headers,
    )


async def _run_checkout(
    services: ShopServices,
    quote: Quote,
    request: Request,
    proof_id: Optional[str],
    session_token: Optional[str],
    idempotency_key: Optional[str]
) -> Response:
    outcome = await services.checkout_service.checkout(
        quote,
        PaymentHeaders(
            proof_id=proof_id,
            session_token=session_token,
            idempotency_key=idempotency_key,
        ),
        RequestInfo(
            method=request.method,
            path=request.url.path,
            query=request.url.query,
        ),
    )
    return _to_response(outcome)


@router.post("/checkout")
async def checkout_cart(
    request: Request,
    payload: Optional[Dict[str, Any]] = Body(None),
    x_402_proof: Optional[str] = Header(None, alias="X-402-Proof"),
    x_402_session: Optional[str] = Header(None, alias="X-402-Session"),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    services: ShopServices = Depends(get_services)
) -> Response:
    """
    Check out a signed cart.

    Request Body:
        {"cart_id": str, "cart_token": str}

    Headers (retry only):
        X-402-Session: session token from the 402 response
        X-402-Proof: payment proof id
        Idempotency-Key: optional, makes retries return the same order

    Returns:
        402 payment_required, or 200 order JSON with PEAC-Receipt
    """
    payload = payload or {}
    quote = services.checkout_service.quote_cart(payload.get("cart_id"), payload.get("cart_token"))
    logger.info(f"Cart checkout: {quote.subject}, total ${quote.basket.grand_total}")
    return await _run_checkout(services, quote, request, x_402_proof, x_402_session, idempotency_key)


@router.post("/checkout-direct")
async def checkout_direct(
    request: Request,
    payload: Optional[Dict[str, Any]] = Body(None),
    x_402_proof: Optional[str] = Header(None, alias="X-402-Proof"),
    x_402_session: Optional[str] = Header(None, alias="X-402-Session"),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    services: ShopServices = Depends(get_services)
) -> Response:
    """
    Check out an explicit item list without a cart.

    Request Body:
        {"items": [{"sku": str, "qty": int}]}

    Example:
        POST /api/shop/checkout-direct
        {"items": [{"sku": "sku_tea", "qty": 1}]}
    """
    payload = payload or {}
    quote = services.checkout_service.quote_direct(payload.get("items"))
    logger.info(f"Direct checkout: {len(quote.basket.lines)} lines, total ${quote.basket.grand_total}")
    return await _run_checkout(services, quote, request, x_402_proof, x_402_session, idempotency_key)
