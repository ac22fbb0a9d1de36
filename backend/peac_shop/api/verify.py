"""
Receipt Verification Endpoint

Convenience wrapper over the offline verifier. Third parties do not need it:
any holder of the issuer public key can verify a receipt locally.
"""
from fastapi import APIRouter, Body, Depends
from typing import Any, Dict, Optional
import logging

from ..dependencies import ShopServices, get_services
from ..exceptions import ValidationError
from ..services.token_codec import MalformedTokenError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/verify")
async def verify_receipt_endpoint(
    payload: Optional[Dict[str, Any]] = Body(None),
    services: ShopServices = Depends(get_services)
) -> Dict[str, Any]:
    """
    Verify a PEAC receipt.

    Request Body:
        {
            "receipt": str,           # compact JWS from PEAC-Receipt
            "public_jwk": dict        # optional, defaults to this issuer's key
        }

    Returns:
        {"valid": bool, "payload": dict, "header": dict, "reason": str?}
    """
    payload = payload or {}
    receipt = payload.get("receipt")
    if not receipt or not isinstance(receipt, str):
        raise ValidationError("missing_receipt", "receipt required")

    public_jwk = payload.get("public_jwk")
    if public_jwk is not None and not isinstance(public_jwk, dict):
        raise ValidationError("invalid_public_key", "public_jwk must be a JWK object")

    try:
        result = services.receipt_verifier.verify(receipt, public_jwk)
    except MalformedTokenError as e:
        raise ValidationError("malformed_receipt", str(e))
    except ValueError as e:
        raise ValidationError("invalid_public_key", str(e))

    logger.info(f"Receipt verification: valid={result.valid}")
    return result.to_dict()
