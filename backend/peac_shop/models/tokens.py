"""
Pydantic Token Claim Models

Claims carried inside session, cart and receipt envelopes.
Field names are the wire names; models round-trip through JSON unchanged.
"""
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Session Token (402 challenge)
# ============================================================================

class SessionClaims(BaseModel):
    """
    Payment challenge issued with a 402 response.

    `amount` is fixed at issuance. On retry the server recomputes amount and
    fingerprint from the current request and compares them to these values.
    """
    session_id: str = Field(pattern="^sess_")
    subject: str
    amount: float = Field(ge=0)
    currency: str
    chain: str
    rail: Literal["x402"] = "x402"
    issued_at: str
    items_fingerprint: Optional[str] = None
    exp: Optional[int] = None

    model_config = ConfigDict(frozen=True, extra="forbid")


# ============================================================================
# Cart Token (stateless cart)
# ============================================================================

class CartLine(BaseModel):
    """One (sku, quantity) line in a cart."""
    sku: str = Field(min_length=1)
    qty: int = Field(gt=0)

    model_config = ConfigDict(frozen=True, extra="forbid")


class CartClaims(BaseModel):
    """
    Stateless cart value.

    The token is the only source of truth for the cart. Adding an item
    produces a new value (and a new token); old tokens stay valid as stale
    snapshots.
    """
    cart_id: str = Field(pattern="^cart_")
    items: List[CartLine] = Field(default_factory=list)
    created_at: str

    model_config = ConfigDict(frozen=True, extra="forbid")

    def with_item(self, sku: str, qty: int) -> "CartClaims":
        """Return a new cart with qty of sku added (merged if already present)."""
        items: List[CartLine] = []
        merged = False
        for line in self.items:
            if line.sku == sku:
                items.append(CartLine(sku=sku, qty=line.qty + qty))
                merged = True
            else:
                items.append(line)
        if not merged:
            items.append(CartLine(sku=sku, qty=qty))
        return CartClaims(cart_id=self.cart_id, items=items, created_at=self.created_at)


# ============================================================================
# Receipt Token (PEAC receipt)
# ============================================================================

class ReceiptRequest(BaseModel):
    method: str
    path: str
    query: str = ""


class ReceiptResponse(BaseModel):
    status: int
    body_sha256: str = Field(pattern="^[0-9a-f]{64}$")


class ReceiptPayment(BaseModel):
    rail: Literal["x402"] = "x402"
    amount: float
    currency: str
    chain: str
    proof_id: str
    session_id: str
    payer: str


class ReceiptPolicy(BaseModel):
    aipref_url: str
    aipref_snapshot: Dict[str, Any]


class ReceiptProvenance(BaseModel):
    c2pa: Optional[Dict[str, Any]] = None


class ReceiptClaims(BaseModel):
    """
    Portable proof binding a payment to a response body and policy snapshot.

    `response.body_sha256` is the SHA-256 of the exact order bytes returned
    alongside the receipt.
    """
    receipt_version: str
    issued_at: str
    subject: str = "order"
    request: ReceiptRequest
    response: ReceiptResponse
    payment: ReceiptPayment
    order: Optional[Dict[str, Any]] = None
    policy: ReceiptPolicy
    provenance: ReceiptProvenance = Field(default_factory=ReceiptProvenance)
    verify_url: str

    model_config = {
        "json_schema_extra": {
            "example": {
                "receipt_version": "0.9.27",
                "issued_at": "2026-01-01T00:00:00.000Z",
                "subject": "order",
                "request": {"method": "POST", "path": "/api/shop/checkout-direct", "query": ""},
                "response": {"status": 200, "body_sha256": "0" * 64},
                "payment": {
                    "rail": "x402",
                    "amount": 0.01,
                    "currency": "USDC",
                    "chain": "base",
                    "proof_id": "demo-pay-ok-123",
                    "session_id": "sess_abc123",
                    "payer": "demo-payer"
                },
                "policy": {"aipref_url": "http://localhost:8000/aipref.json", "aipref_snapshot": {}},
                "provenance": {"c2pa": None},
                "verify_url": "http://localhost:8000/api/verify"
            }
        }
    }
