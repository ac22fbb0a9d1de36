"""
Typed PEAC Tokens

Session, cart and receipt envelopes built on the TokenCodec. Each kind has
its own type tag; claims are validated against their pydantic model on the
way in and on the way out.
"""
import secrets
import time
from datetime import datetime, timezone
from typing import Union

from pydantic import ValidationError as PydanticValidationError

from ..models.tokens import CartClaims, ReceiptClaims, SessionClaims
from .token_codec import (
    CART_TYPE,
    RECEIPT_TYPE,
    SESSION_TYPE,
    MalformedTokenError,
    TokenCodec,
)

_ID_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ_-"


def now_iso() -> str:
    """UTC timestamp with millisecond precision, e.g. 2026-01-01T00:00:00.000Z."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def new_id(prefix: str, length: int = 10) -> str:
    return prefix + "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


class SessionTokens:
    """402 payment challenge tokens."""

    def __init__(self, codec: TokenCodec, ttl_seconds: int = 0):
        self.codec = codec
        self.ttl_seconds = ttl_seconds

    def new_claims(
        self,
        subject: str,
        amount: float,
        currency: str,
        chain: str,
        items_fingerprint: str
    ) -> SessionClaims:
        exp = int(time.time()) + self.ttl_seconds if self.ttl_seconds > 0 else None
        return SessionClaims(
            session_id=new_id("sess_"),
            subject=subject,
            amount=amount,
            currency=currency,
            chain=chain,
            rail="x402",
            issued_at=now_iso(),
            items_fingerprint=items_fingerprint,
            exp=exp,
        )

    def issue(self, claims: SessionClaims) -> str:
        return self.codec.sign(SESSION_TYPE, claims.model_dump(exclude_none=True))

    def verify(self, token: Union[str, bytes]) -> SessionClaims:
        payload = self.codec.verify(SESSION_TYPE, token)
        try:
            return SessionClaims.model_validate(payload)
        except PydanticValidationError as e:
            raise MalformedTokenError(f"Session claims invalid: {e.error_count()} errors") from e


class CartTokens:
    """Stateless cart tokens."""

    def __init__(self, codec: TokenCodec):
        self.codec = codec

    def issue(self, cart: CartClaims) -> str:
        return self.codec.sign(CART_TYPE, cart.model_dump())

    def verify(self, token: Union[str, bytes]) -> CartClaims:
        payload = self.codec.verify(CART_TYPE, token)
        try:
            return CartClaims.model_validate(payload)
        except PydanticValidationError as e:
            raise MalformedTokenError(f"Cart claims invalid: {e.error_count()} errors") from e


class ReceiptTokens:
    """PEAC receipts. Verification lives in the offline ReceiptVerifier."""

    def __init__(self, codec: TokenCodec):
        self.codec = codec

    def issue(self, claims: ReceiptClaims) -> str:
        return self.codec.sign(RECEIPT_TYPE, claims.model_dump())
