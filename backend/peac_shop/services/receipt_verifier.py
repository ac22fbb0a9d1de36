"""
Offline PEAC Receipt Verifier

Given a receipt and the issuer's public key, confirm the signature and
surface the claims. No network access and no call back to the issuer: any
holder of the public key can authenticate a receipt standalone.

Routine failures (bad signature, unknown algorithm, wrong token type) return
valid=False. Only input that is not a JWS at all raises MalformedTokenError.
"""
import base64
import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from .key_manager import load_public_key
from .token_codec import (
    RECEIPT_TYPE,
    MalformedTokenError,
    TokenError,
    decode_envelope,
)


@dataclass(frozen=True)
class ReceiptVerification:
    valid: bool
    claims: Dict[str, Any] = field(default_factory=dict)
    header: Dict[str, Any] = field(default_factory=dict)
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        body = {"valid": self.valid, "payload": self.claims, "header": self.header}
        if self.reason:
            body["reason"] = self.reason
        return body


def _b64url_json(segment: str) -> Dict[str, Any]:
    padded = segment + "=" * (-len(segment) % 4)
    value = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    if not isinstance(value, dict):
        raise ValueError("segment is not a JSON object")
    return value


def parse_unverified(receipt_jws: str) -> Dict[str, Dict[str, Any]]:
    """
    Split a compact JWS into its header and claims without verifying.

    Raises:
        MalformedTokenError: Header or claims segment missing or not base64url JSON
    """
    if not isinstance(receipt_jws, str):
        raise MalformedTokenError("Receipt must be a string")
    parts = receipt_jws.strip().split(".")
    if len(parts) != 3 or not parts[0] or not parts[1]:
        raise MalformedTokenError("Receipt is not a compact JWS")
    try:
        header = _b64url_json(parts[0])
        claims = _b64url_json(parts[1])
    except (ValueError, UnicodeDecodeError) as e:
        raise MalformedTokenError(f"Receipt segments are not base64url JSON: {e}") from e
    return {"header": header, "claims": claims}


def verify_receipt(receipt_jws: str, issuer_public_key: Union[str, bytes, Dict[str, Any], Any]) -> ReceiptVerification:
    """
    Verify a PEAC receipt against the issuer public key.

    Args:
        receipt_jws: Compact JWS from the PEAC-Receipt header
        issuer_public_key: JWK (dict or JSON), PEM, or Ed25519PublicKey

    Returns:
        ReceiptVerification with claims and header surfaced either way

    Raises:
        MalformedTokenError: receipt cannot be parsed
        ValueError: public key cannot be parsed
    """
    unverified = parse_unverified(receipt_jws)
    public_key = load_public_key(issuer_public_key)

    try:
        claims, header = decode_envelope(receipt_jws.strip(), public_key, RECEIPT_TYPE)
    except MalformedTokenError:
        raise
    except TokenError as e:
        return ReceiptVerification(
            valid=False,
            claims=unverified["claims"],
            header=unverified["header"],
            reason=e.reason,
        )

    return ReceiptVerification(valid=True, claims=claims, header=header)


def body_matches_receipt(body: bytes, claims: Dict[str, Any]) -> bool:
    """True if body is exactly the response the receipt commits to."""
    expected = claims.get("response", {}).get("body_sha256")
    return expected == hashlib.sha256(body).hexdigest()


class ReceiptVerifier:
    """Verifier bound to one issuer key (used by the /api/verify endpoint)."""

    def __init__(self, issuer_public_jwk: Dict[str, Any]):
        self.issuer_public_jwk = issuer_public_jwk

    def verify(self, receipt_jws: str, public_jwk: Optional[Dict[str, Any]] = None) -> ReceiptVerification:
        return verify_receipt(receipt_jws, public_jwk or self.issuer_public_jwk)
