"""
Token Codec for PEAC Signed Envelopes

Generic sign/verify of a claims payload into a compact JWS:

    header.payload.signature   (base64url, EdDSA over Ed25519)

The JWS `typ` header carries a type tag that differs per token kind, so a
session token can never be accepted where a cart token is expected even
though both are signed by the same key.
"""
import logging
from typing import Any, Dict, Optional, Tuple, Union

import jwt
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from .key_manager import ALGORITHM, KeyManager

logger = logging.getLogger(__name__)


SESSION_TYPE = "peac-session+jws"
CART_TYPE = "peac-cart+jws"
RECEIPT_TYPE = "peac-receipt+jws"


# ============================================================================
# Token Errors
# ============================================================================

class TokenError(Exception):
    """Base class for envelope verification failures."""

    reason = "invalid_token"


class InvalidSignatureError(TokenError):
    """Signature does not verify, or the algorithm is not allowed."""

    reason = "invalid_signature"


class WrongTypeError(TokenError):
    """Envelope type tag differs from the expected kind."""

    reason = "wrong_type"


class MalformedTokenError(TokenError):
    """Input is not a decodable compact JWS with an object payload."""

    reason = "malformed"


class TokenExpiredError(TokenError):
    """The `exp` claim is in the past."""

    reason = "expired"


# ============================================================================
# Codec
# ============================================================================

def decode_envelope(
    token: Union[str, bytes],
    public_key: Ed25519PublicKey,
    type_tag: Optional[str] = None
) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """
    Verify a compact JWS against a public key.

    Args:
        token: Compact JWS
        public_key: Issuer's Ed25519 public key
        type_tag: Expected `typ` header, checked after the signature

    Returns:
        (claims, header)

    Raises:
        MalformedTokenError, InvalidSignatureError, TokenExpiredError, WrongTypeError
    """
    if not isinstance(token, (str, bytes)) or not token:
        raise MalformedTokenError("Token must be a non-empty compact JWS string")

    try:
        decoded = jwt.decode_complete(token, public_key, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError as e:
        raise TokenExpiredError(str(e)) from e
    except jwt.InvalidSignatureError as e:
        raise InvalidSignatureError(str(e)) from e
    except jwt.InvalidAlgorithmError as e:
        raise InvalidSignatureError(f"Algorithm not allowed: {e}") from e
    except jwt.DecodeError as e:
        raise MalformedTokenError(str(e)) from e
    except jwt.InvalidTokenError as e:
        raise InvalidSignatureError(str(e)) from e

    header = decoded["header"]
    if type_tag is not None and header.get("typ") != type_tag:
        raise WrongTypeError(f"Expected {type_tag}, got {header.get('typ')}")

    return decoded["payload"], header


class TokenCodec:
    """Signs and verifies typed envelopes with the issuer key."""

    def __init__(self, key_manager: KeyManager):
        self.key_manager = key_manager

    def sign(self, type_tag: str, claims: Dict[str, Any]) -> str:
        """Wrap claims in a signed envelope tagged with type_tag."""
        return jwt.encode(
            claims,
            self.key_manager.private_key,
            algorithm=ALGORITHM,
            headers={"kid": self.key_manager.kid, "typ": type_tag},
        )

    def verify(self, type_tag: str, token: Union[str, bytes]) -> Dict[str, Any]:
        """Return the claims of a valid envelope of the given type."""
        claims, _ = decode_envelope(token, self.key_manager.public_key, type_tag)
        return claims

    def verify_with_header(self, type_tag: str, token: Union[str, bytes]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        return decode_envelope(token, self.key_manager.public_key, type_tag)
