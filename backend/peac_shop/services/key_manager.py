"""
Key Manager for PEAC Token Signing

Holds the issuer's Ed25519 keypair and its key id (kid). Session, cart and
receipt tokens are all signed with this one key; the public half is
published as a JWK so receipts can be verified offline.
"""
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey
from jwt.algorithms import OKPAlgorithm
from jwt.exceptions import InvalidKeyError

logger = logging.getLogger(__name__)

ALGORITHM = "EdDSA"


class KeyManager:
    """Ed25519 signing key plus its public identifier."""

    def __init__(self, private_key: Ed25519PrivateKey, kid: str):
        if not isinstance(private_key, Ed25519PrivateKey):
            raise ValueError("PEAC signing key must be an Ed25519 private key")
        self._private_key = private_key
        self.kid = kid

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def generate(cls, kid: str) -> "KeyManager":
        """Create a fresh ephemeral keypair."""
        return cls(Ed25519PrivateKey.generate(), kid)

    @classmethod
    def from_jwk(cls, jwk: Union[str, Dict[str, Any]], kid: Optional[str] = None) -> "KeyManager":
        """
        Load a private OKP/Ed25519 JWK.

        Args:
            jwk: JWK as JSON string or dict; must contain the private `d` member
            kid: Key id; falls back to the JWK's own `kid`
        """
        jwk_dict = json.loads(jwk) if isinstance(jwk, str) else dict(jwk)
        if "d" not in jwk_dict:
            raise ValueError("Signing JWK has no private component (d)")
        key = OKPAlgorithm.from_jwk(jwk_dict)
        resolved_kid = kid or jwk_dict.get("kid")
        if not resolved_kid:
            raise ValueError("A key id (kid) is required for the signing key")
        return cls(key, resolved_kid)

    @classmethod
    def from_pem_file(cls, path: str, kid: str) -> "KeyManager":
        pem = Path(path).read_bytes()
        key = serialization.load_pem_private_key(pem, password=None)
        return cls(key, kid)

    @classmethod
    def from_settings(cls, settings) -> "KeyManager":
        """
        Resolve the signing key from configuration.

        Order: PEAC_SIGNING_JWK, then PEAC_SIGNING_KEY_PATH, then (demo mode
        only) a freshly generated key.

        Raises:
            RuntimeError: No key configured outside demo mode
        """
        if settings.peac_signing_jwk:
            return cls.from_jwk(settings.peac_signing_jwk, settings.peac_kid)
        if settings.peac_signing_key_path:
            return cls.from_pem_file(settings.peac_signing_key_path, settings.peac_kid)
        if not settings.demo_mode:
            raise RuntimeError(
                "Missing signing key: set PEAC_SIGNING_JWK or PEAC_SIGNING_KEY_PATH. "
                "Ephemeral keys are only allowed in demo mode."
            )
        logger.warning(
            f"No signing key configured; generated ephemeral key kid={settings.peac_kid}. "
            f"Receipts will not verify after restart."
        )
        return cls.generate(settings.peac_kid)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    @property
    def private_key(self) -> Ed25519PrivateKey:
        return self._private_key

    @property
    def public_key(self) -> Ed25519PublicKey:
        return self._private_key.public_key()

    def sign(self, data: bytes) -> bytes:
        """Raw Ed25519 signature over data."""
        return self._private_key.sign(data)

    def public_jwk(self) -> Dict[str, Any]:
        """Public JWK for publication (never contains `d`)."""
        jwk = json.loads(OKPAlgorithm.to_jwk(self.public_key))
        jwk.pop("d", None)
        jwk.update({"kid": self.kid, "alg": ALGORITHM, "use": "sig"})
        return jwk

    def private_jwk(self) -> Dict[str, Any]:
        jwk = json.loads(OKPAlgorithm.to_jwk(self._private_key))
        jwk.update({"kid": self.kid, "alg": ALGORITHM, "use": "sig"})
        return jwk

    def public_pem(self) -> bytes:
        return self.public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )


def load_public_key(key: Union[str, bytes, Dict[str, Any], Ed25519PublicKey]) -> Ed25519PublicKey:
    """
    Accept a public key as JWK (dict or JSON), PEM, or key object.

    Raises:
        ValueError: Key cannot be parsed or is not Ed25519
    """
    if isinstance(key, Ed25519PublicKey):
        return key
    try:
        if isinstance(key, dict):
            loaded = OKPAlgorithm.from_jwk({k: v for k, v in key.items() if k != "d"})
        else:
            raw = key.encode("utf-8") if isinstance(key, str) else key
            if raw.lstrip().startswith(b"{"):
                parsed = json.loads(raw)
                if not isinstance(parsed, dict):
                    raise ValueError("Issuer public key JSON must be a JWK object")
                public_only = {k: v for k, v in parsed.items() if k != "d"}
                loaded = OKPAlgorithm.from_jwk(public_only)
            else:
                loaded = serialization.load_pem_public_key(raw)
    except (InvalidKeyError, TypeError) as e:
        raise ValueError(f"Invalid issuer public key: {e}") from e
    if not isinstance(loaded, Ed25519PublicKey):
        raise ValueError("Issuer public key must be Ed25519")
    return loaded
