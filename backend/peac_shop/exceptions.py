"""
PEAC Checkout Exception Hierarchy

Stable, machine-readable error codes for the x402 checkout protocol.
Every failure that reaches an HTTP response is one of these kinds.
"""
from typing import Optional, Dict, Any


class PeacError(Exception):
    """
    Base exception for all checkout protocol errors.

    Responses built from these errors always carry a stable `error` code and
    a human `message`; `details` are merged into the body as extra fields.
    """

    status_code: int = 400

    def __init__(
        self,
        error_code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None
    ):
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to API error response format."""
        body = {
            "error": self.error_code,
            "message": self.message,
        }
        body.update(self.details)
        return body

    @property
    def headers(self) -> Dict[str, str]:
        return {"Cache-Control": "no-store"}


class ValidationError(PeacError):
    """
    Missing or malformed request input.

    Examples:
    - items array missing or empty
    - unknown sku
    - non-positive quantity
    """

    status_code = 400


class IntegrityError(PeacError):
    """
    A token or request does not match what was issued.

    Examples:
    - Session token signature invalid or expired
    - Items fingerprint differs from the one bound in the session
    - Cart token belongs to a different cart
    """

    status_code = 400


class PaymentInvalidError(PeacError):
    """
    Payment proof rejected by the verifier.

    The session stays usable: the buyer may retry with a new proof.
    """

    status_code = 402

    def __init__(self, message: str, x402: Dict[str, Any]):
        super().__init__("payment_invalid", message, {"x402": x402})


class InternalError(PeacError):
    """Unexpected failure. Never exposes internals to the caller."""

    status_code = 500

    def __init__(self, message: str = "Checkout failed"):
        super().__init__("internal_error", message)


# ============================================================================
# Concrete error constructors
# ============================================================================

def invalid_sku(sku: str) -> ValidationError:
    return ValidationError("invalid_sku", f"Product {sku} not found")


def invalid_session() -> IntegrityError:
    return IntegrityError("invalid_session", "Session token verification failed")


def session_expired() -> IntegrityError:
    return IntegrityError("session_expired", "Session token has expired, request a new quote")


def items_mismatch() -> IntegrityError:
    return IntegrityError("items_mismatch", "Items do not match session")


def amount_mismatch() -> IntegrityError:
    return IntegrityError("amount_mismatch", "Order total no longer matches the quoted amount")


def cart_id_mismatch() -> IntegrityError:
    return IntegrityError("cart_id_mismatch", "Cart ID does not match token")


def invalid_cart_token() -> IntegrityError:
    return IntegrityError("invalid_cart_token", "Cart token verification failed")
