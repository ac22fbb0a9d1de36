"""
Checkout State Machine

Implements the x402 checkout across two HTTP round trips with no server-side
session storage:

    QUOTING -> PAYMENT_REQUIRED            (no proof: 402 + session token)
    QUOTING -> PROOF_SUBMITTED -> COMPLETED (proof + session token: 200 + receipt)
    any state -> FAILED                    (typed PeacError)

Correctness comes from the session token signature and from comparing the
token's items fingerprint and amount to values recomputed from the current
request. The only shared state is the idempotency store.
"""
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from ..exceptions import (
    IntegrityError,
    InternalError,
    PaymentInvalidError,
    PeacError,
    ValidationError,
    amount_mismatch,
    invalid_session,
    items_mismatch,
    session_expired,
)
from ..mocks.catalog import Catalog
from ..models.orders import Order, OrderTotals
from ..models.tokens import (
    ReceiptClaims,
    ReceiptPayment,
    ReceiptPolicy,
    ReceiptRequest,
    ReceiptResponse,
    SessionClaims,
)
from .cart_service import CartService
from .idempotency import IdempotencyManager
from .payment_verifier import PaymentVerification, PaymentVerifier
from .policy_service import PolicySnapshotError, PolicySnapshotSource
from .pricing import PricedBasket, normalize_items, price_basket, sha256_hex
from .token_codec import TokenError, TokenExpiredError
from .tokens import ReceiptTokens, SessionTokens, now_iso

logger = logging.getLogger(__name__)


class CheckoutState(str, Enum):
    QUOTING = "QUOTING"
    PAYMENT_REQUIRED = "PAYMENT_REQUIRED"
    PROOF_SUBMITTED = "PROOF_SUBMITTED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class Quote:
    """Output of QUOTING: who is buying what, for how much."""
    subject: str
    basket: PricedBasket


@dataclass(frozen=True)
class PaymentHeaders:
    proof_id: Optional[str] = None
    session_token: Optional[str] = None
    idempotency_key: Optional[str] = None


@dataclass(frozen=True)
class RequestInfo:
    method: str
    path: str
    query: str = ""


@dataclass(frozen=True)
class CheckoutOutcome:
    state: CheckoutState
    status_code: int
    body: bytes
    headers: Dict[str, str] = field(default_factory=dict)
    replayed: bool = False

    def json(self) -> Dict[str, Any]:
        return json.loads(self.body)


def derive_order_id(session_id: str, fingerprint: str) -> str:
    """Deterministic order id: same session and basket, same id."""
    return "ord_" + sha256_hex(session_id + fingerprint)[:16]


def serialize_order(order: Order) -> str:
    """The exact serialization returned to the caller and hashed into the receipt."""
    return json.dumps(order.model_dump(), separators=(",", ":"))


class CheckoutService:
    """
    Orchestrates quote, 402 challenge, proof verification and receipt issuance.

    Both checkout variants (direct item list and cart token) share the same
    state machine; they differ only in how QUOTING obtains the items.
    """

    def __init__(
        self,
        settings,
        session_tokens: SessionTokens,
        receipt_tokens: ReceiptTokens,
        cart_service: CartService,
        catalog: Catalog,
        payment_verifier: PaymentVerifier,
        policy_source: PolicySnapshotSource,
        idempotency: IdempotencyManager
    ):
        self.settings = settings
        self.session_tokens = session_tokens
        self.receipt_tokens = receipt_tokens
        self.cart_service = cart_service
        self.catalog = catalog
        self.payment_verifier = payment_verifier
        self.policy_source = policy_source
        self.idempotency = idempotency

    # ========================================================================
    # QUOTING
    # ========================================================================

    def quote_direct(self, raw_items: Any) -> Quote:
        """Quote an explicit item list from the request body."""
        lines = normalize_items(raw_items)
        return Quote(subject="direct-checkout", basket=price_basket(lines, self.catalog))

    def quote_cart(self, cart_id: Optional[str], cart_token: Optional[str]) -> Quote:
        """Quote the contents of a verified cart token."""
        cart = self.cart_service.load(cart_id, cart_token)
        if not cart.items:
            raise ValidationError("empty_cart", "Cart is empty")
        return Quote(subject=f"cart:{cart.cart_id}", basket=price_basket(list(cart.items), self.catalog))

    # ========================================================================
    # Transitions
    # ========================================================================

    async def checkout(self, quote: Quote, payment: PaymentHeaders, request: RequestInfo) -> CheckoutOutcome:
        """
        Advance a quoted checkout based on the payment headers present.

        Returns:
            402 outcome (PAYMENT_REQUIRED) or 200 outcome (COMPLETED)

        Raises:
            PeacError: every failure, already mapped to the error taxonomy
        """
        if not payment.proof_id:
            return self._payment_required(quote)

        logger.info(f"Checkout {quote.subject}: QUOTING -> PROOF_SUBMITTED")
        try:
            return await self._proof_submitted(quote, payment, request)
        except PeacError as e:
            logger.warning(f"Checkout {quote.subject}: -> FAILED ({e.error_code})")
            raise
        except Exception as e:
            logger.error(f"Checkout {quote.subject}: -> FAILED (unexpected: {type(e).__name__})", exc_info=True)
            raise InternalError() from e

    def _payment_required(self, quote: Quote) -> CheckoutOutcome:
        basket = quote.basket
        session = self.session_tokens.new_claims(
            subject=quote.subject,
            amount=basket.grand_total,
            currency=self.settings.x402_currency,
            chain=self.settings.x402_chain,
            items_fingerprint=basket.fingerprint,
        )
        session_token = self.session_tokens.issue(session)
        logger.info(
            f"Checkout {quote.subject}: QUOTING -> PAYMENT_REQUIRED "
            f"session={session.session_id} amount={session.amount} {session.currency}"
        )

        body = {
            "error": "payment_required",
            "message": "Pay via x402 and retry with proof",
            "x402": {
                **self._x402_block(session),
                "facilitator_verify": bool(self.settings.facilitator_verify_url),
            },
            "session_token": session_token,
            "peac": {
                "policy": self.settings.policy_discovery_url,
                "receipts": "required",
            },
        }
        return CheckoutOutcome(
            state=CheckoutState.PAYMENT_REQUIRED,
            status_code=402,
            body=json.dumps(body).encode("utf-8"),
            headers={"Cache-Control": "no-store"},
        )

    async def _proof_submitted(self, quote: Quote, payment: PaymentHeaders, request: RequestInfo) -> CheckoutOutcome:
        if not payment.session_token:
            raise ValidationError("missing_session", "X-402-Session header required")

        session = self._verify_session(payment.session_token)
        basket = quote.basket

        if session.subject != quote.subject:
            raise IntegrityError("session_subject_mismatch", "Session was issued for a different checkout")
        if session.items_fingerprint != basket.fingerprint:
            raise items_mismatch()
        if round(session.amount * 100) != basket.subtotal_cents:
            raise amount_mismatch()

        async def complete() -> Tuple[str, str]:
            verification = await self.payment_verifier.verify(payment.proof_id, session.session_id)
            if not verification.valid:
                raise PaymentInvalidError("Payment verification failed", self._x402_block(session))
            return await self._complete(session, basket, payment.proof_id, verification, request)

        replayed = False
        if payment.idempotency_key:
            result = await self.idempotency.run(
                payment.idempotency_key,
                sha256_hex(f"{session.session_id}:{basket.fingerprint}"),
                complete,
            )
            order_body, receipt = result.response_body, result.receipt
            replayed = result.replayed
        else:
            order_body, receipt = await complete()

        logger.info(
            f"Checkout {quote.subject}: PROOF_SUBMITTED -> COMPLETED "
            f"session={session.session_id} replayed={replayed}"
        )
        return CheckoutOutcome(
            state=CheckoutState.COMPLETED,
            status_code=200,
            body=order_body.encode("utf-8"),
            headers={
                "PEAC-Receipt": receipt,
                "Access-Control-Expose-Headers": "PEAC-Receipt",
                "Cache-Control": "no-store",
            },
            replayed=replayed,
        )

    async def _complete(
        self,
        session: SessionClaims,
        basket: PricedBasket,
        proof_id: str,
        verification: PaymentVerification,
        request: RequestInfo
    ) -> Tuple[str, str]:
        """Build the order, hash its exact bytes, and sign the receipt."""
        grand_total = basket.grand_total
        order = Order(
            order_id=derive_order_id(session.session_id, basket.fingerprint),
            items=basket.order_items,
            totals=OrderTotals(subtotal=grand_total, tax=0.0, fees=0.0, grand_total=grand_total),
            created_at=now_iso(),
        )
        order_body = serialize_order(order)

        try:
            snapshot = await self.policy_source.fetch()
        except PolicySnapshotError as e:
            logger.error(f"Policy snapshot unavailable for {session.session_id}: {e}")
            raise InternalError() from e

        order_summary = order.model_dump()
        order_summary.pop("created_at")
        claims = ReceiptClaims(
            receipt_version=self.settings.receipt_version,
            issued_at=now_iso(),
            subject="order",
            request=ReceiptRequest(method=request.method, path=request.path, query=request.query),
            response=ReceiptResponse(status=200, body_sha256=sha256_hex(order_body)),
            payment=ReceiptPayment(
                rail="x402",
                amount=session.amount,
                currency=session.currency,
                chain=session.chain,
                proof_id=proof_id,
                session_id=session.session_id,
                payer=verification.payer or "unknown",
            ),
            order=order_summary,
            policy=ReceiptPolicy(aipref_url=self.settings.aipref_url, aipref_snapshot=snapshot),
            verify_url=self.settings.verify_url,
        )
        receipt = self.receipt_tokens.issue(claims)
        logger.info(f"Order {order.order_id} created for session {session.session_id}")
        return order_body, receipt

    # ========================================================================
    # Helpers
    # ========================================================================

    def _verify_session(self, session_token: str) -> SessionClaims:
        try:
            return self.session_tokens.verify(session_token)
        except TokenExpiredError as e:
            raise session_expired() from e
        except TokenError as e:
            logger.warning(f"Session token rejected: {e.reason}")
            raise invalid_session() from e

    @staticmethod
    def _x402_block(session: SessionClaims) -> Dict[str, Any]:
        return {
            "session_id": session.session_id,
            "amount_usd": session.amount,
            "currency": session.currency,
            "chain": session.chain,
        }
