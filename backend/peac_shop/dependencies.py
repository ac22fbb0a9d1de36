"""
Service Container

Wires every checkout collaborator from one Settings object. create_app()
builds the container once and stores it on app.state; routers reach it
through get_services().

Tests swap collaborators (catalog, payment verifier, policy source,
idempotency store) by passing overrides to build_services().
"""
from dataclasses import dataclass
from typing import Any
import logging

from fastapi import Request

from .config import Settings
from .mocks.catalog import Catalog, default_catalog
from .services.cart_service import CartService
from .services.checkout_service import CheckoutService
from .services.idempotency import IdempotencyManager, IdempotencyStore, build_idempotency_store
from .services.key_manager import KeyManager
from .services.payment_verifier import PaymentVerifier, build_payment_verifier
from .services.policy_service import PolicySnapshotSource, build_policy_source
from .services.receipt_verifier import ReceiptVerifier
from .services.token_codec import TokenCodec
from .services.tokens import CartTokens, ReceiptTokens, SessionTokens

logger = logging.getLogger(__name__)


@dataclass
class ShopServices:
    settings: Settings
    key_manager: KeyManager
    codec: TokenCodec
    session_tokens: SessionTokens
    cart_tokens: CartTokens
    receipt_tokens: ReceiptTokens
    catalog: Catalog
    payment_verifier: PaymentVerifier
    policy_source: PolicySnapshotSource
    idempotency_store: IdempotencyStore
    idempotency: IdempotencyManager
    cart_service: CartService
    checkout_service: CheckoutService
    receipt_verifier: ReceiptVerifier

    async def close(self) -> None:
        await self.idempotency_store.close()


def build_services(settings: Settings, **overrides: Any) -> ShopServices:
    """
    Construct the service graph.

    Args:
        settings: Application settings
        **overrides: Replacement collaborators, any of key_manager, catalog,
            payment_verifier, policy_source, idempotency_store

    Returns:
        Fully wired ShopServices
    """
    key_manager = overrides.get("key_manager") or KeyManager.from_settings(settings)
    catalog = overrides.get("catalog") or default_catalog()
    payment_verifier = overrides.get("payment_verifier") or build_payment_verifier(settings)
    policy_source = overrides.get("policy_source") or build_policy_source(settings)
    idempotency_store = overrides.get("idempotency_store") or build_idempotency_store(settings)

    codec = TokenCodec(key_manager)
    session_tokens = SessionTokens(codec, ttl_seconds=settings.session_ttl_seconds)
    cart_tokens = CartTokens(codec)
    receipt_tokens = ReceiptTokens(codec)

    idempotency = IdempotencyManager(
        idempotency_store,
        ttl_seconds=settings.idempotency_ttl_seconds,
        lock_timeout_seconds=settings.idempotency_lock_timeout_seconds,
    )
    cart_service = CartService(cart_tokens, catalog)
    checkout_service = CheckoutService(
        settings=settings,
        session_tokens=session_tokens,
        receipt_tokens=receipt_tokens,
        cart_service=cart_service,
        catalog=catalog,
        payment_verifier=payment_verifier,
        policy_source=policy_source,
        idempotency=idempotency,
    )

    logger.info(
        f"Services built: kid={key_manager.kid}, verifier={type(payment_verifier).__name__}, "
        f"idempotency={type(idempotency_store).__name__}"
    )

    return ShopServices(
        settings=settings,
        key_manager=key_manager,
        codec=codec,
        session_tokens=session_tokens,
        cart_tokens=cart_tokens,
        receipt_tokens=receipt_tokens,
        catalog=catalog,
        payment_verifier=payment_verifier,
        policy_source=policy_source,
        idempotency_store=idempotency_store,
        idempotency=idempotency,
        cart_service=cart_service,
        checkout_service=checkout_service,
        receipt_verifier=ReceiptVerifier(key_manager.public_jwk()),
    )


def get_services(request: Request) -> ShopServices:
    """FastAPI dependency returning the app's service container."""
    return request.app.state.services
