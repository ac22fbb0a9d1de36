"""
Pytest configuration and fixtures for PEAC shop tests.
"""
import asyncio
from typing import Any, Dict, Optional

import httpx
import pytest

from peac_shop.config import load_settings
from peac_shop.main import create_app
from peac_shop.services.key_manager import KeyManager
from peac_shop.services.payment_verifier import DemoPaymentVerifier, PaymentVerification, PaymentVerifier
from peac_shop.services.policy_service import PolicySnapshotError, PolicySnapshotSource

DEMO_PROOF = "demo-pay-ok-123"
TEST_SNAPSHOT = {"version": "0.1", "train-ai": "disallow", "receipts": "required"}


class CountingVerifier(PaymentVerifier):
    """Demo verifier that records calls and can be slowed down."""

    def __init__(self, delay_seconds: float = 0.0):
        self._inner = DemoPaymentVerifier(DEMO_PROOF)
        self.delay_seconds = delay_seconds
        self.calls = []

    async def verify(self, proof_id: str, session_id: str) -> PaymentVerification:
        self.calls.append((proof_id, session_id))
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        return await self._inner.verify(proof_id, session_id)


class SwitchablePolicySource(PolicySnapshotSource):
    """Policy source whose availability tests can toggle."""

    def __init__(self, snapshot: Dict[str, Any], available: bool = True):
        self.snapshot = snapshot
        self.available = available

    async def fetch(self) -> Dict[str, Any]:
        if not self.available:
            raise PolicySnapshotError("policy host unreachable")
        return dict(self.snapshot)


@pytest.fixture
def settings():
    return load_settings(
        _env_file=None,
        demo_mode=True,
        demo_token=DEMO_PROOF,
        log_level="DEBUG",
        public_origin="http://test",
        idempotency_lock_timeout_seconds=5.0,
    )


@pytest.fixture
def key_manager():
    return KeyManager.generate("test-key-1")


@pytest.fixture
def verifier():
    return CountingVerifier()


@pytest.fixture
def slow_verifier():
    """Verifier that holds each call long enough for retries to overlap."""
    return CountingVerifier(delay_seconds=0.05)


@pytest.fixture
def policy_source():
    return SwitchablePolicySource(TEST_SNAPSHOT)


@pytest.fixture
def app(settings, key_manager, verifier, policy_source):
    return create_app(
        settings,
        key_manager=key_manager,
        payment_verifier=verifier,
        policy_source=policy_source,
    )


@pytest.fixture
def services(app):
    return app.state.services


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client


@pytest.fixture
def pay():
    """
    Retry a checkout with payment headers.

    Usage:
        resp = await pay(client, "/api/shop/checkout-direct", body, session_token)
    """
    async def _pay(
        http_client: httpx.AsyncClient,
        path: str,
        body: Dict[str, Any],
        session_token: Optional[str],
        proof: Optional[str] = DEMO_PROOF,
        idempotency_key: Optional[str] = None
    ) -> httpx.Response:
        headers = {}
        if session_token is not None:
            headers["X-402-Session"] = session_token
        if proof is not None:
            headers["X-402-Proof"] = proof
        if idempotency_key is not None:
            headers["Idempotency-Key"] = idempotency_key
        return await http_client.post(path, json=body, headers=headers)

    return _pay
