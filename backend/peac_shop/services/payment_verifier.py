"""
x402 Payment Verifier

Adapter over the settlement facilitator:

    verify(proof_id, session_id) -> PaymentVerification(valid, payer)

The facilitator adapter fails closed: any transport error, timeout,
non-success status or unexpected body means valid=False.
"""
import asyncio
import hmac
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentVerification:
    valid: bool
    payer: Optional[str] = None


class PaymentVerifier(ABC):
    """Confirms that a proof settles a payment session."""

    @abstractmethod
    async def verify(self, proof_id: str, session_id: str) -> PaymentVerification:
        pass


class DemoPaymentVerifier(PaymentVerifier):
    """
    Deterministic verifier for demos and tests.

    Only the exact configured proof token is accepted; any other non-empty
    proof is rejected.
    """

    def __init__(self, demo_token: str, payer: str = "demo-payer"):
        if not demo_token:
            raise ValueError("demo_token must be non-empty")
        self.demo_token = demo_token
        self.payer = payer

    async def verify(self, proof_id: str, session_id: str) -> PaymentVerification:
        valid = hmac.compare_digest(proof_id.encode("utf-8"), self.demo_token.encode("utf-8"))
        logger.info(f"Demo payment verification for {session_id}: valid={valid}")
        return PaymentVerification(valid=valid, payer=self.payer if valid else None)


class FacilitatorPaymentVerifier(PaymentVerifier):
    """Remote verification against an x402 facilitator."""

    def __init__(
        self,
        verify_url: Optional[str],
        api_key: Optional[str],
        timeout_seconds: float = 10.0
    ):
        self.verify_url = verify_url
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds

    async def verify(self, proof_id: str, session_id: str) -> PaymentVerification:
        if not self.verify_url or not self.api_key:
            logger.warning("Facilitator not configured; rejecting payment proof")
            return PaymentVerification(valid=False)

        try:
            resp = await asyncio.wait_for(self._post(proof_id, session_id), self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.error(f"Facilitator verification timed out for {session_id} after {self.timeout_seconds}s")
            return PaymentVerification(valid=False)
        except httpx.HTTPError as e:
            logger.error(f"Facilitator verification error for {session_id}: {type(e).__name__}")
            return PaymentVerification(valid=False)

        if not resp.is_success:
            logger.warning(f"Facilitator rejected {session_id}: HTTP {resp.status_code}")
            return PaymentVerification(valid=False)

        try:
            data = resp.json()
        except ValueError:
            logger.warning(f"Facilitator returned non-JSON body for {session_id}")
            return PaymentVerification(valid=False)

        if not isinstance(data, dict) or data.get("valid") is not True:
            return PaymentVerification(valid=False)

        payer = data.get("payer")
        if not isinstance(payer, str) or not payer:
            payer = "unknown"
        return PaymentVerification(valid=True, payer=payer)

    async def _post(self, proof_id: str, session_id: str) -> httpx.Response:
        # httpx timeouts apply per phase; wait_for in verify() bounds the whole call
        async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout_seconds)) as client:
            return await client.post(
                self.verify_url,
                json={"session_id": session_id, "proof_id": proof_id},
                headers={"Authorization": f"Bearer {self.api_key}"},
            )


def build_payment_verifier(settings) -> PaymentVerifier:
    """Demo verifier in demo mode, facilitator otherwise."""
    if settings.demo_mode:
        return DemoPaymentVerifier(settings.demo_token)
    return FacilitatorPaymentVerifier(
        settings.facilitator_verify_url,
        settings.facilitator_api_key,
        settings.facilitator_timeout_seconds,
    )
