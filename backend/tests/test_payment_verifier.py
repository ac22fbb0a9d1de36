"""
Tests for payment proof verification.
"""
import asyncio
import json

import httpx
import pytest

from peac_shop.config import load_settings
from peac_shop.main import create_app
from peac_shop.services.payment_verifier import (
    DemoPaymentVerifier,
    FacilitatorPaymentVerifier,
    build_payment_verifier,
)

FACILITATOR_URL = "https://facilitator.example.com/verify"


@pytest.fixture
def facilitator():
    return FacilitatorPaymentVerifier(FACILITATOR_URL, "fac-key", timeout_seconds=2.0)


class TestDemoVerifier:
    """Demo mode accepts exactly one proof token."""

    async def test_accepts_configured_token(self):
        result = await DemoPaymentVerifier("demo-pay-ok-123").verify("demo-pay-ok-123", "sess_1")
        assert result.valid
        assert result.payer == "demo-payer"

    @pytest.mark.parametrize("proof", ["demo-pay-ok-12", "demo-pay-ok-1234", "DEMO-PAY-OK-123", "x"])
    async def test_rejects_anything_else(self, proof):
        result = await DemoPaymentVerifier("demo-pay-ok-123").verify(proof, "sess_1")
        assert result.valid is False
        assert result.payer is None

    def test_requires_token(self):
        with pytest.raises(ValueError):
            DemoPaymentVerifier("")


class TestFacilitatorVerifier:
    """Remote verification fails closed."""

    async def test_valid_proof(self, facilitator, httpx_mock):
        httpx_mock.add_response(
            url=FACILITATOR_URL,
            method="POST",
            json={"valid": True, "payer": "0xabc"},
        )

        result = await facilitator.verify("proof-1", "sess_1")

        assert result.valid
        assert result.payer == "0xabc"
        request = httpx_mock.get_request()
        assert request.headers["authorization"] == "Bearer fac-key"
        assert json.loads(request.content) == {"session_id": "sess_1", "proof_id": "proof-1"}

    async def test_missing_payer_defaults(self, facilitator, httpx_mock):
        httpx_mock.add_response(url=FACILITATOR_URL, method="POST", json={"valid": True})
        result = await facilitator.verify("proof-1", "sess_1")
        assert result.valid
        assert result.payer == "unknown"

    @pytest.mark.parametrize("payload", [{"valid": False}, {"valid": "true"}, {}, [True]])
    async def test_not_valid(self, facilitator, httpx_mock, payload):
        httpx_mock.add_response(url=FACILITATOR_URL, method="POST", json=payload)
        result = await facilitator.verify("proof-1", "sess_1")
        assert result.valid is False

    async def test_error_status(self, facilitator, httpx_mock):
        httpx_mock.add_response(url=FACILITATOR_URL, method="POST", status_code=503, json={"valid": True})
        assert (await facilitator.verify("proof-1", "sess_1")).valid is False

    async def test_non_json(self, facilitator, httpx_mock):
        httpx_mock.add_response(url=FACILITATOR_URL, method="POST", content=b"<html>ok</html>")
        assert (await facilitator.verify("proof-1", "sess_1")).valid is False

    async def test_timeout(self, facilitator, httpx_mock):
        httpx_mock.add_exception(httpx.ReadTimeout("facilitator too slow"))
        assert (await facilitator.verify("proof-1", "sess_1")).valid is False

    async def test_slow_body_bounded_by_total_timeout(self, httpx_mock):
        async def trickle(request):
            await asyncio.sleep(1.0)
            return httpx.Response(200, json={"valid": True, "payer": "0xabc"})

        httpx_mock.add_callback(trickle, url=FACILITATOR_URL, method="POST")
        verifier = FacilitatorPaymentVerifier(FACILITATOR_URL, "fac-key", timeout_seconds=0.1)

        result = await verifier.verify("proof-1", "sess_1")

        assert result.valid is False

    async def test_connection_error(self, facilitator, httpx_mock):
        httpx_mock.add_exception(httpx.ConnectError("refused"))
        assert (await facilitator.verify("proof-1", "sess_1")).valid is False

    async def test_unconfigured(self):
        result = await FacilitatorPaymentVerifier(None, None).verify("proof-1", "sess_1")
        assert result.valid is False


class TestBuildVerifier:

    def test_demo_mode(self):
        verifier = build_payment_verifier(load_settings(_env_file=None, demo_mode=True))
        assert isinstance(verifier, DemoPaymentVerifier)

    def test_production_mode(self):
        settings = load_settings(
            _env_file=None,
            demo_mode=False,
            facilitator_verify_url=FACILITATOR_URL,
            facilitator_api_key="k",
            facilitator_timeout_seconds=3.0,
        )
        verifier = build_payment_verifier(settings)
        assert isinstance(verifier, FacilitatorPaymentVerifier)
        assert verifier.timeout_seconds == 3.0


class TestCheckoutWithFacilitator:
    """End to end with the facilitator mocked at the HTTP layer."""

    async def test_facilitator_rejection_returns_402(self, settings, key_manager, policy_source, pay, httpx_mock):
        prod = settings.model_copy(update={
            "demo_mode": False,
            "facilitator_verify_url": FACILITATOR_URL,
            "facilitator_api_key": "fac-key",
        })
        app = create_app(prod, key_manager=key_manager, policy_source=policy_source)
        httpx_mock.add_response(url=FACILITATOR_URL, method="POST", json={"valid": False})

        body = {"items": [{"sku": "sku_tea"}]}
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
            challenge = (await client.post("/api/shop/checkout-direct", json=body)).json()
            assert challenge["x402"]["facilitator_verify"] is True
            resp = await pay(client, "/api/shop/checkout-direct", body, challenge["session_token"], proof="0xproof")

        assert resp.status_code == 402
        assert resp.json()["error"] == "payment_invalid"
