"""
Tests for offline receipt verification and the /api/verify endpoint.
"""
import base64
import json

import pytest

from peac_shop.services.key_manager import KeyManager
from peac_shop.services.receipt_verifier import ReceiptVerifier, body_matches_receipt, verify_receipt
from peac_shop.services.token_codec import CART_TYPE, MalformedTokenError

PATH = "/api/shop/checkout-direct"
TEA = {"items": [{"sku": "sku_tea", "qty": 1}]}


@pytest.fixture
async def paid(client, pay):
    """A completed checkout: (response body bytes, receipt)."""
    challenge = (await client.post(PATH, json=TEA)).json()
    resp = await pay(client, PATH, TEA, challenge["session_token"])
    assert resp.status_code == 200
    return resp.content, resp.headers["peac-receipt"]


def b64url_json(value) -> str:
    return base64.urlsafe_b64encode(json.dumps(value).encode()).rstrip(b"=").decode()


def with_payload(receipt: str, mutate) -> str:
    header, payload, signature = receipt.split(".")
    claims = json.loads(base64.urlsafe_b64decode(payload + "=" * (-len(payload) % 4)))
    mutate(claims)
    encoded = base64.urlsafe_b64encode(json.dumps(claims).encode()).rstrip(b"=").decode()
    return ".".join([header, encoded, signature])


class TestVerifyReceipt:
    """verify_receipt() needs only the receipt and the public key."""

    async def test_valid_with_each_key_form(self, paid, key_manager):
        body, receipt = paid
        for key in (key_manager.public_jwk(), json.dumps(key_manager.public_jwk()), key_manager.public_pem()):
            result = verify_receipt(receipt, key)
            assert result.valid
            assert result.reason is None
            assert body_matches_receipt(body, result.claims)

    async def test_modified_payment_amount(self, paid, key_manager):
        _, receipt = paid

        def bump(claims):
            claims["payment"]["amount"] = 0.0

        result = verify_receipt(with_payload(receipt, bump), key_manager.public_jwk())

        assert result.valid is False
        assert result.reason == "invalid_signature"
        assert result.claims["payment"]["amount"] == 0.0

    async def test_other_issuer_key(self, paid):
        _, receipt = paid
        result = verify_receipt(receipt, KeyManager.generate("other").public_jwk())
        assert result.valid is False
        assert result.reason == "invalid_signature"

    async def test_body_swap_detected(self, paid, key_manager):
        body, receipt = paid
        claims = verify_receipt(receipt, key_manager.public_jwk()).claims
        tampered = body.replace(b'"qty":1', b'"qty":9')
        assert tampered != body
        assert not body_matches_receipt(tampered, claims)

    def test_unsigned_receipt_is_invalid(self, key_manager):
        header = b64url_json({"alg": "none", "typ": "peac-receipt+jws"})
        payload = b64url_json({"rid": "rcpt_1"})

        result = verify_receipt(f"{header}.{payload}.", key_manager.public_jwk())

        assert result.valid is False
        assert result.reason == "invalid_signature"
        assert result.claims == {"rid": "rcpt_1"}
        assert result.header["alg"] == "none"

    def test_non_receipt_token(self, services, key_manager):
        cart_token = services.codec.sign(CART_TYPE, {"cart_id": "cart_1", "items": [], "created_at": "x"})
        result = verify_receipt(cart_token, key_manager.public_jwk())
        assert result.valid is False
        assert result.reason == "wrong_type"

    @pytest.mark.parametrize("garbage", ["", "hello", "a.b.c", "one.two"])
    def test_malformed_raises(self, key_manager, garbage):
        with pytest.raises(MalformedTokenError):
            verify_receipt(garbage, key_manager.public_jwk())

    async def test_bound_verifier_defaults_to_issuer_key(self, paid, key_manager):
        _, receipt = paid
        verifier = ReceiptVerifier(key_manager.public_jwk())
        assert verifier.verify(receipt).valid
        assert not verifier.verify(receipt, KeyManager.generate("x").public_jwk()).valid


class TestVerifyEndpoint:
    """POST /api/verify"""

    async def test_valid_receipt(self, client, paid):
        _, receipt = paid

        resp = await client.post("/api/verify", json={"receipt": receipt})

        assert resp.status_code == 200
        body = resp.json()
        assert body["valid"] is True
        assert body["header"]["typ"] == "peac-receipt+jws"
        assert body["payload"]["payment"]["rail"] == "x402"
        assert "reason" not in body

    async def test_explicit_public_key(self, client, paid):
        _, receipt = paid
        other = KeyManager.generate("other").public_jwk()

        resp = await client.post("/api/verify", json={"receipt": receipt, "public_jwk": other})

        assert resp.status_code == 200
        assert resp.json()["valid"] is False
        assert resp.json()["reason"] == "invalid_signature"

    async def test_missing_receipt(self, client):
        resp = await client.post("/api/verify", json={})
        assert resp.status_code == 400
        assert resp.json()["error"] == "missing_receipt"

    async def test_malformed_receipt(self, client):
        resp = await client.post("/api/verify", json={"receipt": "not-a-receipt"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "malformed_receipt"

    @pytest.mark.parametrize("public_jwk", [
        {"kty": "OKP"},
        {"kty": "OKP", "crv": "Ed25519", "x": 123},
    ])
    async def test_bad_public_key(self, client, paid, public_jwk):
        _, receipt = paid
        resp = await client.post("/api/verify", json={"receipt": receipt, "public_jwk": public_jwk})
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_public_key"

    async def test_unsigned_receipt(self, client):
        header = b64url_json({"alg": "none", "typ": "peac-receipt+jws"})
        payload = b64url_json({"a": 1})

        resp = await client.post("/api/verify", json={"receipt": f"{header}.{payload}."})

        assert resp.status_code == 200
        assert resp.json()["valid"] is False
        assert resp.json()["reason"] == "invalid_signature"
