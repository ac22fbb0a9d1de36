"""
Tests for catalog, public key and health endpoints.
"""
from peac_shop.services.receipt_verifier import verify_receipt

PATH = "/api/shop/checkout-direct"
TEA = {"items": [{"sku": "sku_tea", "qty": 1}]}


class TestCatalog:

    async def test_lists_products(self, client):
        resp = await client.get("/api/shop/catalog")

        assert resp.status_code == 200
        items = {item["sku"]: item for item in resp.json()["items"]}
        assert items["sku_tea"]["price_usd"] == 0.01
        assert items["sku_report"]["price_usd"] == 19.99
        assert resp.json()["count"] == len(items)


class TestPublicKey:

    async def test_published_key_verifies_receipts(self, client, pay):
        challenge = (await client.post(PATH, json=TEA)).json()
        paid = await pay(client, PATH, TEA, challenge["session_token"])

        resp = await client.get("/public-keys/test-key-1.json")

        assert resp.status_code == 200
        jwk = resp.json()
        assert "d" not in jwk
        assert verify_receipt(paid.headers["peac-receipt"], jwk).valid

    async def test_unknown_kid(self, client):
        resp = await client.get("/public-keys/nope.json")
        assert resp.status_code == 404
        assert resp.json()["error"] == "unknown_kid"


class TestHealth:

    async def test_health(self, client):
        resp = await client.get("/api/health")
        assert resp.json()["status"] == "healthy"
        assert resp.json()["kid"] == "test-key-1"


class TestCors:

    async def test_preflight_allowed(self, client):
        resp = await client.options(
            PATH,
            headers={"Origin": "https://agent.example", "Access-Control-Request-Method": "POST"},
        )
        assert resp.status_code == 200
        assert resp.headers["access-control-allow-origin"] == "*"

    async def test_receipt_header_exposed(self, client):
        resp = await client.post(PATH, json=TEA, headers={"Origin": "https://agent.example"})
        assert resp.headers["access-control-expose-headers"] == "PEAC-Receipt"
