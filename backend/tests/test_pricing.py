"""
Tests for item normalization, fingerprints and basket pricing.
"""
import pytest

from peac_shop.exceptions import ValidationError
from peac_shop.mocks.catalog import default_catalog
from peac_shop.models.tokens import CartLine
from peac_shop.services.checkout_service import derive_order_id
from peac_shop.services.pricing import (
    create_canonical_json,
    items_fingerprint,
    normalize_items,
    parse_qty,
    price_basket,
    sha256_hex,
)


class TestParseQty:

    def test_defaults_to_one(self):
        assert parse_qty(None) == 1

    def test_integral_float_accepted(self):
        assert parse_qty(3.0) == 3

    @pytest.mark.parametrize("qty", [0, -2, 1.5, "1", True, [1]])
    def test_rejected(self, qty):
        with pytest.raises(ValidationError) as exc_info:
            parse_qty(qty)
        assert exc_info.value.error_code == "invalid_qty"


class TestNormalizeItems:

    @pytest.mark.parametrize("raw", [None, [], "sku_tea", {"sku": "sku_tea"}])
    def test_missing_items(self, raw):
        with pytest.raises(ValidationError) as exc_info:
            normalize_items(raw)
        assert exc_info.value.error_code == "missing_items"

    @pytest.mark.parametrize("raw", [["sku_tea"], [{"qty": 1}], [{"sku": ""}], [{"sku": 5}]])
    def test_invalid_items(self, raw):
        with pytest.raises(ValidationError) as exc_info:
            normalize_items(raw)
        assert exc_info.value.error_code == "invalid_items"

    def test_sorts_and_merges(self):
        lines = normalize_items([{"sku": "sku_tea"}, {"sku": "sku_coffee", "qty": 2}, {"sku": "sku_tea", "qty": 4}])
        assert lines == [CartLine(sku="sku_coffee", qty=2), CartLine(sku="sku_tea", qty=5)]


class TestFingerprint:

    def test_matches_canonical_json_hash(self):
        lines = [CartLine(sku="sku_tea", qty=1)]
        expected = sha256_hex('[{"qty":1,"sku":"sku_tea"}]')
        assert items_fingerprint(lines) == expected

    def test_order_independent(self):
        a = [CartLine(sku="sku_tea", qty=1), CartLine(sku="sku_coffee", qty=2)]
        b = [CartLine(sku="sku_coffee", qty=2), CartLine(sku="sku_tea", qty=1)]
        assert items_fingerprint(a) == items_fingerprint(b)

    def test_quantity_sensitive(self):
        assert items_fingerprint([CartLine(sku="sku_tea", qty=1)]) != items_fingerprint([CartLine(sku="sku_tea", qty=2)])

    def test_canonical_json_is_compact_and_sorted(self):
        assert create_canonical_json({"b": 1, "a": [1, 2]}) == '{"a":[1,2],"b":1}'


class TestPriceBasket:

    def test_totals_in_cents(self):
        lines = [CartLine(sku="sku_tea", qty=10), CartLine(sku="sku_coffee", qty=5)]
        basket = price_basket(lines, default_catalog())

        assert basket.subtotal_cents == 20
        assert basket.grand_total == 0.2
        assert [item.sku for item in basket.order_items] == ["sku_coffee", "sku_tea"]
        assert basket.order_items[1].unit_price_usd == 0.01

    def test_unknown_sku(self):
        with pytest.raises(ValidationError) as exc_info:
            price_basket([CartLine(sku="sku_missing", qty=1)], default_catalog())
        assert exc_info.value.error_code == "invalid_sku"

    def test_repriced_catalog(self):
        catalog = default_catalog().with_price("sku_tea", 3)
        assert price_basket([CartLine(sku="sku_tea", qty=2)], catalog).subtotal_cents == 6
        assert default_catalog().get("sku_tea").price_cents == 1


class TestOrderId:

    def test_deterministic(self):
        assert derive_order_id("sess_a", "f" * 64) == derive_order_id("sess_a", "f" * 64)
        assert derive_order_id("sess_a", "f" * 64) != derive_order_id("sess_b", "f" * 64)

    def test_format(self):
        order_id = derive_order_id("sess_a", "f" * 64)
        assert order_id.startswith("ord_")
        assert len(order_id) == 20
