#!/usr/bin/env python3
"""
Walk through an x402 checkout against a running server.

Usage:
    python demo_checkout.py                      # direct checkout of sku_tea
    python demo_checkout.py --cart sku_tea sku_coffee
    python demo_checkout.py --base-url http://localhost:8000 --proof demo-pay-ok-123
"""
import argparse
import json
import sys
import uuid

import requests


def post(url: str, body: dict, headers: dict = None) -> requests.Response:
    print(f"🔗 POST {url}")
    return requests.post(url, json=body, headers=headers or {}, timeout=30)


def build_cart(base_url: str, skus: list) -> dict:
    """Open a cart and add each sku once; returns the checkout body."""
    response = post(f"{base_url}/api/shop/cart", {})
    response.raise_for_status()
    cart = response.json()
    cart_id, cart_token = cart["cart_id"], cart["cart_token"]
    print(f"   🛒 Cart {cart_id}")

    for sku in skus:
        response = post(f"{base_url}/api/shop/cart/{cart_id}/add", {"sku": sku, "cart_token": cart_token})
        if response.status_code != 200:
            print(f"❌ Error: HTTP {response.status_code}")
            print(response.text)
            sys.exit(1)
        cart_token = response.json()["cart_token"]
        print(f"   ➕ {sku}")

    return {"cart_id": cart_id, "cart_token": cart_token}


def run_checkout(base_url: str, path: str, body: dict, proof: str):
    url = f"{base_url}{path}"

    # Step 1: no proof -> 402 with session token
    response = post(url, body)
    if response.status_code != 402:
        print(f"❌ Expected 402, got HTTP {response.status_code}")
        print(response.text)
        return
    challenge = response.json()
    x402 = challenge["x402"]
    print(f"   💳 Payment required: {x402['amount_usd']} {x402['currency']} on {x402['chain']}")
    print(f"      Session: {x402['session_id']}")

    # Step 2: retry with proof
    headers = {
        "X-402-Session": challenge["session_token"],
        "X-402-Proof": proof,
        "Idempotency-Key": str(uuid.uuid4()),
    }
    response = post(url, body, headers)
    if response.status_code != 200:
        print(f"❌ Error: HTTP {response.status_code}")
        print(response.text)
        return

    order = response.json()
    receipt = response.headers.get("PEAC-Receipt")
    print(f"   ✅ Order {order['order_id']}: total ${order['totals']['grand_total']}")
    print(f"      Receipt: {receipt[:40]}...")

    # Step 3: verify the receipt
    response = post(f"{base_url}/api/verify", {"receipt": receipt})
    result = response.json()
    print(f"   🔏 Receipt valid: {result.get('valid')}")
    print(json.dumps(result.get("payload", {}).get("payment", {}), indent=2))


def main():
    parser = argparse.ArgumentParser(description="x402 checkout walkthrough")
    parser.add_argument("--base-url", default="http://localhost:8000")
    parser.add_argument("--proof", default="demo-pay-ok-123")
    parser.add_argument("--cart", nargs="*", help="Check out a cart with these skus instead")
    args = parser.parse_args()

    print("=" * 70)
    try:
        if args.cart:
            body = build_cart(args.base_url, args.cart)
            run_checkout(args.base_url, "/api/shop/checkout", body, args.proof)
        else:
            body = {"items": [{"sku": "sku_tea", "qty": 1}]}
            run_checkout(args.base_url, "/api/shop/checkout-direct", body, args.proof)
    except requests.exceptions.ConnectionError:
        print(f"❌ Could not connect to {args.base_url}. Is the server running?")
        sys.exit(1)
    print("=" * 70)


if __name__ == "__main__":
    main()
