"""Checkout, token and verification services."""
