"""
PEAC Shop: x402 checkout issuing PEAC receipts.
"""
__version__ = "0.1.0"
