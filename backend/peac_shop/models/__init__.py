"""Pydantic models for token claims and orders."""
