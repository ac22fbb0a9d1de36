"""
Database package for PEAC Shop.

Exports engine setup and the idempotency table model.
"""
from .init_db import create_engine, create_session_factory, initialize_database
from .models import Base, IdempotencyRecordModel

__all__ = [
    "create_engine",
    "create_session_factory",
    "initialize_database",
    "Base",
    "IdempotencyRecordModel",
]
