"""
SQLAlchemy ORM Models for PEAC Shop

The only persisted state is the shared idempotency table; carts and payment
sessions live entirely in signed tokens.
"""
from sqlalchemy import Column, String, DateTime, Text, CheckConstraint
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class IdempotencyRecordModel(Base):
    """
    ORM model for idempotency_records table.

    The primary key on idempotency_key is what makes reservation an atomic
    check-and-set across service instances.
    """
    __tablename__ = "idempotency_records"

    idempotency_key = Column(String, primary_key=True)
    request_hash = Column(String, nullable=False)
    status = Column(String, nullable=False)
    response_body = Column(Text)  # exact order bytes, utf-8
    receipt = Column(Text)
    created_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)

    __table_args__ = (
        CheckConstraint("status IN ('pending', 'completed')", name="idempotency_status_check"),
    )
