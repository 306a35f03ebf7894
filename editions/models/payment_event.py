"""
Event ledger row — keyed by the payment provider's event id.
The primary key doubles as the idempotency guard for webhook redelivery and job retries.
"""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, Text

from editions.db.base import Base
from editions.models.enums import LedgerStatus


class PaymentEventRecord(Base):
    __tablename__ = "payment_events"

    id = Column(String, primary_key=True)  # external event id
    type = Column(String, nullable=False)
    status = Column(String, nullable=False, default=LedgerStatus.PROCESSING.value)  # PROCESSING / HANDLED / FAILED
    raw_payload = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)
    attempts = Column(Integer, nullable=False, default=1)
    handled_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
