"""
Dead-letter record for queue jobs that exhausted their attempts (or were non-retriable).
Kept for operator inspection; nothing deletes these rows.
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB

from editions.db.base import Base


class FailedJob(Base):
    __tablename__ = "failed_jobs"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    task_id = Column(String, nullable=True, index=True)
    queue = Column(String, nullable=False, index=True)
    job_name = Column(String, nullable=False)
    payload = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False, default=dict)
    error = Column(Text, nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    failed_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
