from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, String

from editions.db.base import Base


class EmailLog(Base):
    __tablename__ = "email_logs"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, nullable=True, index=True)
    to_email = Column(String, nullable=False)
    template_key = Column(String, nullable=False)
    # e.g. "NEW_EDITION_RELEASED:3:<user_id>"; a batch retry skips recipients already logged
    dedup_key = Column(String, unique=True, nullable=True)
    provider_message_id = Column(String, nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
