from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, String

from editions.db.base import Base
from editions.models.enums import UserStatus


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    email = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=True)
    status = Column(String, nullable=False, default=UserStatus.PENDING_SUBSCRIPTION.value)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
