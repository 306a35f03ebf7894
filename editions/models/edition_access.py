from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint

from editions.db.base import Base
from editions.models.enums import AccessStatus


class EditionAccess(Base):
    __tablename__ = "edition_access"
    __table_args__ = (UniqueConstraint("user_id", "edition_id", name="uq_edition_access_user_edition"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    edition_id = Column(String, ForeignKey("editions.id"), nullable=False, index=True)
    # Release engine promotes SCHEDULED -> ACTIVE; expiry sweep ACTIVE -> EXPIRED
    status = Column(
        String,
        nullable=False,
        default=AccessStatus.SCHEDULED.value,
        server_default=AccessStatus.SCHEDULED.value,
    )
    access_type = Column(String, nullable=False)  # PlanType
    unlock_at = Column(DateTime(timezone=True), nullable=True)
    unlocked_at = Column(DateTime(timezone=True), nullable=True)
    granted_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    expires_at = Column(DateTime(timezone=True), nullable=True)  # None = physical-only, never expires
    subscription_id = Column(String, nullable=True, index=True)
