from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from editions.db.base import Base
from editions.models.enums import EditionStatus


class Edition(Base):
    __tablename__ = "editions"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    number = Column(Integer, unique=True, nullable=False, index=True)  # immutable ordering key
    code = Column(String, nullable=False)   # e.g. "EDI03"
    title = Column(String, nullable=False, default="")
    # PENDING -> PREORDER_OPEN -> ACTIVE -> CLOSED, never backwards. Only the release engine moves it.
    status = Column(String, nullable=False, default=EditionStatus.PENDING.value)
    release_date = Column(DateTime(timezone=True), nullable=True)
    ready_for_release = Column(Boolean, nullable=False, default=False)
    max_copies = Column(Integer, nullable=True)
    released_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
