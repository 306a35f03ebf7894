"""
Cached view of a user's edition access. The cache stores the whole list per user as JSON.
"""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, TypeAdapter


class EditionSummary(BaseModel):
    id: str
    number: int
    code: str
    title: str
    status: str
    release_date: datetime | None = None
    released_at: datetime | None = None


class AccessView(BaseModel):
    id: str
    user_id: str
    edition_id: str
    status: str
    access_type: str
    unlock_at: datetime | None = None
    unlocked_at: datetime | None = None
    granted_at: datetime
    expires_at: datetime | None = None
    subscription_id: str | None = None
    edition: EditionSummary


access_list_adapter = TypeAdapter(list[AccessView])
