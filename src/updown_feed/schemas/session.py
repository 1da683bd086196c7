"""Schemas for friends with an ongoing workout session."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class ActiveSessionRow(BaseModel):
    """Row of the ``active_sessions`` table."""

    id: str
    user_id: str
    activity_type: str
    started_at: str
    updated_at: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    is_active: bool = True


class ActiveFriendSession(BaseModel):
    """A followed user who is currently working out."""

    id: str
    user_id: str
    user_name: str
    avatar_url: str | None = None
    activity_type: str
    started_at: str
    latitude: float | None = None
    longitude: float | None = None

    model_config = ConfigDict(frozen=True)

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None
