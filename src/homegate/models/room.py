"""Room model."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from homegate.models._base import HomeBaseModel, NonEmptyStr, utcnow


class Room(HomeBaseModel):
    id: NonEmptyStr
    name: NonEmptyStr
    created_at: datetime = Field(default_factory=utcnow)
