"""Presence and scan log models."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from pydantic import Field

from homegate.models._base import HomeBaseModel, NonEmptyStr, utcnow


class ScanType(enum.StrEnum):
    INSCAN = "inscan"
    OUTSCAN = "outscan"


class ScanLogEntry(HomeBaseModel):
    """One immutable scan event.  The log is append-only."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    member_id: NonEmptyStr
    type: ScanType
    timestamp: datetime = Field(default_factory=utcnow)


class PresenceRecord(HomeBaseModel):
    """Marks a member as currently inside.  Exists only while they are present."""

    member_id: NonEmptyStr
    entered_at: datetime = Field(default_factory=utcnow)
