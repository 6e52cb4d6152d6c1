"""Household member model and the fixed role hierarchy."""

from __future__ import annotations

import enum
from datetime import datetime

from pydantic import Field

from homegate._constants import ROLE_RANKS
from homegate.models._base import HomeBaseModel, IdSet, NonEmptyStr, utcnow


class Role(enum.StrEnum):
    """Member roles, strongest first."""

    OWNER = "Owner"
    HOUSE_MEMBER = "House Member"
    GUEST = "Guest"
    MAID = "Maid"

    @property
    def rank(self) -> int:
        """Fixed rank: Owner 4, House Member 3, Guest 2, Maid 1."""
        return ROLE_RANKS[self.value]


class Member(HomeBaseModel):
    """A household member and the rooms/devices they may control."""

    id: NonEmptyStr
    name: NonEmptyStr
    role: Role
    assigned_rooms: IdSet = Field(default_factory=frozenset)
    assigned_devices: IdSet = Field(default_factory=frozenset)
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def rank(self) -> int:
        return self.role.rank
