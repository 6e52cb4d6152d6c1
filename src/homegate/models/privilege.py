"""Privileged member state and its change notification."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from homegate.models._base import HomeBaseModel, utcnow
from homegate.models.member import Role


class PrivilegeState(HomeBaseModel):
    """The single global "most privileged present member" document.

    Only :class:`homegate.privilege.PrivilegeResolver` writes it.
    ``privileged_member_id`` is ``None`` when nobody is home.
    """

    privileged_member_id: str | None = None
    role: Role | None = None
    updated_at: datetime = Field(default_factory=utcnow)


class PrivilegedMemberChanged(HomeBaseModel):
    """Emitted whenever the privileged member id changes."""

    previous: str | None
    current: str | None
    role: Role | None = None
    changed_at: datetime = Field(default_factory=utcnow)
