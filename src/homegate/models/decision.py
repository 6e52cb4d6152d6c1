"""Authorization decisions for device control requests."""

from __future__ import annotations

import enum

from homegate.models._base import HomeBaseModel, NonEmptyStr

SYSTEM_ACTOR_ID = "system"


class DenyReason(enum.StrEnum):
    """Why a device control request was refused.

    Values are stable and meant to be shown to, or mapped by, UI clients.
    """

    NO_MEMBERS_PRESENT = "no_members_present"
    PANIC_MODE_ACTIVE = "panic_mode_active"
    NOT_ASSIGNED_TO_PRIVILEGED_USER = "not_assigned_to_privileged_user"


class Actor(HomeBaseModel):
    """Who is asking, as supplied by the identity provider."""

    id: NonEmptyStr
    is_admin: bool = False

    @classmethod
    def system(cls) -> Actor:
        """The non-human actor used for auto-remediation and panic sweeps."""
        return cls(id=SYSTEM_ACTOR_ID, is_admin=False)


class Decision(HomeBaseModel):
    allowed: bool
    reason: DenyReason | None = None

    @classmethod
    def allow(cls) -> Decision:
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: DenyReason) -> Decision:
        return cls(allowed=False, reason=reason)

    def __bool__(self) -> bool:
        return self.allowed
