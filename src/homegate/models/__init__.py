"""Document and value models for homegate."""

from homegate.models._base import HomeBaseModel, IdSet, NonEmptyStr, utcnow
from homegate.models.assignment import AssignmentDiff, AssignmentOp
from homegate.models.decision import SYSTEM_ACTOR_ID, Actor, Decision, DenyReason
from homegate.models.device import Device, DeviceCategory, DeviceStatus
from homegate.models.member import Member, Role
from homegate.models.panic import PanicState
from homegate.models.presence import PresenceRecord, ScanLogEntry, ScanType
from homegate.models.privilege import PrivilegedMemberChanged, PrivilegeState
from homegate.models.room import Room

__all__ = [
    "Actor",
    "AssignmentDiff",
    "AssignmentOp",
    "Decision",
    "DenyReason",
    "Device",
    "DeviceCategory",
    "DeviceStatus",
    "HomeBaseModel",
    "IdSet",
    "Member",
    "NonEmptyStr",
    "PanicState",
    "PresenceRecord",
    "PrivilegeState",
    "PrivilegedMemberChanged",
    "Role",
    "Room",
    "SYSTEM_ACTOR_ID",
    "ScanLogEntry",
    "ScanType",
    "utcnow",
]
