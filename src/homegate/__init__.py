"""homegate - Presence-driven privilege resolution and device authorization."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("homegate")
except PackageNotFoundError:
    __version__ = "0+local"
from homegate.assignments import AssignmentManager
from homegate.client import HomeGateClient
from homegate.config import HomeGateConfig
from homegate.exceptions import (
    AuthorizationError,
    ConflictError,
    ConflictReason,
    HomeGateConfigError,
    HomeGateError,
    NotFoundError,
    PreconditionFailedError,
    StoreUnavailableError,
    ValidationError,
)
from homegate.gate import AuthorizationGate, decide
from homegate.inventory import Inventory
from homegate.models import (
    Actor,
    AssignmentDiff,
    AssignmentOp,
    Decision,
    DenyReason,
    Device,
    DeviceCategory,
    DeviceStatus,
    Member,
    PanicState,
    PresenceRecord,
    PrivilegedMemberChanged,
    PrivilegeState,
    Role,
    Room,
    ScanLogEntry,
    ScanType,
)
from homegate.panic import PanicController
from homegate.presence import PresenceTracker
from homegate.privilege import PrivilegeResolver, resolve_privileged_member
from homegate.store import DocumentStore, InMemoryDocumentStore

__all__ = [
    "__version__",
    "Actor",
    "AssignmentDiff",
    "AssignmentManager",
    "AssignmentOp",
    "AuthorizationError",
    "AuthorizationGate",
    "ConflictError",
    "ConflictReason",
    "Decision",
    "DenyReason",
    "Device",
    "DeviceCategory",
    "DeviceStatus",
    "DocumentStore",
    "HomeGateClient",
    "HomeGateConfig",
    "HomeGateConfigError",
    "HomeGateError",
    "InMemoryDocumentStore",
    "Inventory",
    "Member",
    "NotFoundError",
    "PanicController",
    "PanicState",
    "PreconditionFailedError",
    "PresenceRecord",
    "PresenceTracker",
    "PrivilegeResolver",
    "PrivilegeState",
    "PrivilegedMemberChanged",
    "Role",
    "Room",
    "ScanLogEntry",
    "ScanType",
    "StoreUnavailableError",
    "ValidationError",
    "decide",
    "resolve_privileged_member",
]
