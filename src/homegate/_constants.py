"""Internal constants shared across the library."""

# ------------------------------------------------------------------
# Store layout
# ------------------------------------------------------------------

MEMBERS = "members"
ROOMS = "rooms"
DEVICES = "devices"
PRESENCE = "present_scan"
SCAN_LOG = "scan_log"
PRIVILEGE = "current_most_privileged_user"
PANIC = "panic_mode"

#: Document id of the privilege and panic singletons.
SINGLETON_ID = "current"

# ------------------------------------------------------------------
# Role hierarchy  (Owner > House Member > Guest > Maid)
# ------------------------------------------------------------------

ROLE_RANKS: dict[str, int] = {
    "Owner": 4,
    "House Member": 3,
    "Guest": 2,
    "Maid": 1,
}

#: Starting rank for the privilege scan; every real role beats it.
NO_RANK = -1

# ------------------------------------------------------------------
# Devices
# ------------------------------------------------------------------

#: Driver-side pin value meaning "not wired to any output".
UNASSIGNED_PIN = "X"

DOOR_LOCK_CATEGORY = "Door Lock"

#: Status forced onto door locks while panic mode is active.
#: ``ON`` means unlocked, so occupants can get out.
PANIC_LOCK_STATUS = "ON"

#: Status forced onto every other device while panic mode is active.
PANIC_DEVICE_STATUS = "OFF"
