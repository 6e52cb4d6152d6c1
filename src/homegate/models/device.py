"""Controllable device model."""

from __future__ import annotations

import enum
from datetime import datetime

from pydantic import Field, field_validator

from homegate._constants import DOOR_LOCK_CATEGORY, UNASSIGNED_PIN
from homegate.models._base import HomeBaseModel, IdSet, NonEmptyStr, utcnow


class DeviceCategory(enum.StrEnum):
    """Device categories offered by the admin UI.

    Categories this library does not know about resolve to ``OTHER``
    instead of raising, so documents written by newer clients still load.
    """

    LIGHT = "Light"
    FAN = "Fan"
    TV = "TV"
    DOOR_LOCK = DOOR_LOCK_CATEGORY
    REFRIGERATOR = "Refrigerator"
    OTHER = "Other"

    @classmethod
    def _missing_(cls, value: object) -> DeviceCategory:
        return cls.OTHER


class DeviceStatus(enum.StrEnum):
    ON = "ON"
    OFF = "OFF"

    def toggled(self) -> DeviceStatus:
        return DeviceStatus.OFF if self is DeviceStatus.ON else DeviceStatus.ON


class Device(HomeBaseModel):
    """A device in a room.

    ``pin`` is an opaque driver-side address.  ``"X"`` means the device is not
    wired to any output yet; otherwise it is a string of digits.
    """

    id: NonEmptyStr
    name: NonEmptyStr
    category: DeviceCategory = DeviceCategory.OTHER
    status: DeviceStatus = DeviceStatus.OFF
    room_id: str | None = None
    assigned_members: IdSet = Field(default_factory=frozenset)
    pin: str = UNASSIGNED_PIN
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("pin")
    @classmethod
    def _validate_pin(cls, value: str) -> str:
        if value == UNASSIGNED_PIN or (value.isascii() and value.isdigit()):
            return value
        raise ValueError(f"pin must be {UNASSIGNED_PIN!r} or digits only, got {value!r}")

    @property
    def is_door_lock(self) -> bool:
        return self.category is DeviceCategory.DOOR_LOCK
