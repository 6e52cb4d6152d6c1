"""Assignment change sets for the member / room / device graph."""

from __future__ import annotations

import enum

from pydantic import Field, model_validator

from homegate.models._base import HomeBaseModel, IdSet


class AssignmentOp(enum.StrEnum):
    ASSIGN = "assign"
    UNASSIGN = "unassign"


class AssignmentDiff(HomeBaseModel):
    """Rooms and devices to add to / remove from one member.

    The same id may not be both added and removed.
    """

    add_rooms: IdSet = Field(default_factory=frozenset)
    remove_rooms: IdSet = Field(default_factory=frozenset)
    add_devices: IdSet = Field(default_factory=frozenset)
    remove_devices: IdSet = Field(default_factory=frozenset)

    @model_validator(mode="after")
    def _reject_overlap(self) -> AssignmentDiff:
        rooms = self.add_rooms & self.remove_rooms
        devices = self.add_devices & self.remove_devices
        if rooms or devices:
            raise ValueError(f"ids both added and removed: {sorted(rooms | devices)}")
        return self

    @property
    def is_empty(self) -> bool:
        return not (self.add_rooms or self.remove_rooms or self.add_devices or self.remove_devices)

    def with_room(self, room_id: str, op: AssignmentOp) -> AssignmentDiff:
        """Return a copy with *room_id* staged for *op*, cancelling the opposite op."""
        add = self.add_rooms - {room_id}
        remove = self.remove_rooms - {room_id}
        if op is AssignmentOp.ASSIGN:
            add |= {room_id}
        else:
            remove |= {room_id}
        return self.model_copy(update={"add_rooms": add, "remove_rooms": remove})

    def with_device(self, device_id: str, op: AssignmentOp) -> AssignmentDiff:
        """Return a copy with *device_id* staged for *op*, cancelling the opposite op."""
        add = self.add_devices - {device_id}
        remove = self.remove_devices - {device_id}
        if op is AssignmentOp.ASSIGN:
            add |= {device_id}
        else:
            remove |= {device_id}
        return self.model_copy(update={"add_devices": add, "remove_devices": remove})
