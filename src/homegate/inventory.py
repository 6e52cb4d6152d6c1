"""Creation and simple edits of rooms, devices and members."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime

from homegate._constants import DEVICES, MEMBERS, ROOMS
from homegate._documents import fetch_all, load_device, load_room
from homegate.models._base import utcnow
from homegate.models.device import Device, DeviceCategory
from homegate.models.member import Member, Role
from homegate.models.room import Room
from homegate.store.base import DocumentStore, WriteOp

_logger = logging.getLogger(__name__)


def _new_id() -> str:
    return uuid.uuid4().hex


class Inventory:
    """Admin-side creation of rooms, devices and members."""

    def __init__(
        self,
        store: DocumentStore,
        *,
        id_factory: Callable[[], str] = _new_id,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._id_factory = id_factory
        self._clock = clock

    async def add_room(self, name: str) -> Room:
        room = Room.build(id=self._id_factory(), name=name, created_at=self._clock())
        await self._store.batch([WriteOp.create(ROOMS, room.id, room.to_document())])
        _logger.info("Added room %s (%s)", room.id, room.name)
        return room

    async def rename_room(self, room_id: str, name: str) -> Room:
        loaded = await load_room(self._store, room_id)
        room = Room.build(**{**loaded.model.model_dump(), "name": name})
        await self._store.batch(
            [WriteOp.update(ROOMS, room_id, {"name": room.name}, expected_version=loaded.version)]
        )
        return room

    async def add_device(
        self,
        room_id: str,
        name: str,
        category: DeviceCategory | str = DeviceCategory.OTHER,
    ) -> Device:
        """Add a device to a room.  New devices start OFF, unassigned and unwired."""
        room = await load_room(self._store, room_id)
        device = Device.build(
            id=self._id_factory(),
            name=name,
            category=DeviceCategory(category),
            room_id=room.model.id,
            created_at=self._clock(),
        )
        await self._store.batch(
            [
                WriteOp.check(ROOMS, room_id, room.version),
                WriteOp.create(DEVICES, device.id, device.to_document()),
            ]
        )
        _logger.info("Added %s device %s (%s) to room %s", device.category, device.id, device.name, room_id)
        return device

    async def add_member(self, name: str, role: Role | str) -> Member:
        member = Member.build(id=self._id_factory(), name=name, role=role, created_at=self._clock())
        await self._store.batch([WriteOp.create(MEMBERS, member.id, member.to_document())])
        _logger.info("Added member %s (%s, %s)", member.id, member.name, member.role)
        return member

    async def set_device_pin(self, device_id: str, pin: str) -> Device:
        """Wire a device to a driver pin (digits only) or ``"X"`` to unwire it."""
        loaded = await load_device(self._store, device_id)
        device = Device.build(**{**loaded.model.model_dump(), "pin": pin})
        await self._store.batch(
            [WriteOp.update(DEVICES, device_id, {"pin": device.pin}, expected_version=loaded.version)]
        )
        _logger.info("Updated pin for device %s to %s", device_id, device.pin)
        return device

    async def rooms(self) -> list[Room]:
        return sorted((item.model for item in await fetch_all(self._store, ROOMS, Room)), key=lambda r: r.created_at)

    async def devices(self, room_id: str | None = None) -> list[Device]:
        where = {"roomId": room_id} if room_id is not None else None
        return [item.model for item in await fetch_all(self._store, DEVICES, Device, where)]

    async def members(self) -> list[Member]:
        return sorted((item.model for item in await fetch_all(self._store, MEMBERS, Member)), key=lambda m: m.name)
