from __future__ import annotations

import itertools

import pytest

from homegate.exceptions import NotFoundError, ValidationError
from homegate.inventory import Inventory
from homegate.models import DeviceCategory, DeviceStatus, Role
from homegate.store import InMemoryDocumentStore


def _inventory() -> tuple[InMemoryDocumentStore, Inventory]:
    store = InMemoryDocumentStore()
    ids = (f"id{n}" for n in itertools.count(1))
    return store, Inventory(store, id_factory=lambda: next(ids))


@pytest.mark.asyncio
async def test_new_devices_start_off_unassigned_and_unwired() -> None:
    _, inventory = _inventory()
    room = await inventory.add_room("Kitchen")

    device = await inventory.add_device(room.id, "Kettle", "Kettle")

    assert device.room_id == room.id
    assert device.status is DeviceStatus.OFF
    assert device.category is DeviceCategory.OTHER
    assert device.assigned_members == frozenset()
    assert device.pin == "X"
    assert [d.id for d in await inventory.devices(room.id)] == [device.id]


@pytest.mark.asyncio
async def test_device_needs_an_existing_room() -> None:
    store, inventory = _inventory()

    with pytest.raises(NotFoundError) as excinfo:
        await inventory.add_device("nowhere", "Lamp", DeviceCategory.LIGHT)

    assert excinfo.value.kind == "room"
    assert await store.list("devices") == []


@pytest.mark.asyncio
async def test_blank_names_are_rejected() -> None:
    store, inventory = _inventory()

    with pytest.raises(ValidationError):
        await inventory.add_room("  ")
    with pytest.raises(ValidationError):
        await inventory.add_member("", Role.GUEST)

    assert await store.list("rooms") == []


@pytest.mark.asyncio
async def test_set_device_pin_validates_digits() -> None:
    _, inventory = _inventory()
    room = await inventory.add_room("Hall")
    device = await inventory.add_device(room.id, "Lamp", DeviceCategory.LIGHT)

    wired = await inventory.set_device_pin(device.id, "17")
    assert wired.pin == "17"

    with pytest.raises(ValidationError):
        await inventory.set_device_pin(device.id, "17b")
    assert (await inventory.devices())[0].pin == "17"

    assert (await inventory.set_device_pin(device.id, "X")).pin == "X"


@pytest.mark.asyncio
async def test_rename_room_and_listings() -> None:
    _, inventory = _inventory()
    hall = await inventory.add_room("Hall")
    await inventory.add_member("Zoe", "Maid")
    await inventory.add_member("Adam", Role.HOUSE_MEMBER)

    renamed = await inventory.rename_room(hall.id, "Entrance")

    assert renamed.name == "Entrance"
    assert [room.name for room in await inventory.rooms()] == ["Entrance"]
    assert [member.name for member in await inventory.members()] == ["Adam", "Zoe"]
