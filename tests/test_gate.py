from __future__ import annotations

from collections.abc import Sequence

import pytest

from homegate._constants import DEVICES, MEMBERS, PRIVILEGE, SINGLETON_ID
from homegate.exceptions import AuthorizationError, ConflictError, ConflictReason
from homegate.gate import AuthorizationGate, decide
from homegate.models import (
    Actor,
    DenyReason,
    Device,
    DeviceCategory,
    DeviceStatus,
    Member,
    PanicState,
    PrivilegedMemberChanged,
    PrivilegeState,
    Role,
)
from homegate.panic import PanicController
from homegate.presence import PresenceTracker
from homegate.privilege import PrivilegeResolver
from homegate.store import InMemoryDocumentStore, OpKind, WriteOp

_LAMP = Device(id="lamp", name="Lamp", category=DeviceCategory.LIGHT, assigned_members={"o"})
_OWNER_PRIVILEGED = PrivilegeState(privileged_member_id="o", role=Role.OWNER)
_CALM = PanicState()
_PANIC = PanicState(active=True)


async def _add_member(store: InMemoryDocumentStore, member_id: str, role: Role) -> None:
    member = Member(id=member_id, name=member_id.title(), role=role)
    await store.put(MEMBERS, member.id, member.to_document())


async def _add_device(store: InMemoryDocumentStore, device: Device) -> None:
    await store.put(DEVICES, device.id, device.to_document())


async def _status(store: InMemoryDocumentStore, device_id: str) -> str:
    doc = await store.get(DEVICES, device_id)
    assert doc is not None
    return doc.data["status"]


async def _home() -> tuple[InMemoryDocumentStore, PresenceTracker, PrivilegeResolver, AuthorizationGate]:
    store = InMemoryDocumentStore()
    tracker = PresenceTracker(store)
    resolver = PrivilegeResolver(store, tracker)
    gate = AuthorizationGate(store, tracker)
    await _add_member(store, "o", Role.OWNER)
    await _add_member(store, "g", Role.GUEST)
    await _add_device(store, _LAMP)
    return store, tracker, resolver, gate


# ------------------------------------------------------------------
# decide()
# ------------------------------------------------------------------


def test_panic_denies_everyone_including_admins() -> None:
    for actor in (Actor(id="o"), Actor(id="admin", is_admin=True)):
        decision = decide(_LAMP, actor, {"o"}, _OWNER_PRIVILEGED, _PANIC)
        assert decision.reason is DenyReason.PANIC_MODE_ACTIVE


def test_empty_house_denies_members_but_not_admins() -> None:
    nobody = PrivilegeState()

    assert decide(_LAMP, Actor(id="o"), set(), nobody, _CALM).reason is DenyReason.NO_MEMBERS_PRESENT
    assert decide(_LAMP, Actor(id="admin", is_admin=True), set(), nobody, _CALM).allowed


def test_device_must_be_assigned_to_privileged_member() -> None:
    guest_privileged = PrivilegeState(privileged_member_id="g", role=Role.GUEST)

    decision = decide(_LAMP, Actor(id="o"), {"g"}, guest_privileged, _CALM)

    assert decision.reason is DenyReason.NOT_ASSIGNED_TO_PRIVILEGED_USER
    assert decide(_LAMP, Actor(id="admin", is_admin=True), {"g"}, guest_privileged, _CALM).allowed


def test_any_present_actor_may_use_privileged_members_devices() -> None:
    assert decide(_LAMP, Actor(id="g"), {"o", "g"}, _OWNER_PRIVILEGED, _CALM).allowed


# ------------------------------------------------------------------
# AuthorizationGate
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_denied_request_writes_nothing() -> None:
    store, _, _, gate = await _home()

    with pytest.raises(AuthorizationError) as excinfo:
        await gate.set_device_status("lamp", DeviceStatus.ON, Actor(id="o"))

    assert excinfo.value.reason is DenyReason.NO_MEMBERS_PRESENT
    assert excinfo.value.device_id == "lamp"
    assert (await store.get(DEVICES, "lamp")).version == 1  # type: ignore[union-attr]


@pytest.mark.asyncio
async def test_allowed_request_switches_device() -> None:
    store, tracker, resolver, gate = await _home()
    await tracker.record_entry("o")
    await resolver.recompute()

    assert await gate.check("lamp", Actor(id="o"))
    device = await gate.set_device_status("lamp", DeviceStatus.ON, Actor(id="o"))
    assert device.status is DeviceStatus.ON
    assert await _status(store, "lamp") == "ON"

    device = await gate.toggle_device("lamp", Actor(id="o"))
    assert device.status is DeviceStatus.OFF
    assert await _status(store, "lamp") == "OFF"


@pytest.mark.asyncio
async def test_setting_current_status_is_a_no_op() -> None:
    store, tracker, resolver, gate = await _home()
    await tracker.record_entry("o")
    await resolver.recompute()

    await gate.set_device_status("lamp", DeviceStatus.OFF, Actor(id="o"))

    assert (await store.get(DEVICES, "lamp")).version == 1  # type: ignore[union-attr]


@pytest.mark.asyncio
async def test_admin_is_denied_during_panic() -> None:
    store, _, _, gate = await _home()
    await PanicController(store).activate()

    with pytest.raises(AuthorizationError) as excinfo:
        await gate.set_device_status("lamp", DeviceStatus.ON, Actor(id="admin", is_admin=True))

    assert excinfo.value.reason is DenyReason.PANIC_MODE_ACTIVE


class _PrivilegeFlipStore(InMemoryDocumentStore):
    """Moves privilege to the guest right before a device write commits."""

    async def batch(self, ops: Sequence[WriteOp]) -> None:
        if any(op.collection == DEVICES and op.kind is OpKind.UPDATE for op in ops):
            flipped = PrivilegeState(privileged_member_id="g", role=Role.GUEST)
            await super().batch([WriteOp.set(PRIVILEGE, SINGLETON_ID, flipped.to_document())])
        await super().batch(ops)


@pytest.mark.asyncio
async def test_write_is_rejected_when_privilege_changes_after_decision() -> None:
    store = _PrivilegeFlipStore()
    tracker = PresenceTracker(store)
    resolver = PrivilegeResolver(store, tracker)
    gate = AuthorizationGate(store, tracker)
    await _add_member(store, "o", Role.OWNER)
    await _add_device(store, _LAMP)
    await tracker.record_entry("o")
    await resolver.recompute()

    with pytest.raises(ConflictError) as excinfo:
        await gate.set_device_status("lamp", DeviceStatus.ON, Actor(id="o"))

    assert excinfo.value.reason is ConflictReason.CONCURRENT_MODIFICATION
    assert await _status(store, "lamp") == "OFF"


# ------------------------------------------------------------------
# Auto-remediation
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_remediation_switches_off_devices_of_previous_privileged_member() -> None:
    store, tracker, resolver, gate = await _home()
    shared = Device(id="tv", name="TV", category=DeviceCategory.TV, assigned_members={"o", "g"})
    await _add_device(store, shared)
    await tracker.record_entry("o")
    await tracker.record_entry("g")
    await resolver.recompute()
    await gate.set_device_status("lamp", DeviceStatus.ON, Actor(id="o"))
    await gate.set_device_status("tv", DeviceStatus.ON, Actor(id="o"))

    await tracker.record_exit("o")
    change = await resolver.recompute()
    assert change is not None
    switched = await gate.remediate(change)

    assert switched == ["lamp"]
    assert await _status(store, "lamp") == "OFF"
    assert await _status(store, "tv") == "ON"


@pytest.mark.asyncio
async def test_remediation_when_house_empties_switches_everything_off() -> None:
    store, _, _, gate = await _home()
    await _add_device(store, _LAMP.model_copy(update={"id": "porch", "status": DeviceStatus.ON}))

    switched = await gate.remediate(PrivilegedMemberChanged(previous="o", current=None))

    assert switched == ["porch"]
    assert await _status(store, "porch") == "OFF"


@pytest.mark.asyncio
async def test_remediation_is_skipped_during_panic() -> None:
    store, _, _, gate = await _home()
    await _add_device(store, Device(id="door", name="Front", category=DeviceCategory.DOOR_LOCK))
    await PanicController(store).activate()

    assert await gate.remediate(PrivilegedMemberChanged(previous="o", current="g")) == []
    assert await _status(store, "door") == "ON"


@pytest.mark.asyncio
async def test_remediation_uses_stored_privilege_not_a_superseded_event() -> None:
    store, tracker, resolver, gate = await _home()
    await _add_device(store, Device(id="heater", name="Heater", assigned_members={"g"}))
    await tracker.record_entry("g")
    await resolver.recompute()
    await gate.set_device_status("heater", DeviceStatus.ON, Actor(id="g"))

    # Delivered late: the owner was privileged once, but the guest is now.
    switched = await gate.remediate(PrivilegedMemberChanged(previous="g", current="o"))

    assert switched == []
    assert await _status(store, "heater") == "ON"


class _PrivilegeMovesDuringRemediationStore(InMemoryDocumentStore):
    """Hands privilege to the guest right before the first remediation batch commits."""

    def __init__(self) -> None:
        super().__init__()
        self.moved = False

    async def batch(self, ops: Sequence[WriteOp]) -> None:
        if not self.moved and any(op.collection == PRIVILEGE and op.kind is OpKind.CHECK for op in ops):
            self.moved = True
            flipped = PrivilegeState(privileged_member_id="g", role=Role.GUEST)
            await super().batch([WriteOp.set(PRIVILEGE, SINGLETON_ID, flipped.to_document())])
        await super().batch(ops)


@pytest.mark.asyncio
async def test_remediation_retries_against_privilege_that_moved_mid_run() -> None:
    store = _PrivilegeMovesDuringRemediationStore()
    await store.put(PRIVILEGE, SINGLETON_ID, PrivilegeState(privileged_member_id="o", role=Role.OWNER).to_document())
    gate = AuthorizationGate(store, PresenceTracker(store))
    await _add_device(store, _LAMP.model_copy(update={"status": DeviceStatus.ON}))
    guest_device = Device(id="heater", name="Heater", status=DeviceStatus.ON, assigned_members={"g"})
    await _add_device(store, guest_device)

    switched = await gate.remediate(PrivilegedMemberChanged(previous=None, current="o"))

    assert store.moved
    assert switched == ["lamp"]
    assert await _status(store, "lamp") == "OFF"
    assert await _status(store, "heater") == "ON"
