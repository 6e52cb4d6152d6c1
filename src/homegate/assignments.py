"""Assignment manager: the member / room / device graph.

Cascade rules applied to every change set:

A. unassigning a room unassigns every device in it;
B. assigning a room assigns every device currently in it;
C. assigning a device assigns its room, and a room left with no assigned
   devices is unassigned.

``Member.assigned_devices`` and ``Device.assigned_members`` mirror each other.
Each change set, and each deletion cascade, is committed as one atomic batch
with every touched document version-checked.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from homegate._constants import DEVICES, MEMBERS, PRESENCE, ROOMS
from homegate._documents import Versioned, fetch_all, load_device, load_member, load_room
from homegate.exceptions import ConflictError, ConflictReason, NotFoundError, PreconditionFailedError
from homegate.models.assignment import AssignmentDiff, AssignmentOp
from homegate.models.device import Device
from homegate.models.member import Member
from homegate.store.base import DocumentStore, WriteOp

_logger = logging.getLogger(__name__)


def _devices_in(room_id: str, devices: Iterable[Device]) -> set[str]:
    return {device.id for device in devices if device.room_id == room_id}


def _mirror_ops(member_id: str, assigned: set[str], devices: Iterable[Versioned[Device]]) -> list[WriteOp]:
    """Device updates that make ``assigned_members`` agree with *assigned*."""
    ops: list[WriteOp] = []
    for item in devices:
        device = item.model
        has_member = member_id in device.assigned_members
        wants_member = device.id in assigned
        if has_member == wants_member:
            continue
        members = device.assigned_members | {member_id} if wants_member else device.assigned_members - {member_id}
        ops.append(
            WriteOp.update(DEVICES, device.id, {"assignedMembers": sorted(members)}, expected_version=item.version)
        )
    return ops


class AssignmentManager:
    """Stages and commits assignment edits, and runs deletion cascades."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store
        self._staged: dict[str, AssignmentDiff] = {}

    # ------------------------------------------------------------------
    # Staging
    # ------------------------------------------------------------------

    def staged(self, member_id: str) -> AssignmentDiff:
        return self._staged.get(member_id, AssignmentDiff())

    def stage_room_change(self, member_id: str, room_id: str, op: AssignmentOp) -> AssignmentDiff:
        diff = self.staged(member_id).with_room(room_id, AssignmentOp(op))
        self._staged[member_id] = diff
        return diff

    def stage_device_change(self, member_id: str, device_id: str, op: AssignmentOp) -> AssignmentDiff:
        diff = self.staged(member_id).with_device(device_id, AssignmentOp(op))
        self._staged[member_id] = diff
        return diff

    def discard(self, member_id: str) -> None:
        self._staged.pop(member_id, None)

    async def commit(self, member_id: str) -> Member:
        """Apply the staged change set for *member_id*.

        On any failure the staged change set is left exactly as it was so the
        caller can retry.
        """
        diff = self.staged(member_id)
        member = await self.apply_assignment_diff(member_id, diff)
        # Changes staged while the commit was in flight stay staged.
        if self._staged.get(member_id) is diff:
            del self._staged[member_id]
        return member

    # ------------------------------------------------------------------
    # Change sets
    # ------------------------------------------------------------------

    async def apply_assignment_diff(self, member_id: str, diff: AssignmentDiff) -> Member:
        """Validate *diff*, run the cascades and commit member + device mirrors atomically.

        Raises
        ------
        NotFoundError
            The member, or a room/device being assigned, does not exist.
        ConflictError
            A touched document changed concurrently; nothing was written.
        """
        loaded = await load_member(self._store, member_id)
        member = loaded.model
        if diff.is_empty:
            return member

        for room_id in diff.add_rooms:
            await load_room(self._store, room_id)
        devices = await fetch_all(self._store, DEVICES, Device)
        by_id = {item.model.id: item.model for item in devices}
        missing = sorted(diff.add_devices - set(by_id))
        if missing:
            raise NotFoundError(f"device {missing[0]!r} not found", kind="device", doc_id=missing[0])

        rooms = set(member.assigned_rooms)
        assigned = set(member.assigned_devices)
        models = by_id.values()

        for room_id in diff.remove_rooms:
            rooms.discard(room_id)
            assigned -= _devices_in(room_id, models)
        for room_id in diff.add_rooms:
            rooms.add(room_id)
            assigned |= _devices_in(room_id, models)
        assigned -= diff.remove_devices
        for device_id in diff.add_devices:
            assigned.add(device_id)
            room_id = by_id[device_id].room_id
            if room_id is not None:
                rooms.add(room_id)

        dangling = assigned - set(by_id)
        if dangling:
            _logger.debug("Dropping dangling device ids %s from member %s", sorted(dangling), member_id)
            assigned -= dangling
        # A room with none of its devices assigned is not assigned either.
        rooms = {room_id for room_id in rooms if _devices_in(room_id, models) & assigned}

        ops = [
            WriteOp.update(
                MEMBERS,
                member_id,
                {"assignedRooms": sorted(rooms), "assignedDevices": sorted(assigned)},
                expected_version=loaded.version,
            )
        ]
        ops.extend(_mirror_ops(member_id, assigned, devices))
        await self._commit(ops, f"assignments for member {member_id}")

        _logger.info(
            "Member %s now has %d room(s) and %d device(s) assigned",
            member_id,
            len(rooms),
            len(assigned),
        )
        return member.model_copy(update={"assigned_rooms": frozenset(rooms), "assigned_devices": frozenset(assigned)})

    # ------------------------------------------------------------------
    # Deletion cascades
    # ------------------------------------------------------------------

    async def delete_device(self, device_id: str) -> None:
        """Delete a device and remove it from every member's assignments."""
        device = await load_device(self._store, device_id)
        devices = await fetch_all(self._store, DEVICES, Device)
        members = await fetch_all(self._store, MEMBERS, Member)

        remaining = [item.model for item in devices if item.model.id != device_id]
        ops = [WriteOp.delete(DEVICES, device_id, expected_version=device.version)]
        ops.extend(self._prune_members(members, {device_id}, set(), remaining))
        await self._commit(ops, f"deletion of device {device_id}")
        _logger.info("Deleted device %s", device_id)

    async def delete_room(self, room_id: str) -> None:
        """Delete a room, every device in it, and every assignment to them."""
        room = await load_room(self._store, room_id)
        devices = await fetch_all(self._store, DEVICES, Device)
        members = await fetch_all(self._store, MEMBERS, Member)

        doomed = [item for item in devices if item.model.room_id == room_id]
        doomed_ids = {item.model.id for item in doomed}
        remaining = [item.model for item in devices if item.model.id not in doomed_ids]

        ops = [WriteOp.delete(DEVICES, item.model.id, expected_version=item.version) for item in doomed]
        ops.extend(self._prune_members(members, doomed_ids, {room_id}, remaining))
        ops.append(WriteOp.delete(ROOMS, room_id, expected_version=room.version))
        await self._commit(ops, f"deletion of room {room_id}")
        _logger.info("Deleted room %s and %d device(s)", room_id, len(doomed))

    async def delete_member(self, member_id: str) -> bool:
        """Delete a member, their device mirrors and their presence record.

        The scan log is kept.  Returns ``True`` when the member was inside, in
        which case the privileged member needs recomputing.
        """
        member = await load_member(self._store, member_id)
        devices = await fetch_all(self._store, DEVICES, Device)
        present = await self._store.get(PRESENCE, member_id)

        ops = [WriteOp.delete(MEMBERS, member_id, expected_version=member.version)]
        ops.extend(_mirror_ops(member_id, set(), devices))
        if present is not None:
            ops.append(WriteOp.delete(PRESENCE, member_id, expected_version=present.version))
        await self._commit(ops, f"deletion of member {member_id}")
        _logger.info("Deleted member %s", member_id)
        return present is not None

    @staticmethod
    def _prune_members(
        members: Iterable[Versioned[Member]],
        device_ids: set[str],
        room_ids: set[str],
        remaining: list[Device],
    ) -> list[WriteOp]:
        ops: list[WriteOp] = []
        for item in members:
            member = item.model
            if not (member.assigned_devices & device_ids or member.assigned_rooms & room_ids):
                continue
            assigned = set(member.assigned_devices) - device_ids
            rooms = {
                room_id
                for room_id in member.assigned_rooms - room_ids
                if _devices_in(room_id, remaining) & assigned
            }
            ops.append(
                WriteOp.update(
                    MEMBERS,
                    member.id,
                    {"assignedRooms": sorted(rooms), "assignedDevices": sorted(assigned)},
                    expected_version=item.version,
                )
            )
        return ops

    async def _commit(self, ops: list[WriteOp], what: str) -> None:
        try:
            await self._store.batch(ops)
        except PreconditionFailedError as exc:
            _logger.info("Commit of %s rejected: %s", what, exc)
            raise ConflictError(
                f"Concurrent change while committing {what}; nothing was written",
                reason=ConflictReason.CONCURRENT_MODIFICATION,
            ) from exc
