"""Device authorization gate.

Every user-initiated device status change passes through :func:`decide`.
The gate also performs auto-remediation when the privileged member changes:
devices left ON that the new privileged member is not assigned to are
switched OFF by the system, with no admin bypass.
"""

from __future__ import annotations

import logging
from collections.abc import Collection

from homegate._constants import DEVICES, PANIC, PRIVILEGE, SINGLETON_ID
from homegate._documents import Versioned, fetch_all, load_device, load_panic, load_privilege
from homegate.exceptions import AuthorizationError, ConflictError, ConflictReason, PreconditionFailedError
from homegate.models.decision import Actor, Decision, DenyReason
from homegate.models.device import Device, DeviceStatus
from homegate.models.panic import PanicState
from homegate.models.privilege import PrivilegedMemberChanged, PrivilegeState
from homegate.presence import PresenceTracker
from homegate.store.base import DocumentStore, WriteOp

_logger = logging.getLogger(__name__)

_DENY_MESSAGES: dict[DenyReason, str] = {
    DenyReason.PANIC_MODE_ACTIVE: "Panic mode is active; device control is disabled",
    DenyReason.NO_MEMBERS_PRESENT: "No members are present in the house",
    DenyReason.NOT_ASSIGNED_TO_PRIVILEGED_USER: "Device is not assigned to the current privileged member",
}


def decide(
    device: Device,
    actor: Actor,
    presence: Collection[str],
    privilege: PrivilegeState,
    panic: PanicState,
) -> Decision:
    """Decide whether *actor* may change *device* right now.

    Rules short-circuit in order:

    1. panic mode denies everyone, admins included;
    2. an empty house denies non-admins;
    3. non-admins may only touch devices assigned to the privileged member.
    """
    if panic.active:
        return Decision.deny(DenyReason.PANIC_MODE_ACTIVE)
    if not presence and not actor.is_admin:
        return Decision.deny(DenyReason.NO_MEMBERS_PRESENT)
    privileged = privilege.privileged_member_id
    if privileged is not None and not actor.is_admin and privileged not in device.assigned_members:
        return Decision.deny(DenyReason.NOT_ASSIGNED_TO_PRIVILEGED_USER)
    return Decision.allow()


class AuthorizationGate:
    """Evaluates and applies device control requests."""

    def __init__(self, store: DocumentStore, presence: PresenceTracker, *, remediation_attempts: int = 5) -> None:
        self._store = store
        self._presence = presence
        self._remediation_attempts = remediation_attempts

    async def _context(
        self, device_id: str
    ) -> tuple[Versioned[Device], frozenset[str], Versioned[PrivilegeState], Versioned[PanicState]]:
        device = await load_device(self._store, device_id)
        presence = await self._presence.current_presence()
        privilege = await load_privilege(self._store)
        panic = await load_panic(self._store)
        return device, presence, privilege, panic

    async def check(self, device_id: str, actor: Actor) -> Decision:
        """Decide against the latest device, presence, privilege and panic state."""
        device, presence, privilege, panic = await self._context(device_id)
        return decide(device.model, actor, presence, privilege.model, panic.model)

    async def set_device_status(self, device_id: str, status: DeviceStatus, actor: Actor) -> Device:
        """Switch a device ON or OFF on behalf of *actor*.

        The write is committed only if the device, privilege and panic
        documents are still at the versions the decision was made on.

        Raises
        ------
        AuthorizationError
            The request was denied; nothing was written.
        ConflictError
            State changed between the decision and the write; nothing was
            written and the caller may retry.
        """
        device, presence, privilege, panic = await self._context(device_id)

        decision = decide(device.model, actor, presence, privilege.model, panic.model)
        if not decision.allowed:
            assert decision.reason is not None  # noqa: S101
            _logger.info("Denied %s -> %s for actor %s: %s", device_id, status, actor.id, decision.reason)
            raise AuthorizationError(_DENY_MESSAGES[decision.reason], reason=decision.reason, device_id=device_id)

        if device.model.status is status:
            return device.model

        try:
            await self._store.batch(
                [
                    WriteOp.check(PANIC, SINGLETON_ID, panic.version),
                    WriteOp.check(PRIVILEGE, SINGLETON_ID, privilege.version),
                    WriteOp.update(DEVICES, device_id, {"status": status.value}, expected_version=device.version),
                ]
            )
        except PreconditionFailedError as exc:
            raise ConflictError(
                f"State changed while switching {device_id}; retry the request",
                reason=ConflictReason.CONCURRENT_MODIFICATION,
            ) from exc

        _logger.info("Device %s switched %s by %s", device_id, status, actor.id)
        return device.model.model_copy(update={"status": status})

    async def toggle_device(self, device_id: str, actor: Actor) -> Device:
        device = await load_device(self._store, device_id)
        return await self.set_device_status(device_id, device.model.status.toggled(), actor)

    async def remediate(self, change: PrivilegedMemberChanged) -> list[str]:
        """Switch OFF every ON device the privileged member is not assigned to.

        *change* only triggers the run.  The privileged member is re-read from
        the store, and the batch is guarded by the privilege version, so a
        notification that has since been superseded cannot switch off the
        devices of a newer privileged member.

        Runs as the system actor.  When nobody is present every ON device is
        switched off.  Skipped while panic mode is active, since the panic
        sweep already owns device state.

        Returns the ids of the devices that were switched off.
        """
        for attempt in range(1, self._remediation_attempts + 1):
            panic = await load_panic(self._store)
            if panic.model.active:
                _logger.debug("Remediation skipped: panic mode is active")
                return []

            privilege = await load_privilege(self._store)
            current = privilege.model.privileged_member_id
            if current != change.current:
                _logger.debug("Remediating for %s instead of superseded %s", current, change.current)

            devices = await fetch_all(self._store, DEVICES, Device)
            stale = [
                item
                for item in devices
                if item.model.status is DeviceStatus.ON and current not in item.model.assigned_members
            ]
            if not stale:
                return []

            ops = [
                WriteOp.check(PANIC, SINGLETON_ID, panic.version),
                WriteOp.check(PRIVILEGE, SINGLETON_ID, privilege.version),
            ]
            ops.extend(
                WriteOp.update(DEVICES, item.model.id, {"status": DeviceStatus.OFF.value}, expected_version=item.version)
                for item in stale
            )
            try:
                await self._store.batch(ops)
            except PreconditionFailedError:
                _logger.debug("Remediation raced a concurrent write (attempt %d/%d)", attempt, self._remediation_attempts)
                continue

            switched = [item.model.id for item in stale]
            _logger.info(
                "Privileged member now %s; switched off %d device(s): %s",
                current,
                len(switched),
                ", ".join(switched),
            )
            return switched

        raise ConflictError(
            f"Remediation kept racing concurrent writes ({self._remediation_attempts} attempts)",
            reason=ConflictReason.CONCURRENT_MODIFICATION,
        )
