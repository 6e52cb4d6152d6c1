"""Panic controller: the global emergency override.

Activation flips the flag and sweeps every device in the same atomic batch.
Door locks are driven ``ON`` (unlocked) so occupants can get out; every other
device is driven ``OFF``.  Deactivation only clears the flag; device states
are not restored.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from homegate._constants import DEVICES, PANIC, PANIC_DEVICE_STATUS, PANIC_LOCK_STATUS, SINGLETON_ID
from homegate._documents import fetch_all, load_panic
from homegate.exceptions import ConflictError, ConflictReason, PreconditionFailedError
from homegate.models._base import utcnow
from homegate.models.device import Device, DeviceStatus
from homegate.models.panic import PanicState
from homegate.store.base import DocumentStore, WriteOp

_logger = logging.getLogger(__name__)


def panic_status_for(device: Device) -> DeviceStatus:
    """Status *device* must hold while panic mode is active."""
    if device.is_door_lock:
        return DeviceStatus(PANIC_LOCK_STATUS)
    return DeviceStatus(PANIC_DEVICE_STATUS)


class PanicController:
    """Activates and deactivates panic mode."""

    def __init__(
        self,
        store: DocumentStore,
        *,
        sweep_attempts: int = 5,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._sweep_attempts = sweep_attempts
        self._clock = clock

    async def state(self) -> PanicState:
        return (await load_panic(self._store)).model

    async def is_active(self) -> bool:
        return (await self.state()).active

    async def activate(self) -> PanicState:
        """Set the panic flag and force every device to its panic status.

        Every device is version-checked inside the batch, so a device edited
        between the read and the commit makes the whole batch fail; the sweep
        is then re-read and retried.  The flag is never committed without the
        sweep.
        """
        for attempt in range(1, self._sweep_attempts + 1):
            panic = await load_panic(self._store)
            devices = await fetch_all(self._store, DEVICES, Device)

            state = PanicState(
                active=True,
                activated_at=self._clock(),
                deactivated_at=panic.model.deactivated_at,
            )
            ops = [WriteOp.set(PANIC, SINGLETON_ID, state.to_document(), expected_version=panic.version)]
            changed = 0
            for item in devices:
                target = panic_status_for(item.model)
                if item.model.status is target:
                    ops.append(WriteOp.check(DEVICES, item.model.id, item.version))
                else:
                    ops.append(WriteOp.update(DEVICES, item.model.id, {"status": target.value}, expected_version=item.version))
                    changed += 1

            try:
                await self._store.batch(ops)
            except PreconditionFailedError:
                _logger.debug("Panic sweep raced a concurrent write (attempt %d/%d)", attempt, self._sweep_attempts)
                continue

            _logger.info("Panic mode activated; %d of %d device(s) switched", changed, len(devices))
            return state

        _logger.warning("Panic activation gave up after %d attempts", self._sweep_attempts)
        raise ConflictError(
            f"Panic sweep kept racing concurrent writes ({self._sweep_attempts} attempts)",
            reason=ConflictReason.CONCURRENT_MODIFICATION,
        )

    async def deactivate(self) -> PanicState:
        """Clear the panic flag.  Device statuses are left as they are."""
        panic = await load_panic(self._store)
        state = PanicState(
            active=False,
            activated_at=panic.model.activated_at,
            deactivated_at=self._clock(),
        )
        await self._store.batch([WriteOp.set(PANIC, SINGLETON_ID, state.to_document())])
        _logger.info("Panic mode deactivated")
        return state
