"""High-level async facade over the presence-driven authorization core."""

from __future__ import annotations

import asyncio
import contextlib
import functools
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any, TypeVar

from homegate._constants import PRESENCE
from homegate.assignments import AssignmentManager
from homegate.config import HomeGateConfig
from homegate.exceptions import HomeGateError, StoreUnavailableError
from homegate.gate import AuthorizationGate
from homegate.inventory import Inventory
from homegate.models._base import utcnow
from homegate.models.assignment import AssignmentDiff, AssignmentOp
from homegate.models.decision import Actor, Decision
from homegate.models.device import Device, DeviceCategory, DeviceStatus
from homegate.models.member import Member, Role
from homegate.models.panic import PanicState
from homegate.models.presence import ScanLogEntry
from homegate.models.privilege import PrivilegedMemberChanged, PrivilegeState
from homegate.models.room import Room
from homegate.panic import PanicController
from homegate.presence import PresenceTracker
from homegate.privilege import PrivilegeListener, PrivilegeResolver
from homegate.store.base import DocumentStore

_logger = logging.getLogger(__name__)

T = TypeVar("T")


class HomeGateClient:
    """Entry point tying the components to one document store.

    Every operation is retried with bounded exponential backoff when the
    store reports :class:`StoreUnavailableError`; every other error is
    returned to the caller untouched.

    Usage::

        async with HomeGateClient(store) as home:
            await home.record_entry(member_id)
            await home.set_device_status(device_id, DeviceStatus.ON, actor)
    """

    def __init__(
        self,
        store: DocumentStore,
        config: HomeGateConfig | None = None,
        *,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._store = store
        self._config = config or HomeGateConfig()
        self._sleep = sleep
        self.presence = PresenceTracker(store, clock=clock)
        self.privilege = PrivilegeResolver(
            store,
            self.presence,
            cas_attempts=self._config.privilege_cas_attempts,
            clock=clock,
        )
        self.panic = PanicController(store, clock=clock)
        self.gate = AuthorizationGate(store, self.presence)
        self.assignments = AssignmentManager(store)
        self.inventory = Inventory(store, clock=clock)
        self._pipeline_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> HomeGateClient:
        if self._config.watch_presence:
            self.start_pipeline()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop_pipeline()

    def start_pipeline(self) -> None:
        """Start following the presence change feed in the background."""
        if self._pipeline_task is None or self._pipeline_task.done():
            self._pipeline_task = asyncio.create_task(self.run_pipeline(), name="homegate-pipeline")

    async def stop_pipeline(self) -> None:
        task = self._pipeline_task
        self._pipeline_task = None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def run_pipeline(self) -> None:
        """Presence change feed -> privilege recompute -> remediation.

        Picks up presence changes written by other processes.  Changes made
        through this client are already processed before its call returns, so
        the follow-up recompute here finds nothing to do.
        """
        async with self._store.subscribe(PRESENCE) as feed:
            async for event in feed:
                _logger.debug("Presence %s for %s", event.kind, event.doc_id)
                try:
                    await self._call_with_retry(self._refresh_privilege)
                except HomeGateError:
                    _logger.warning("Pipeline failed to process presence change", exc_info=True)
                except Exception:
                    _logger.exception("Unexpected error in presence pipeline; still watching")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _call_with_retry(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Run *fn*, retrying on :class:`StoreUnavailableError` with backoff."""
        attempts = self._config.store_retry_attempts
        for attempt in range(1, attempts + 1):
            try:
                return await fn()
            except StoreUnavailableError:
                if attempt >= attempts:
                    _logger.warning("Store unavailable; giving up after %d attempt(s)", attempts)
                    raise
                delay = self._config.backoff_delay(attempt)
                _logger.debug("Store unavailable (attempt %d/%d), retrying in %.2fs", attempt, attempts, delay)
                await self._sleep(delay)
        raise AssertionError("unreachable")  # pragma: no cover

    async def _refresh_privilege(self) -> PrivilegedMemberChanged | None:
        change = await self.privilege.recompute()
        if change is not None:
            await self.gate.remediate(change)
        return change

    # ------------------------------------------------------------------
    # Presence and privilege
    # ------------------------------------------------------------------

    async def record_entry(self, member_id: str) -> ScanLogEntry:
        """Register an entry scan, then recompute privilege and remediate.

        The scan is committed before the privilege refresh.  If the refresh
        fails its error is raised but the scan stays recorded, so retrying
        this call reports ``ALREADY_PRESENT``; call :meth:`recompute_privilege`
        instead to catch up.
        """
        entry = await self._call_with_retry(functools.partial(self.presence.record_entry, member_id))
        await self._call_with_retry(self._refresh_privilege)
        return entry

    async def record_exit(self, member_id: str) -> ScanLogEntry:
        """Register an exit scan, then recompute privilege and remediate.

        Same ordering as :meth:`record_entry`: a failed refresh leaves the
        exit recorded, and a retry reports ``NOT_PRESENT``.  Use
        :meth:`recompute_privilege` to catch up.
        """
        entry = await self._call_with_retry(functools.partial(self.presence.record_exit, member_id))
        await self._call_with_retry(self._refresh_privilege)
        return entry

    async def current_presence(self) -> frozenset[str]:
        return await self._call_with_retry(self.presence.current_presence)

    async def present_members(self) -> list[Member]:
        return await self._call_with_retry(self.presence.present_members)

    async def scan_history(self, member_id: str | None = None) -> list[ScanLogEntry]:
        return await self._call_with_retry(functools.partial(self.presence.scan_history, member_id))

    async def privileged_member(self) -> PrivilegeState:
        return await self._call_with_retry(self.privilege.current)

    async def recompute_privilege(self) -> PrivilegedMemberChanged | None:
        return await self._call_with_retry(self._refresh_privilege)

    def on_privilege_change(self, listener: PrivilegeListener) -> Callable[[], None]:
        return self.privilege.add_listener(listener)

    # ------------------------------------------------------------------
    # Panic mode
    # ------------------------------------------------------------------

    async def activate_panic(self) -> PanicState:
        return await self._call_with_retry(self.panic.activate)

    async def deactivate_panic(self) -> PanicState:
        return await self._call_with_retry(self.panic.deactivate)

    async def is_panic_active(self) -> bool:
        return await self._call_with_retry(self.panic.is_active)

    # ------------------------------------------------------------------
    # Device control
    # ------------------------------------------------------------------

    async def check_device(self, device_id: str, actor: Actor) -> Decision:
        return await self._call_with_retry(functools.partial(self.gate.check, device_id, actor))

    async def set_device_status(self, device_id: str, status: DeviceStatus | str, actor: Actor) -> Device:
        return await self._call_with_retry(
            functools.partial(self.gate.set_device_status, device_id, DeviceStatus(status), actor)
        )

    async def toggle_device(self, device_id: str, actor: Actor) -> Device:
        return await self._call_with_retry(functools.partial(self.gate.toggle_device, device_id, actor))

    # ------------------------------------------------------------------
    # Assignments
    # ------------------------------------------------------------------

    def stage_room_change(self, member_id: str, room_id: str, op: AssignmentOp | str) -> AssignmentDiff:
        return self.assignments.stage_room_change(member_id, room_id, AssignmentOp(op))

    def stage_device_change(self, member_id: str, device_id: str, op: AssignmentOp | str) -> AssignmentDiff:
        return self.assignments.stage_device_change(member_id, device_id, AssignmentOp(op))

    async def commit_assignments(self, member_id: str) -> Member:
        return await self._call_with_retry(functools.partial(self.assignments.commit, member_id))

    async def apply_assignment_diff(self, member_id: str, diff: AssignmentDiff) -> Member:
        return await self._call_with_retry(
            functools.partial(self.assignments.apply_assignment_diff, member_id, diff)
        )

    async def delete_device(self, device_id: str) -> None:
        await self._call_with_retry(functools.partial(self.assignments.delete_device, device_id))

    async def delete_room(self, room_id: str) -> None:
        await self._call_with_retry(functools.partial(self.assignments.delete_room, room_id))

    async def delete_member(self, member_id: str) -> None:
        """Delete a member; if they were inside, recompute privilege."""
        was_present = await self._call_with_retry(functools.partial(self.assignments.delete_member, member_id))
        if was_present:
            await self._call_with_retry(self._refresh_privilege)

    # ------------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------------

    async def add_room(self, name: str) -> Room:
        return await self._call_with_retry(functools.partial(self.inventory.add_room, name))

    async def rename_room(self, room_id: str, name: str) -> Room:
        return await self._call_with_retry(functools.partial(self.inventory.rename_room, room_id, name))

    async def add_device(self, room_id: str, name: str, category: DeviceCategory | str = DeviceCategory.OTHER) -> Device:
        return await self._call_with_retry(functools.partial(self.inventory.add_device, room_id, name, category))

    async def add_member(self, name: str, role: Role | str) -> Member:
        return await self._call_with_retry(functools.partial(self.inventory.add_member, name, role))

    async def set_device_pin(self, device_id: str, pin: str) -> Device:
        return await self._call_with_retry(functools.partial(self.inventory.set_device_pin, device_id, pin))
