"""Presence tracker: who is inside the home right now.

Entry and exit scans are written together with their scan log entry in one
atomic batch.  The ``create`` precondition on the presence record is what
stops two concurrent entry scans for the same member from both succeeding.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from homegate._constants import PRESENCE, SCAN_LOG
from homegate._documents import fetch_all, load_member
from homegate.exceptions import ConflictError, ConflictReason, NotFoundError, PreconditionFailedError
from homegate.models._base import utcnow
from homegate.models.member import Member
from homegate.models.presence import PresenceRecord, ScanLogEntry, ScanType
from homegate.store.base import DocumentStore, WriteOp

_logger = logging.getLogger(__name__)


class PresenceTracker:
    """Maintains the present set and the append-only scan log."""

    def __init__(self, store: DocumentStore, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._store = store
        self._clock = clock

    async def record_entry(self, member_id: str) -> ScanLogEntry:
        """Mark *member_id* as inside.

        Raises
        ------
        NotFoundError
            The member does not exist.
        ConflictError
            ``ALREADY_PRESENT`` if the member is already inside, including when
            a concurrent entry scan for the same member won the race.
        """
        member = (await load_member(self._store, member_id)).model
        now = self._clock()
        record = PresenceRecord(member_id=member.id, entered_at=now)
        entry = ScanLogEntry(member_id=member.id, type=ScanType.INSCAN, timestamp=now)
        try:
            await self._store.batch(
                [
                    WriteOp.create(PRESENCE, member.id, record.to_document()),
                    WriteOp.create(SCAN_LOG, entry.id, entry.to_document()),
                ]
            )
        except PreconditionFailedError as exc:
            if exc.collection != PRESENCE:
                raise
            raise ConflictError(
                f"{member.name} is already inside the house",
                reason=ConflictReason.ALREADY_PRESENT,
            ) from exc

        _logger.info("Member %s (%s) entered", member.id, member.role)
        return entry

    async def record_exit(self, member_id: str) -> ScanLogEntry:
        """Mark *member_id* as outside.

        Raises
        ------
        ConflictError
            ``NOT_PRESENT`` if the member is not currently inside.
        """
        current = await self._store.get(PRESENCE, member_id)
        if current is None:
            raise ConflictError(
                f"Member {member_id!r} is not currently inside the house",
                reason=ConflictReason.NOT_PRESENT,
            )

        entry = ScanLogEntry(member_id=member_id, type=ScanType.OUTSCAN, timestamp=self._clock())
        try:
            await self._store.batch(
                [
                    WriteOp.delete(PRESENCE, member_id, expected_version=current.version),
                    WriteOp.create(SCAN_LOG, entry.id, entry.to_document()),
                ]
            )
        except PreconditionFailedError as exc:
            if exc.collection != PRESENCE:
                raise
            raise ConflictError(
                f"Member {member_id!r} is not currently inside the house",
                reason=ConflictReason.NOT_PRESENT,
            ) from exc

        _logger.info("Member %s left", member_id)
        return entry

    async def presence_records(self) -> list[PresenceRecord]:
        """Present members' records, earliest entry first."""
        loaded = await fetch_all(self._store, PRESENCE, PresenceRecord)
        return sorted((item.model for item in loaded), key=lambda record: record.entered_at)

    async def current_presence(self) -> frozenset[str]:
        return frozenset(record.member_id for record in await self.presence_records())

    async def present_members(self) -> list[Member]:
        """Member documents of everyone inside, in entry order.

        Presence records whose member no longer exists are skipped.
        """
        members: list[Member] = []
        for record in await self.presence_records():
            try:
                members.append((await load_member(self._store, record.member_id)).model)
            except NotFoundError:
                _logger.warning("Presence record for unknown member %s ignored", record.member_id)
        return members

    async def scan_history(self, member_id: str | None = None) -> list[ScanLogEntry]:
        """The scan log, oldest first, optionally for one member."""
        where = {"memberId": member_id} if member_id is not None else None
        loaded = await fetch_all(self._store, SCAN_LOG, ScanLogEntry, where)
        return sorted((item.model for item in loaded), key=lambda entry: entry.timestamp)
