"""Privilege resolver: the single most privileged member currently inside.

The resolver is the only writer of the privilege singleton.  It always
recomputes from the presence snapshot it reads at execution time, never from
a value captured earlier, and only writes when the winner actually changes.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime

from homegate._constants import NO_RANK, PRIVILEGE, SINGLETON_ID
from homegate._documents import load_privilege
from homegate.exceptions import ConflictError, ConflictReason, PreconditionFailedError
from homegate.models._base import utcnow
from homegate.models.member import Member
from homegate.models.privilege import PrivilegedMemberChanged, PrivilegeState
from homegate.presence import PresenceTracker
from homegate.store.base import DocumentStore, WriteOp

_logger = logging.getLogger(__name__)

PrivilegeListener = Callable[[PrivilegedMemberChanged], None]


def resolve_privileged_member(members: Iterable[Member]) -> Member | None:
    """Return the member with the highest role rank.

    Single pass; a member only displaces the current best when its rank is
    strictly greater, so among equals the first one seen wins.
    """
    best: Member | None = None
    best_rank = NO_RANK
    for member in members:
        if member.rank > best_rank:
            best = member
            best_rank = member.rank
    return best


class PrivilegeResolver:
    """Owns and recomputes :class:`PrivilegeState`."""

    def __init__(
        self,
        store: DocumentStore,
        presence: PresenceTracker,
        *,
        cas_attempts: int = 5,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._presence = presence
        self._cas_attempts = cas_attempts
        self._clock = clock
        self._listeners: list[PrivilegeListener] = []

    def add_listener(self, listener: PrivilegeListener) -> Callable[[], None]:
        """Call *listener* with every :class:`PrivilegedMemberChanged`.

        Returns a function that removes the listener again.
        """
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    @staticmethod
    def resolve(present_members: Iterable[Member]) -> str | None:
        winner = resolve_privileged_member(present_members)
        return winner.id if winner is not None else None

    async def current(self) -> PrivilegeState:
        return (await load_privilege(self._store)).model

    async def recompute(self) -> PrivilegedMemberChanged | None:
        """Recompute the privileged member from the latest presence.

        Returns the change when the privileged member id changed, ``None``
        otherwise.  A lost compare-and-set on the privilege document means
        another writer moved first; presence is re-read and the computation
        repeated.
        """
        for attempt in range(1, self._cas_attempts + 1):
            present = await self._presence.present_members()
            winner = resolve_privileged_member(present)
            new_id = winner.id if winner is not None else None

            loaded = await load_privilege(self._store)
            old_id = loaded.model.privileged_member_id
            if old_id == new_id:
                return None

            state = PrivilegeState(
                privileged_member_id=new_id,
                role=winner.role if winner is not None else None,
                updated_at=self._clock(),
            )
            try:
                await self._store.batch(
                    [WriteOp.set(PRIVILEGE, SINGLETON_ID, state.to_document(), expected_version=loaded.version)]
                )
            except PreconditionFailedError:
                _logger.debug("Privilege write lost a race (attempt %d/%d)", attempt, self._cas_attempts)
                continue

            change = PrivilegedMemberChanged(previous=old_id, current=new_id, role=state.role)
            if new_id is None:
                _logger.info("Privileged member cleared (was %s); nobody is home", old_id)
            else:
                _logger.info("Privileged member changed %s -> %s (%s)", old_id, new_id, state.role)
            self._notify(change)
            return change

        _logger.warning("Privilege recompute gave up after %d attempts", self._cas_attempts)
        raise ConflictError(
            f"Privilege state kept changing underneath recompute ({self._cas_attempts} attempts)",
            reason=ConflictReason.CONCURRENT_MODIFICATION,
        )

    def _notify(self, change: PrivilegedMemberChanged) -> None:
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                _logger.warning("Privilege listener %r failed", listener, exc_info=True)
