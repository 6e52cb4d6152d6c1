from __future__ import annotations

import asyncio

import pytest

from homegate._constants import MEMBERS, PRIVILEGE, SINGLETON_ID
from homegate.models import Member, PrivilegedMemberChanged, Role
from homegate.presence import PresenceTracker
from homegate.privilege import PrivilegeResolver, resolve_privileged_member
from homegate.store import InMemoryDocumentStore


async def _add_member(store: InMemoryDocumentStore, member_id: str, role: Role) -> Member:
    member = Member(id=member_id, name=member_id.title(), role=role)
    await store.put(MEMBERS, member.id, member.to_document())
    return member


def _setup() -> tuple[InMemoryDocumentStore, PresenceTracker, PrivilegeResolver]:
    store = InMemoryDocumentStore()
    tracker = PresenceTracker(store)
    return store, tracker, PrivilegeResolver(store, tracker)


def test_resolve_picks_highest_rank() -> None:
    maid = Member(id="m", name="Mia", role=Role.MAID)
    guest = Member(id="g", name="Gabe", role=Role.GUEST)
    owner = Member(id="o", name="Olivia", role=Role.OWNER)

    assert resolve_privileged_member([maid, guest, owner]) is owner
    assert PrivilegeResolver.resolve([guest, maid]) == "g"


def test_resolve_tie_keeps_first_seen() -> None:
    first = Member(id="a", name="Ann", role=Role.HOUSE_MEMBER)
    second = Member(id="b", name="Ben", role=Role.HOUSE_MEMBER)

    assert resolve_privileged_member([first, second]) is first
    assert resolve_privileged_member([second, first]) is second


def test_resolve_nobody_present() -> None:
    assert resolve_privileged_member([]) is None
    assert PrivilegeResolver.resolve([]) is None


@pytest.mark.asyncio
async def test_owner_guest_scenario() -> None:
    store, tracker, resolver = _setup()
    await _add_member(store, "o", Role.OWNER)
    await _add_member(store, "g", Role.GUEST)

    await tracker.record_entry("o")
    await resolver.recompute()
    await tracker.record_entry("g")
    await resolver.recompute()
    assert (await resolver.current()).privileged_member_id == "o"

    await tracker.record_exit("o")
    change = await resolver.recompute()
    assert change is not None
    assert (change.previous, change.current, change.role) == ("o", "g", Role.GUEST)

    await tracker.record_exit("g")
    change = await resolver.recompute()
    assert change is not None
    assert change.current is None
    state = await resolver.current()
    assert state.privileged_member_id is None
    assert state.role is None


@pytest.mark.asyncio
async def test_recompute_does_not_write_when_unchanged() -> None:
    store, tracker, resolver = _setup()
    await _add_member(store, "o", Role.OWNER)
    await _add_member(store, "g", Role.GUEST)
    await tracker.record_entry("o")
    assert await resolver.recompute() is not None
    version = (await store.get(PRIVILEGE, SINGLETON_ID)).version  # type: ignore[union-attr]

    await tracker.record_entry("g")
    assert await resolver.recompute() is None

    assert (await store.get(PRIVILEGE, SINGLETON_ID)).version == version  # type: ignore[union-attr]


@pytest.mark.asyncio
async def test_recompute_with_empty_house_and_no_document_is_a_no_op() -> None:
    store, _, resolver = _setup()

    assert await resolver.recompute() is None
    assert await store.get(PRIVILEGE, SINGLETON_ID) is None


@pytest.mark.asyncio
async def test_listeners_are_notified_and_can_be_removed() -> None:
    store, tracker, resolver = _setup()
    await _add_member(store, "o", Role.OWNER)
    seen: list[PrivilegedMemberChanged] = []
    remove = resolver.add_listener(seen.append)

    def _broken(change: PrivilegedMemberChanged) -> None:
        raise RuntimeError("listener bug")

    resolver.add_listener(_broken)

    await tracker.record_entry("o")
    await resolver.recompute()
    remove()
    await tracker.record_exit("o")
    await resolver.recompute()

    assert [(c.previous, c.current) for c in seen] == [(None, "o")]
    assert (await resolver.current()).privileged_member_id is None


@pytest.mark.asyncio
async def test_concurrent_recomputes_write_once() -> None:
    store, tracker, resolver = _setup()
    await _add_member(store, "o", Role.OWNER)
    await tracker.record_entry("o")

    results = await asyncio.gather(resolver.recompute(), resolver.recompute())

    assert sum(result is not None for result in results) == 1
    doc = await store.get(PRIVILEGE, SINGLETON_ID)
    assert doc is not None
    assert doc.version == 1
    assert doc.data["privilegedMemberId"] == "o"


@pytest.mark.asyncio
async def test_recompute_uses_latest_presence() -> None:
    store, tracker, resolver = _setup()
    await _add_member(store, "o", Role.OWNER)
    await _add_member(store, "g", Role.GUEST)
    await tracker.record_entry("g")
    await tracker.record_entry("o")
    await tracker.record_exit("o")

    change = await resolver.recompute()

    assert change is not None
    assert change.current == "g"
