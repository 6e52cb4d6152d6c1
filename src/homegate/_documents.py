"""Typed read helpers shared by the components.

Every read returns the parsed model together with the document version it
was read at, so the caller can make its follow-up write a compare-and-set
against exactly what it looked at.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import pydantic

from homegate._constants import DEVICES, MEMBERS, PANIC, PRIVILEGE, ROOMS, SINGLETON_ID
from homegate.exceptions import NotFoundError, ValidationError
from homegate.models._base import HomeBaseModel
from homegate.models.device import Device
from homegate.models.member import Member
from homegate.models.panic import PanicState
from homegate.models.privilege import PrivilegeState
from homegate.models.room import Room
from homegate.store.base import Document, DocumentStore

M = TypeVar("M", bound=HomeBaseModel)


@dataclass(frozen=True, slots=True)
class Versioned(Generic[M]):
    """A model plus the store version it was read at (``0`` = absent)."""

    model: M
    version: int


def parse_document(doc: Document, model_cls: type[M]) -> M:
    data = dict(doc.data)
    if "id" in model_cls.model_fields:
        data.setdefault("id", doc.id)
    try:
        return model_cls.from_document(data)
    except pydantic.ValidationError as exc:
        raise ValidationError(f"Malformed {doc.collection}/{doc.id}: {exc}") from exc


async def fetch(store: DocumentStore, collection: str, doc_id: str, model_cls: type[M]) -> Versioned[M] | None:
    doc = await store.get(collection, doc_id)
    if doc is None:
        return None
    return Versioned(parse_document(doc, model_cls), doc.version)


async def require(store: DocumentStore, collection: str, doc_id: str, model_cls: type[M]) -> Versioned[M]:
    loaded = await fetch(store, collection, doc_id, model_cls)
    if loaded is None:
        kind = model_cls.__name__.lower()
        raise NotFoundError(f"{kind} {doc_id!r} not found", kind=kind, doc_id=doc_id)
    return loaded


async def fetch_all(
    store: DocumentStore,
    collection: str,
    model_cls: type[M],
    where: Mapping[str, Any] | None = None,
) -> list[Versioned[M]]:
    docs = await store.list(collection, where)
    return [Versioned(parse_document(doc, model_cls), doc.version) for doc in docs]


async def load_member(store: DocumentStore, member_id: str) -> Versioned[Member]:
    return await require(store, MEMBERS, member_id, Member)


async def load_room(store: DocumentStore, room_id: str) -> Versioned[Room]:
    return await require(store, ROOMS, room_id, Room)


async def load_device(store: DocumentStore, device_id: str) -> Versioned[Device]:
    return await require(store, DEVICES, device_id, Device)


async def load_privilege(store: DocumentStore) -> Versioned[PrivilegeState]:
    loaded = await fetch(store, PRIVILEGE, SINGLETON_ID, PrivilegeState)
    return loaded if loaded is not None else Versioned(PrivilegeState(), 0)


async def load_panic(store: DocumentStore) -> Versioned[PanicState]:
    loaded = await fetch(store, PANIC, SINGLETON_ID, PanicState)
    return loaded if loaded is not None else Versioned(PanicState(), 0)
