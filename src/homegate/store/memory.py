"""Deterministic in-memory document store.

Used by the test-suite and the demo script, and as the reference for what a
production backend must guarantee: batches are all-or-nothing, preconditions
are checked against the state the batch actually commits over, and change
events for a document are published in write order.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from homegate.exceptions import ConflictReason, NotFoundError, PreconditionFailedError
from homegate.models._base import utcnow
from homegate.store.base import Document, OpKind, WriteOp
from homegate.store.events import ChangeEvent, ChangeKind

_logger = logging.getLogger(__name__)

_CLOSED = object()


@dataclass
class _Entry:
    data: dict[str, Any]
    version: int


class MemorySubscription:
    """Change feed for one collection (optionally one document)."""

    def __init__(self, store: InMemoryDocumentStore, collection: str, doc_id: str | None) -> None:
        self._store = store
        self.collection = collection
        self.doc_id = doc_id
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

    def matches(self, event: ChangeEvent) -> bool:
        if event.collection != self.collection:
            return False
        return self.doc_id is None or event.doc_id == self.doc_id

    def offer(self, event: ChangeEvent) -> None:
        if not self._closed and self.matches(event):
            self._queue.put_nowait(event)

    @property
    def pending(self) -> int:
        """Number of events delivered but not yet consumed."""
        return self._queue.qsize()

    def __aiter__(self) -> MemorySubscription:
        return self

    async def __anext__(self) -> ChangeEvent:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        event: ChangeEvent = item
        return event

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._store._unsubscribe(self)  # noqa: SLF001
        self._queue.put_nowait(_CLOSED)

    async def __aenter__(self) -> MemorySubscription:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()


class InMemoryDocumentStore:
    """In-memory implementation of :class:`homegate.store.base.DocumentStore`.

    Every operation yields to the event loop once before touching state, so
    concurrent callers interleave the way they would against a remote store.
    The check-and-apply part of a write never yields, which is what makes
    batches atomic.
    """

    def __init__(self, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self._collections: dict[str, dict[str, _Entry]] = {}
        self._subscriptions: list[MemorySubscription] = []

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, collection: str, doc_id: str) -> Document | None:
        await asyncio.sleep(0)
        entry = self._collections.get(collection, {}).get(doc_id)
        if entry is None:
            return None
        return Document(collection=collection, id=doc_id, data=copy.deepcopy(entry.data), version=entry.version)

    async def list(self, collection: str, where: Mapping[str, Any] | None = None) -> list[Document]:
        await asyncio.sleep(0)
        docs: list[Document] = []
        for doc_id, entry in self._collections.get(collection, {}).items():
            if where and any(entry.data.get(key) != value for key, value in where.items()):
                continue
            docs.append(
                Document(collection=collection, id=doc_id, data=copy.deepcopy(entry.data), version=entry.version)
            )
        return docs

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def put(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> Document:
        await self.batch([WriteOp.set(collection, doc_id, data)])
        return self._snapshot(collection, doc_id)

    async def update(self, collection: str, doc_id: str, patch: Mapping[str, Any]) -> Document:
        try:
            await self.batch([WriteOp.update(collection, doc_id, patch)])
        except PreconditionFailedError as exc:
            raise NotFoundError(f"{collection}/{doc_id} does not exist", kind=collection, doc_id=doc_id) from exc
        return self._snapshot(collection, doc_id)

    async def delete(self, collection: str, doc_id: str) -> None:
        await self.batch([WriteOp.delete(collection, doc_id)])

    async def batch(self, ops: Sequence[WriteOp]) -> None:
        """Apply *ops* atomically.

        Ops are evaluated in order against a shadow copy so later ops in the
        batch see earlier ones.  Any failed precondition raises
        :class:`PreconditionFailedError` before anything is committed.
        """
        await asyncio.sleep(0)
        shadow: dict[tuple[str, str], _Entry | None] = {}

        def current(key: tuple[str, str]) -> _Entry | None:
            if key in shadow:
                return shadow[key]
            return self._collections.get(key[0], {}).get(key[1])

        for op in ops:
            key = (op.collection, op.doc_id)
            existing = current(key)
            if op.expected_version is not None:
                actual = existing.version if existing is not None else 0
                if actual != op.expected_version:
                    raise PreconditionFailedError(
                        f"{op.collection}/{op.doc_id}: expected version {op.expected_version}, found {actual}",
                        collection=op.collection,
                        doc_id=op.doc_id,
                    )

            if op.kind is OpKind.CHECK:
                continue
            if op.kind is OpKind.CREATE:
                if existing is not None:
                    raise PreconditionFailedError(
                        f"{op.collection}/{op.doc_id} already exists",
                        collection=op.collection,
                        doc_id=op.doc_id,
                    )
                shadow[key] = _Entry(data=copy.deepcopy(op.data), version=1)
            elif op.kind is OpKind.SET:
                version = existing.version + 1 if existing is not None else 1
                shadow[key] = _Entry(data=copy.deepcopy(op.data), version=version)
            elif op.kind is OpKind.UPDATE:
                if existing is None:
                    raise PreconditionFailedError(
                        f"{op.collection}/{op.doc_id} does not exist",
                        collection=op.collection,
                        doc_id=op.doc_id,
                        reason=ConflictReason.CONCURRENT_MODIFICATION,
                    )
                merged = copy.deepcopy(existing.data)
                merged.update(copy.deepcopy(op.data))
                shadow[key] = _Entry(data=merged, version=existing.version + 1)
            else:
                shadow[key] = None

        self._commit(shadow)

    def _commit(self, shadow: dict[tuple[str, str], _Entry | None]) -> None:
        events: list[ChangeEvent] = []
        now = self._clock()
        for (collection, doc_id), entry in shadow.items():
            docs = self._collections.setdefault(collection, {})
            before = docs.get(doc_id)
            previous = copy.deepcopy(before.data) if before is not None else None
            if entry is None:
                if before is None:
                    continue
                del docs[doc_id]
                events.append(
                    ChangeEvent(
                        collection=collection,
                        doc_id=doc_id,
                        kind=ChangeKind.REMOVED,
                        version=0,
                        previous=previous,
                        observed_at=now,
                    )
                )
                continue
            docs[doc_id] = entry
            events.append(
                ChangeEvent(
                    collection=collection,
                    doc_id=doc_id,
                    kind=ChangeKind.ADDED if before is None else ChangeKind.MODIFIED,
                    version=entry.version,
                    data=copy.deepcopy(entry.data),
                    previous=previous,
                    observed_at=now,
                )
            )

        _logger.debug("Committed batch touching %d document(s)", len(events))
        for event in events:
            for sub in list(self._subscriptions):
                sub.offer(event)

    def _snapshot(self, collection: str, doc_id: str) -> Document:
        entry = self._collections[collection][doc_id]
        return Document(collection=collection, id=doc_id, data=copy.deepcopy(entry.data), version=entry.version)

    # ------------------------------------------------------------------
    # Change feed
    # ------------------------------------------------------------------

    def subscribe(self, collection: str, doc_id: str | None = None) -> MemorySubscription:
        sub = MemorySubscription(self, collection, doc_id)
        self._subscriptions.append(sub)
        return sub

    def _unsubscribe(self, sub: MemorySubscription) -> None:
        if sub in self._subscriptions:
            self._subscriptions.remove(sub)
