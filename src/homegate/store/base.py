"""Structural interface of the reactive document store.

The concrete backend (hosted document database, test double, in-memory
store) is an external collaborator.  homegate only relies on what is declared
here: keyed reads, single-document writes, all-or-nothing batches with
per-document preconditions, and a per-collection change feed.
"""

from __future__ import annotations

import enum
from collections.abc import AsyncIterator, Mapping, Sequence
from typing import Any, Protocol, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from homegate.store.events import ChangeEvent


class OpKind(enum.StrEnum):
    CREATE = "create"
    """Write a new document; fails if it already exists."""
    SET = "set"
    """Write the whole document, creating it if needed."""
    UPDATE = "update"
    """Merge fields into an existing document; fails if it is missing."""
    DELETE = "delete"
    """Remove the document; a missing document is a no-op unless versioned."""
    CHECK = "check"
    """Write nothing; only assert ``expected_version``."""


class Document(BaseModel):
    """A document as read from the store."""

    model_config = ConfigDict(frozen=True)

    collection: str
    id: str
    data: dict[str, Any] = Field(default_factory=dict)
    version: int = Field(..., ge=1)


class WriteOp(BaseModel):
    """One write inside an atomic batch.

    ``expected_version`` turns the op into a compare-and-set: the batch is
    rejected unless the document's current version equals it (``0`` means
    "must not exist").
    """

    model_config = ConfigDict(frozen=True)

    kind: OpKind
    collection: str
    doc_id: str
    data: dict[str, Any] = Field(default_factory=dict)
    expected_version: int | None = Field(default=None, ge=0)

    @field_validator("collection", "doc_id")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must be non-empty")
        return value

    @model_validator(mode="after")
    def _check_needs_version(self) -> WriteOp:
        if self.kind is OpKind.CHECK and self.expected_version is None:
            raise ValueError("check ops require expected_version")
        return self

    @classmethod
    def create(cls, collection: str, doc_id: str, data: Mapping[str, Any]) -> Self:
        return cls(kind=OpKind.CREATE, collection=collection, doc_id=doc_id, data=dict(data))

    @classmethod
    def set(
        cls,
        collection: str,
        doc_id: str,
        data: Mapping[str, Any],
        *,
        expected_version: int | None = None,
    ) -> Self:
        return cls(
            kind=OpKind.SET,
            collection=collection,
            doc_id=doc_id,
            data=dict(data),
            expected_version=expected_version,
        )

    @classmethod
    def update(
        cls,
        collection: str,
        doc_id: str,
        patch: Mapping[str, Any],
        *,
        expected_version: int | None = None,
    ) -> Self:
        return cls(
            kind=OpKind.UPDATE,
            collection=collection,
            doc_id=doc_id,
            data=dict(patch),
            expected_version=expected_version,
        )

    @classmethod
    def delete(cls, collection: str, doc_id: str, *, expected_version: int | None = None) -> Self:
        return cls(kind=OpKind.DELETE, collection=collection, doc_id=doc_id, expected_version=expected_version)

    @classmethod
    def check(cls, collection: str, doc_id: str, expected_version: int) -> Self:
        return cls(kind=OpKind.CHECK, collection=collection, doc_id=doc_id, expected_version=expected_version)


class Subscription(Protocol):
    """An open change feed.  Iterate it, then ``close()`` (or use ``async with``)."""

    def __aiter__(self) -> AsyncIterator[ChangeEvent]: ...

    async def __anext__(self) -> ChangeEvent: ...

    async def close(self) -> None: ...

    async def __aenter__(self) -> Self: ...

    async def __aexit__(self, *exc: Any) -> None: ...


class DocumentStore(Protocol):
    """Reactive document store used by every homegate component.

    Implementations raise :class:`homegate.exceptions.StoreUnavailableError`
    for transient infrastructure failures and
    :class:`homegate.exceptions.PreconditionFailedError` when a batch
    precondition does not hold.
    """

    async def get(self, collection: str, doc_id: str) -> Document | None: ...

    async def list(self, collection: str, where: Mapping[str, Any] | None = None) -> list[Document]: ...

    async def put(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> Document: ...

    async def update(self, collection: str, doc_id: str, patch: Mapping[str, Any]) -> Document: ...

    async def delete(self, collection: str, doc_id: str) -> None: ...

    async def batch(self, ops: Sequence[WriteOp]) -> None: ...

    def subscribe(self, collection: str, doc_id: str | None = None) -> Subscription: ...
