"""Change notifications emitted by a document store.

Every committed write produces one event per touched document.  Events for
the same document arrive in write order; there is no ordering guarantee
across documents.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ChangeKind(StrEnum):
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


class ChangeEvent(BaseModel):
    """A committed change to a single document."""

    model_config = ConfigDict(frozen=True)

    collection: str
    doc_id: str
    kind: ChangeKind
    version: int = Field(..., description="Document version after the change (0 once removed)")
    data: dict[str, Any] | None = Field(default=None, description="Document after the change")
    previous: dict[str, Any] | None = Field(default=None, description="Document before the change")
    observed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("collection", "doc_id")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must be non-empty")
        return value
