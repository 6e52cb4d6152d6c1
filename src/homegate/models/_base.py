"""Base model shared by every homegate document.

Every stored document inherits from :class:`HomeBaseModel` which provides:

* ``alias_generator=to_camel`` so snake_case fields are written to the
  store under the camelCase names the device driver and admin UI read
  (``assignedRooms``, ``roomId`` ...).
* ``to_document()`` / ``from_document()`` for the store boundary.
* ``build()`` which turns pydantic validation failures on caller input into
  :class:`homegate.exceptions.ValidationError`.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Annotated, Any, Self

import pydantic
from pydantic import AfterValidator, BeforeValidator, ConfigDict, PlainSerializer
from pydantic.alias_generators import to_camel

from homegate.exceptions import ValidationError


def utcnow() -> datetime:
    return datetime.now(UTC)


def _require_text(value: str) -> str:
    stripped = value.strip()
    if not stripped:
        raise ValueError("must be a non-empty string")
    return stripped


def _coerce_id_set(value: Any) -> Any:
    # Stores hand back lists; tolerate None for documents written by older clients.
    if value is None:
        return frozenset()
    if isinstance(value, str):
        return frozenset({value})
    if isinstance(value, Iterable):
        return frozenset(value)
    return value


NonEmptyStr = Annotated[str, AfterValidator(_require_text)]
"""A string that is stripped and must not be empty."""

IdSet = Annotated[
    frozenset[str],
    BeforeValidator(_coerce_id_set),
    PlainSerializer(lambda ids: sorted(ids), return_type=list[str]),
]
"""A set of document ids, stored as a sorted list."""


class HomeBaseModel(pydantic.BaseModel):
    """Base for homegate documents and value objects."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
        str_strip_whitespace=True,
    )

    @classmethod
    def build(cls, **values: Any) -> Self:
        """Construct from caller input, raising :class:`ValidationError` on bad data."""
        try:
            return cls(**values)
        except pydantic.ValidationError as exc:
            raise ValidationError(f"Invalid {cls.__name__}: {exc}") from exc

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> Self:
        """Parse a document as read from the store."""
        return cls.model_validate(data)

    def to_document(self) -> dict[str, Any]:
        """Dump to the camelCase, JSON-compatible shape written to the store."""
        return self.model_dump(by_alias=True, mode="json")
