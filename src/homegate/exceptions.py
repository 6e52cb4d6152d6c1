"""Custom exception hierarchy for homegate."""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from homegate.models.decision import DenyReason


class ConflictReason(enum.StrEnum):
    """Why a write conflicted with the current state of the home."""

    ALREADY_PRESENT = "already_present"
    NOT_PRESENT = "not_present"
    CONCURRENT_MODIFICATION = "concurrent_modification"


class HomeGateError(Exception):
    """Base exception for all homegate errors."""


class HomeGateConfigError(HomeGateError):
    """Invalid or missing configuration."""


class ValidationError(HomeGateError, ValueError):
    """Malformed input (empty name, non-numeric pin, contradictory diff)."""


class NotFoundError(HomeGateError):
    """A member, room or device reference points at nothing."""

    def __init__(self, message: str, *, kind: str = "", doc_id: str = "") -> None:
        self.kind = kind
        self.doc_id = doc_id
        super().__init__(message)


class ConflictError(HomeGateError):
    """The request conflicts with current state.

    Terminal for the triggering request: never retried automatically.
    """

    def __init__(self, message: str, *, reason: ConflictReason) -> None:
        self.reason = reason
        super().__init__(message)


class PreconditionFailedError(ConflictError):
    """A store write precondition (exists / absent / version) did not hold.

    Raised by :class:`homegate.store.base.DocumentStore` implementations when
    an atomic batch is rejected.  Nothing from the batch has been applied.
    """

    def __init__(
        self,
        message: str,
        *,
        collection: str = "",
        doc_id: str = "",
        reason: ConflictReason = ConflictReason.CONCURRENT_MODIFICATION,
    ) -> None:
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(message, reason=reason)


class AuthorizationError(HomeGateError):
    """A device control request was denied.

    ``reason`` is always one of the enumerated :class:`DenyReason` values so
    callers can render a specific explanation.  No state has been changed.
    """

    def __init__(self, message: str, *, reason: DenyReason, device_id: str = "") -> None:
        self.reason = reason
        self.device_id = device_id
        super().__init__(message)


class StoreUnavailableError(HomeGateError):
    """Transient infrastructure failure talking to the document store.

    Retried with bounded backoff by :class:`homegate.client.HomeGateClient`,
    never inside domain components.
    """
