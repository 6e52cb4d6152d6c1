"""Panic mode singleton."""

from __future__ import annotations

from datetime import datetime

from homegate.models._base import HomeBaseModel


class PanicState(HomeBaseModel):
    active: bool = False
    activated_at: datetime | None = None
    deactivated_at: datetime | None = None
