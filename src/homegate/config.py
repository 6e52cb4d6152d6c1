"""Runtime configuration for homegate."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from homegate.exceptions import HomeGateConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class HomeGateConfig:
    """Client configuration.

    Parameters
    ----------
    store_retry_attempts : int
        Total attempts for an operation that fails with
        :class:`~homegate.exceptions.StoreUnavailableError`.  ``1`` disables
        retries.
    store_retry_base_delay : float
        Delay in seconds before the first retry.  Doubles on every attempt.
    store_retry_max_delay : float
        Upper bound for a single backoff delay.
    privilege_cas_attempts : int
        How many times the privilege resolver re-reads presence and retries
        its compare-and-set when another writer got there first.
    watch_presence : bool
        Start a background task consuming the presence change feed when the
        client is used as an async context manager.
    """

    store_retry_attempts: int = 4
    store_retry_base_delay: float = 0.2
    store_retry_max_delay: float = 5.0
    privilege_cas_attempts: int = 5
    watch_presence: bool = True

    def __post_init__(self) -> None:
        if self.store_retry_attempts < 1:
            raise HomeGateConfigError("store_retry_attempts must be >= 1")
        if self.privilege_cas_attempts < 1:
            raise HomeGateConfigError("privilege_cas_attempts must be >= 1")
        if self.store_retry_base_delay < 0 or self.store_retry_max_delay < 0:
            raise HomeGateConfigError("retry delays must be non-negative")

    def backoff_delay(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number *attempt* (1-based)."""
        delay = self.store_retry_base_delay * (2 ** (attempt - 1))
        return min(delay, self.store_retry_max_delay)

    @classmethod
    def from_env(cls, **overrides: Any) -> HomeGateConfig:
        """Create configuration from ``HOMEGATE_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        _ENV_INT_MAP = {
            "HOMEGATE_STORE_RETRY_ATTEMPTS": "store_retry_attempts",
            "HOMEGATE_PRIVILEGE_CAS_ATTEMPTS": "privilege_cas_attempts",
        }
        _ENV_FLOAT_MAP = {
            "HOMEGATE_STORE_RETRY_BASE_DELAY": "store_retry_base_delay",
            "HOMEGATE_STORE_RETRY_MAX_DELAY": "store_retry_max_delay",
        }
        try:
            for env_key, field_name in _ENV_INT_MAP.items():
                val = env.get(env_key)
                if val is not None and field_name not in overrides:
                    config_kwargs[field_name] = int(val)
            for env_key, field_name in _ENV_FLOAT_MAP.items():
                val = env.get(env_key)
                if val is not None and field_name not in overrides:
                    config_kwargs[field_name] = float(val)
        except ValueError as exc:
            raise HomeGateConfigError(f"Invalid numeric HOMEGATE_* setting: {exc}") from exc

        if "watch_presence" not in overrides:
            config_kwargs["watch_presence"] = _env_bool(env.get("HOMEGATE_WATCH_PRESENCE"), True)

        config_kwargs.update(overrides)
        return cls(**config_kwargs)
