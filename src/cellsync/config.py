"""Process-wide defaults for delays, timeouts and storage location.

Arguments left as None (debounce delay, request timeout, ...) fall back to
the active Settings. Settings.from_env() reads CELLSYNC_* variables, after
loading an optional .env file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    """Default timings and locations, in seconds."""

    debounce_delay: float = 0.3
    throttle_delay: float = 0.3
    request_timeout: float = 5.0
    base_url: str = ""
    storage_path: str | None = None

    @classmethod
    def from_env(cls, prefix: str = "CELLSYNC_", dotenv_path: str | None = None) -> Settings:
        load_dotenv(dotenv_path)
        defaults = cls()
        return cls(
            debounce_delay=_float_env(f"{prefix}DEBOUNCE_DELAY", defaults.debounce_delay),
            throttle_delay=_float_env(f"{prefix}THROTTLE_DELAY", defaults.throttle_delay),
            request_timeout=_float_env(f"{prefix}REQUEST_TIMEOUT", defaults.request_timeout),
            base_url=os.getenv(f"{prefix}BASE_URL", defaults.base_url),
            storage_path=os.getenv(f"{prefix}STORAGE_PATH") or defaults.storage_path,
        )


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if value < 0:
        raise ValueError(f"{name} must not be negative, got {raw!r}")
    return value


_settings = Settings()


def configure(settings: Settings) -> None:
    """Replace the process-wide defaults."""
    global _settings
    _settings = settings


def get_settings() -> Settings:
    return _settings
