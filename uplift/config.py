"""
Runtime configuration.

Values come from the environment, optionally seeded from a `.env` file in the
working directory.
"""

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    address: str | None = None
    adapter: str | None = None
    scan_timeout: float = 10.0
    connect_timeout: float = 20.0
    tolerance: float = 0.25
    set_timeout: float = 60.0
    max_corrections: int = 40
    log_level: str = "WARNING"


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}") from None


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}") from None


def _env_log_level(name: str, default: str) -> str:
    value = (os.getenv(name) or default).strip().upper()
    if value not in logging.getLevelNamesMapping():
        raise ValueError(f"{name} must be a logging level name, got {value!r}")
    return value


def load_settings() -> Settings:
    """Build Settings from the environment (and `.env`, if present)."""
    load_dotenv()

    return Settings(
        address=os.getenv("UPLIFT_ADDRESS") or None,
        adapter=os.getenv("UPLIFT_ADAPTER") or None,
        scan_timeout=_env_float("UPLIFT_SCAN_TIMEOUT", Settings.scan_timeout),
        connect_timeout=_env_float("UPLIFT_CONNECT_TIMEOUT", Settings.connect_timeout),
        tolerance=_env_float("UPLIFT_TOLERANCE", Settings.tolerance),
        set_timeout=_env_float("UPLIFT_SET_TIMEOUT", Settings.set_timeout),
        max_corrections=_env_int("UPLIFT_MAX_CORRECTIONS", Settings.max_corrections),
        log_level=_env_log_level("UPLIFT_LOG_LEVEL", Settings.log_level),
    )
