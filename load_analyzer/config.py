"""
Service configuration.

Settings come from environment variables and are read once per process.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Tuple

from . import rules


def _get_int_env(name: str, default: int) -> int:
    """
    Read a non-negative integer from the environment, falling back on bad values.
    """

    raw_value = os.getenv(name)
    if raw_value is None or not raw_value.strip():
        return default
    try:
        value = int(raw_value.strip())
    except ValueError:
        return default
    return value if value >= 0 else default


def _get_list_env(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw_value = os.getenv(name)
    if raw_value is None or not raw_value.strip():
        return default
    items = tuple(item.strip().upper() for item in raw_value.split(",") if item.strip())
    return items or default


@dataclass(frozen=True)
class Settings:
    """
    Runtime settings for the analyzer and its HTTP surface.
    """

    log_level: str = "INFO"
    log_format: str = "simple"
    hmac_secret: str = ""
    rate_limit_rpm: int = 10
    max_rows: int = rules.MAX_ROWS
    max_cols: int = rules.MAX_COLS
    max_payload_bytes: int = rules.MAX_PAYLOAD_BYTES
    future_horizon_days: int = rules.DEFAULT_FUTURE_HORIZON_DAYS
    accepted_statuses: Tuple[str, ...] = rules.DEFAULT_ACCEPTED_STATUSES
    default_timezone: str = rules.DEFAULT_TIMEZONE

    @property
    def hmac_enabled(self) -> bool:
        return bool(self.hmac_secret)


def load_settings() -> Settings:
    """
    Build settings from the current environment without caching.
    """

    return Settings(
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
        log_format=os.getenv("LOG_FORMAT", "simple").strip().lower() or "simple",
        hmac_secret=os.getenv("HMAC_SECRET", ""),
        rate_limit_rpm=_get_int_env("RATE_LIMIT_RPM", 10),
        max_rows=_get_int_env("MAX_ROWS", rules.MAX_ROWS),
        max_cols=_get_int_env("MAX_COLS", rules.MAX_COLS),
        max_payload_bytes=_get_int_env("MAX_PAYLOAD_BYTES", rules.MAX_PAYLOAD_BYTES),
        future_horizon_days=_get_int_env("FUTURE_DATE_HORIZON_DAYS", rules.DEFAULT_FUTURE_HORIZON_DAYS),
        accepted_statuses=_get_list_env("ACCEPTED_STATUSES", rules.DEFAULT_ACCEPTED_STATUSES),
        default_timezone=os.getenv("DEFAULT_TIMEZONE", rules.DEFAULT_TIMEZONE).strip() or rules.DEFAULT_TIMEZONE,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Return cached settings. Tests call ``get_settings.cache_clear()`` after
    changing the environment.
    """

    return load_settings()
