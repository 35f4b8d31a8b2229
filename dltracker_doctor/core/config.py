"""Runtime settings read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass

_TRUTHY = frozenset({"1", "true", "yes", "on"})


@dataclass(frozen=True)
class Settings:
    log_level: str = "WARNING"
    log_format: str = "console"  # "console" | "json"
    strict_commit: bool = False


def _env_bool(key: str, default: bool) -> bool:
    raw = os.environ.get(key)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


def load_settings() -> Settings:
    """Build :class:`Settings` from environment variables.

    Reads:
        DLTDOCTOR_LOG_LEVEL     — log level (default: WARNING)
        DLTDOCTOR_LOG_FORMAT    — console | json (default: console)
        DLTDOCTOR_STRICT_COMMIT — abort a commit on the first record missing
                                  from the store (default: off)
    """
    log_format = os.environ.get("DLTDOCTOR_LOG_FORMAT", "console").lower()
    if log_format not in ("console", "json"):
        log_format = "console"
    return Settings(
        log_level=os.environ.get("DLTDOCTOR_LOG_LEVEL", "WARNING").upper(),
        log_format=log_format,
        strict_commit=_env_bool("DLTDOCTOR_STRICT_COMMIT", False),
    )
