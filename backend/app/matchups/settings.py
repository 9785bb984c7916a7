"""Environment-driven configuration for the live-update service.

Every knob has a default so the service starts with no environment at all:

    FANTASY_SIMULATOR        Use the simulated upstream instead of the real APIs
    SLEEPER_BASE_URL         League provider base URL
    ESPN_BASE_URL            Schedule provider base URL
    UPSTREAM_TIMEOUT         Per-request timeout in seconds (unset: httpx default)
    POLL_INTERVAL_ACTIVE     Seconds between polls during game windows (default: 3)
    POLL_INTERVAL_IDLE       Seconds between polls otherwise (default: 10)
    POLL_REEVALUATE_SECONDS  How often the poll interval is re-derived (default: 3600)
    SNAPSHOT_GRACE_SECONDS   How long an unwatched snapshot is kept (default: 300)
    CACHE_MAX_ENTRIES        Response cache LRU bound (default: 512)
    LOG_LEVEL                Root log level (default: INFO)
    HOST / PORT              Bind address for the server (default: 0.0.0.0:3000)
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_SLEEPER_BASE_URL = "https://api.sleeper.app/v1"
DEFAULT_ESPN_BASE_URL = "https://site.api.espn.com/apis/site/v2/sports/football/nfl"

_TRUTHY = {"1", "true", "yes", "on"}


def _number(env: Mapping[str, str], name: str, default, cast=float):
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default


@dataclass(frozen=True)
class Settings:
    simulator: bool = False
    sleeper_base_url: str = DEFAULT_SLEEPER_BASE_URL
    espn_base_url: str = DEFAULT_ESPN_BASE_URL
    upstream_timeout: float | None = None
    active_interval: float = 3.0
    idle_interval: float = 10.0
    reevaluate_seconds: float = 3600.0
    snapshot_grace_seconds: float = 300.0
    cache_max_entries: int = 512
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 3000

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if env is None else env
        return cls(
            simulator=env.get("FANTASY_SIMULATOR", "").strip().lower() in _TRUTHY,
            sleeper_base_url=env.get("SLEEPER_BASE_URL", "").strip() or DEFAULT_SLEEPER_BASE_URL,
            espn_base_url=env.get("ESPN_BASE_URL", "").strip() or DEFAULT_ESPN_BASE_URL,
            upstream_timeout=_number(env, "UPSTREAM_TIMEOUT", None),
            active_interval=_number(env, "POLL_INTERVAL_ACTIVE", cls.active_interval),
            idle_interval=_number(env, "POLL_INTERVAL_IDLE", cls.idle_interval),
            reevaluate_seconds=_number(env, "POLL_REEVALUATE_SECONDS", cls.reevaluate_seconds),
            snapshot_grace_seconds=_number(
                env, "SNAPSHOT_GRACE_SECONDS", cls.snapshot_grace_seconds
            ),
            cache_max_entries=_number(env, "CACHE_MAX_ENTRIES", cls.cache_max_entries, int),
            log_level=env.get("LOG_LEVEL", "").strip() or "INFO",
            host=env.get("HOST", "").strip() or "0.0.0.0",
            port=_number(env, "PORT", cls.port, int),
        )
