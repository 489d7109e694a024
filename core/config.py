import os
from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be numeric, got '{raw}'")


def _env_int(name: str, default: int) -> int:
    return int(_env_float(name, default))


def _env_list(name: str, default: str) -> frozenset[str]:
    raw = os.getenv(name, default)
    return frozenset(s.strip().lower() for s in raw.split(",") if s.strip())


# Tunables for the location access subsystem
@dataclass(frozen=True)
class LocationSettings:
    grant_window_hours: float = 8
    request_ttl_hours: float = 24
    min_accuracy_meters: float = 100
    fetch_timeout_seconds: float = 30
    poll_interval_seconds: float = 30
    max_zones: int = 3
    bypass_roles: frozenset[str] = frozenset({"owner", "admin"})
    recent_violations_limit: int = 10
    stats_log_limit: int = 100

    @property
    def grant_window(self) -> timedelta:
        return timedelta(hours=self.grant_window_hours)

    @property
    def request_ttl(self) -> timedelta:
        return timedelta(hours=self.request_ttl_hours)

    @classmethod
    def from_env(cls) -> "LocationSettings":
        return cls(
            grant_window_hours=_env_float("LOCATION_GRANT_WINDOW_HOURS", 8),
            request_ttl_hours=_env_float("LOCATION_REQUEST_TTL_HOURS", 24),
            min_accuracy_meters=_env_float("LOCATION_MIN_ACCURACY_METERS", 100),
            fetch_timeout_seconds=_env_float("LOCATION_FETCH_TIMEOUT_SECONDS", 30),
            poll_interval_seconds=_env_float("LOCATION_POLL_INTERVAL_SECONDS", 30),
            max_zones=_env_int("LOCATION_MAX_ZONES", 3),
            bypass_roles=_env_list("LOCATION_BYPASS_ROLES", "owner,admin"),
            recent_violations_limit=_env_int("LOCATION_RECENT_VIOLATIONS", 10),
            stats_log_limit=_env_int("LOCATION_STATS_LOG_LIMIT", 100),
        )


@lru_cache
def get_location_settings() -> LocationSettings:
    return LocationSettings.from_env()
