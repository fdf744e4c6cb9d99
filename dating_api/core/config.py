"""
Configuration helpers for the dating backend.

Every environment variable the application understands is read here and
exposed as a typed Settings object, so routers/services never touch
os.environ directly.
"""

from dataclasses import dataclass
from functools import lru_cache
import os


@dataclass(frozen=True)
class RateLimit:
    """At most `limit` requests per client within `window_seconds`."""

    limit: int
    window_seconds: int

    @classmethod
    def parse(cls, value: str | None, default: "RateLimit") -> "RateLimit":
        """Parse "<limit>/<seconds>", e.g. "20/300"; malformed values fall back to default."""
        if not value:
            return default
        count, _, seconds = value.partition("/")
        try:
            rule = cls(int(count), int(seconds))
        except ValueError:
            return default
        if rule.limit < 1 or rule.window_seconds < 1:
            return default
        return rule


@dataclass(frozen=True)
class Settings:
    """Typed view of environment variables."""

    app_env: str
    database_url: str
    public_base_url: str
    session_ttl_seconds: int
    quota_daily_capacity: int
    quota_window_seconds: int
    quota_reset_interval_seconds: int
    quota_scheduler_enabled: bool
    quota_max_retries: int
    admin_token: str
    log_level: str
    register_rate_limit: RateLimit
    login_rate_limit: RateLimit


@lru_cache
def get_settings() -> Settings:
    """Read the current environment and build a Settings instance."""
    def _int(value: str, default: int = 0) -> int:
        try:
            return int(value)
        except (TypeError, ValueError):
            return default

    def _bool(value: str | None, default: bool = False) -> bool:
        if value is None:
            return default
        return value.strip().lower() in {"1", "true", "yes", "on"}

    return Settings(
        app_env=(os.getenv("APP_ENV") or "dev").lower(),
        database_url=os.getenv("DATABASE_URL", ""),
        public_base_url=os.getenv("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/"),
        session_ttl_seconds=_int(os.getenv("SESSION_TTL_SECONDS", "86400"), 86400),
        quota_daily_capacity=max(1, _int(os.getenv("QUOTA_DAILY_CAPACITY", "10"), 10)),
        quota_window_seconds=max(1, _int(os.getenv("QUOTA_WINDOW_SECONDS", "86400"), 86400)),
        # The reset pass may run more often than the window length while testing.
        quota_reset_interval_seconds=max(1, _int(os.getenv("QUOTA_RESET_INTERVAL_SECONDS", "86400"), 86400)),
        quota_scheduler_enabled=_bool(os.getenv("QUOTA_SCHEDULER_ENABLED"), True),
        quota_max_retries=max(1, _int(os.getenv("QUOTA_MAX_RETRIES", "3"), 3)),
        admin_token=os.getenv("ADMIN_TOKEN", ""),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
        register_rate_limit=RateLimit.parse(os.getenv("AUTH_REGISTER_RATE_LIMIT"), RateLimit(10, 300)),
        login_rate_limit=RateLimit.parse(os.getenv("AUTH_LOGIN_RATE_LIMIT"), RateLimit(20, 300)),
    )
