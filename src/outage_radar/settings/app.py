"""Application settings powered by Pydantic BaseSettings."""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


CACHE_TTL_MIN_SECONDS = 120
CACHE_TTL_MAX_SECONDS = 900
FETCH_TIMEOUT_MIN_SECONDS = 1
FETCH_TIMEOUT_MAX_SECONDS = 60
POLL_INTERVAL_MIN_SECONDS = 60


def clamp(value: int, low: int, high: int) -> int:
    """Clamp an integer into the inclusive range [low, high]."""
    return max(low, min(high, value))


class RadarSettings(BaseSettings):
    """Centralized environment configuration.

    Every option can be set through an ``OUTAGE_RADAR_``-prefixed
    environment variable or a ``.env`` file. Out-of-range values are
    clamped rather than rejected so a typo never stops the poller.
    """

    model_config = SettingsConfigDict(
        env_prefix="OUTAGE_RADAR_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    db_path: Path = Path("state/outage_radar.sqlite")
    providers_path: Path | None = None
    noise_rules_path: Path | None = None

    cooldown_minutes: int = Field(default=90, ge=0)
    daily_alert_cap: int = Field(default=5, ge=0)
    digest_threshold: int = Field(default=3, ge=1)
    cache_ttl_seconds: int = 300
    standard_retention_days: int = Field(default=60, ge=1)
    important_retention_days: int = Field(default=365, ge=1)
    important_event_cap: int = Field(default=1000, ge=1)
    history_retention_days: int = Field(default=1095, ge=1)
    fetch_timeout_seconds: int = 10
    max_redirects: int = Field(default=3, ge=0, le=10)
    poll_interval_seconds: int = 300
    max_workers: int = Field(default=4, ge=1, le=32)

    user_agent: str = "OutageRadar/0.1 (+status monitor)"
    crowd_feed_url: str = "https://downdetector.ca/archive/?format=rss"
    crowd_window_minutes: int = Field(default=120, ge=10)
    prealert_threshold: int = Field(default=60, ge=0, le=100)

    alert_recipients: list[str] = Field(default_factory=list)
    unsubscribe_url: str | None = None

    @field_validator("cache_ttl_seconds")
    @classmethod
    def clamp_cache_ttl(cls, v: int) -> int:
        """Clamp the snapshot cache TTL to 2-15 minutes."""
        return clamp(v, CACHE_TTL_MIN_SECONDS, CACHE_TTL_MAX_SECONDS)

    @field_validator("fetch_timeout_seconds")
    @classmethod
    def clamp_fetch_timeout(cls, v: int) -> int:
        """Clamp the per-request timeout."""
        return clamp(v, FETCH_TIMEOUT_MIN_SECONDS, FETCH_TIMEOUT_MAX_SECONDS)

    @field_validator("poll_interval_seconds")
    @classmethod
    def clamp_poll_interval(cls, v: int) -> int:
        """Enforce the minimum poll cadence."""
        return max(POLL_INTERVAL_MIN_SECONDS, v)

    @property
    def cooldown_seconds(self) -> int:
        """Alert cooldown window in seconds."""
        return self.cooldown_minutes * 60


def get_settings() -> RadarSettings:
    """Get a settings instance."""
    return RadarSettings()
