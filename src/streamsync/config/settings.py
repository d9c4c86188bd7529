"""Application settings loaded from environment variables.

Hey future me - every value here can be overridden with STREAMSYNC_<GROUP>__<FIELD>,
e.g. STREAMSYNC_SYNC__WIFI_ONLY=false or STREAMSYNC_DATABASE__URL=sqlite+aiosqlite://.
Top-level fields (log_level, app_name) drop the group part: STREAMSYNC_LOG_LEVEL=DEBUG.
Tests build Settings(...) directly instead of going through get_settings().
"""

from datetime import timedelta
from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseModel):
    """Database connection settings."""

    url: str = Field(
        default="sqlite+aiosqlite:///./streamsync.db",
        description="SQLAlchemy async database URL",
    )
    echo: bool = Field(default=False, description="Echo SQL statements")
    pool_pre_ping: bool = Field(default=True, description="Test connections before use")


class SyncSettings(BaseModel):
    """Periodic content sync settings."""

    default_frequency_minutes: int = Field(default=60, ge=1)
    min_frequency_minutes: int = Field(
        default=15,
        ge=1,
        description="Floor enforced on every periodic registration",
    )
    flex_minutes: int = Field(
        default=15,
        ge=0,
        description="How early a periodic run may start to batch with other work",
    )
    wifi_only: bool = Field(default=True, description="Default network constraint")
    dispatch_interval_seconds: float = Field(
        default=30.0,
        gt=0,
        description="How often the scheduler loop re-evaluates registrations",
    )
    execution_timeout_seconds: float = Field(
        default=600.0,
        gt=0,
        description="Ceiling for one run; exceeding it counts as total failure",
    )

    @property
    def default_frequency(self) -> timedelta:
        return timedelta(minutes=self.default_frequency_minutes)

    @property
    def min_frequency(self) -> timedelta:
        return timedelta(minutes=self.min_frequency_minutes)

    @property
    def flex_window(self) -> timedelta:
        return timedelta(minutes=self.flex_minutes)


class RetrySettings(BaseModel):
    """Bounded exponential backoff settings."""

    base_delay_seconds: float = Field(default=30.0, gt=0)
    min_backoff_seconds: float = Field(default=10.0, ge=0)
    max_retries: int = Field(default=3, ge=1)


class CacheSettings(BaseModel):
    """Stream URL cache settings."""

    refresh_window_minutes: int = Field(
        default=30,
        ge=0,
        description="Entries expiring within this window are re-resolved by the worker",
    )
    default_ttl_hours: float = Field(
        default=6.0,
        gt=0,
        description="Lifetime applied when the resolver reports no expiry",
    )

    @property
    def refresh_window(self) -> timedelta:
        return timedelta(minutes=self.refresh_window_minutes)

    @property
    def default_ttl(self) -> timedelta:
        return timedelta(hours=self.default_ttl_hours)


class NotificationSettings(BaseModel):
    """Outbound notification settings (webhook renderer)."""

    webhook_url: str | None = Field(default=None, description="Webhook endpoint; unset disables it")
    webhook_format: Literal["generic", "discord", "slack", "gotify"] = "generic"
    webhook_auth_header: str | None = Field(
        default=None,
        description="Value for the Authorization header, if the endpoint needs one",
    )
    webhook_timeout_seconds: float = Field(default=30.0, gt=0)


class ObservabilitySettings(BaseModel):
    """Logging settings."""

    log_json_format: bool = Field(
        default=False,
        description="Emit JSON lines instead of human-readable logs",
    )


class Settings(BaseSettings):
    """Root settings object."""

    model_config = SettingsConfigDict(
        env_prefix="STREAMSYNC_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "streamsync"
    log_level: str = Field(default="INFO", description="Root log level")

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {value}")
        return level


# Hey future me - cached so every Depends(get_settings) shares one instance.
# Call get_settings.cache_clear() in tests that monkeypatch the environment.
@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
