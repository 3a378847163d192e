"""Application configuration."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_parse_none_str="null",
    )

    # Application
    app_name: str = Field(default="Clinic Scheduler", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    api_v1_prefix: str = Field(default="/api/v1", alias="API_V1_PREFIX")

    # Server
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    reload: bool = Field(default=False, alias="RELOAD")

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./clinic_scheduler.db",
        alias="DATABASE_URL",
    )
    # Upper bound on how long a booking transaction waits for the schedule lock
    lock_timeout_ms: int = Field(default=5000, ge=1, alias="LOCK_TIMEOUT_MS")
    booking_busy_retries: int = Field(default=3, ge=1, alias="BOOKING_BUSY_RETRIES")
    booking_retry_backoff_seconds: float = Field(
        default=0.05, ge=0, alias="BOOKING_RETRY_BACKOFF_SECONDS"
    )

    # Redis (reminder dispatch queue)
    redis_host: str = Field(default="localhost", alias="REDIS_HOST")
    redis_port: int = Field(default=6379, alias="REDIS_PORT")
    redis_username: str = Field(default="default", alias="REDIS_USERNAME")
    redis_password: str = Field(default="", alias="REDIS_PASSWORD")
    redis_decode_responses: bool = Field(default=True, alias="REDIS_DECODE_RESPONSES")
    reminder_queue_key: str = Field(default="reminders:scheduled", alias="REMINDER_QUEUE_KEY")

    # Scheduling
    facility_timezone: str = Field(
        default="UTC",
        alias="FACILITY_TIMEZONE",
        description="Canonical zone all appointment instants are expressed in",
    )
    default_slot_duration_minutes: int = Field(
        default=30, ge=1, alias="DEFAULT_SLOT_DURATION_MINUTES"
    )
    default_appointment_duration_minutes: int = Field(
        default=30, ge=1, alias="DEFAULT_APPOINTMENT_DURATION_MINUTES"
    )
    reminder_hour: int = Field(default=9, ge=0, le=23, alias="REMINDER_HOUR")
    reminder_backfill_batch_size: int = Field(
        default=100, ge=1, alias="REMINDER_BACKFILL_BATCH_SIZE"
    )

    # No-show sweeper
    no_show_sweeper_enabled: bool = Field(default=True, alias="NO_SHOW_SWEEPER_ENABLED")
    no_show_grace_minutes: int = Field(default=60, ge=0, alias="NO_SHOW_GRACE_MINUTES")
    no_show_sweep_interval_seconds: int = Field(
        default=300, ge=1, alias="NO_SHOW_SWEEP_INTERVAL_SECONDS"
    )

    # CORS
    cors_origins_str: str = Field(
        default="http://localhost:3000",
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")

    @property
    def cors_origins(self) -> list[str]:
        """Get CORS origins as a list."""
        if isinstance(self.cors_origins_str, str):
            return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]
        return [self.cors_origins_str]

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT")

    @property
    def is_sqlite(self) -> bool:
        """Check if the configured database is SQLite."""
        return self.database_url.startswith("sqlite")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
