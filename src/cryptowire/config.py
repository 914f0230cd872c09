"""Process configuration loading for cryptowire."""

from functools import lru_cache
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cryptowire.utils.secrets import get_secret_manager


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Only process-level wiring lives here. Everything an operator tunes between
    runs (schedule, target count, thresholds, domains) is stored in the parser
    configuration row and read at the start of each run.
    """

    model_config = SettingsConfigDict(env_prefix="CRYPTOWIRE_", env_file=".env", extra="ignore")

    # Storage
    database_url: str = Field(
        default="sqlite+aiosqlite:///./cryptowire.db",
        description="Async SQLAlchemy database URL",
    )
    database_url_secret: str | None = Field(
        default=None,
        description="Secret Manager secret holding the database URL (overrides database_url)",
    )
    gcp_project_id: str | None = Field(default=None, description="Google Cloud project ID")
    gcs_images_bucket: str | None = Field(
        default=None, description="Public GCS bucket for downloaded article images"
    )

    # Sources and fetching
    sources_file: Path | None = Field(
        default=None, description="JSON file overriding the built-in source registry"
    )
    feed_timeout: float = Field(default=15.0, gt=0, description="Per-feed request timeout (s)")
    feed_concurrency: int = Field(default=4, ge=1, le=16, description="Parallel feed fetches")
    listing_delay: float = Field(default=1.5, ge=0, description="Pause between listing pages (s)")
    max_redirects: int = Field(default=5, ge=0)

    # Application settings
    log_level: str = Field(default="INFO", description="Logging level")
    timezone: str = Field(default="UTC", description="Timezone for cron schedules")
    start_scheduler: bool = Field(default=True, description="Arm the cron job on startup")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate the log level is one the logging module knows."""
        v = v.strip().upper()
        if v not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"CRYPTOWIRE_LOG_LEVEL '{v}' is not a valid logging level.")
        return v

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Validate the timezone name resolves."""
        v = v.strip()
        try:
            ZoneInfo(v)
        except ZoneInfoNotFoundError as e:
            raise ValueError(f"CRYPTOWIRE_TIMEZONE '{v}' is not a known timezone.") from e
        return v

    @field_validator("database_url_secret", "gcp_project_id", "gcs_images_bucket")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return v.strip()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()


def resolve_database_url(settings: Settings) -> str:
    """Return the database URL, reading it from Secret Manager when configured.

    Raises:
        ValueError: If a secret is configured without a GCP project.
    """
    if settings.database_url_secret is None:
        return settings.database_url
    if settings.gcp_project_id is None:
        raise ValueError(
            "CRYPTOWIRE_GCP_PROJECT_ID is required when CRYPTOWIRE_DATABASE_URL_SECRET is set."
        )
    manager = get_secret_manager(settings.gcp_project_id)
    return manager.get_secret(settings.database_url_secret)
