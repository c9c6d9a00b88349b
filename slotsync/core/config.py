from functools import lru_cache

from pydantic import AnyHttpUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Global application configuration.

    Values are loaded from environment variables (or a local `.env` file)
    at runtime.

    Groups
    ------
    - App / logging
    - DB connection
    - Slot search and sync resilience tuning
    - External provider endpoints and credentials
    - SMTP for client notifications
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    APP_NAME: str = "SlotSync"
    APP_ENV: str = Field("local", description="Environment name: local/dev/stage/prod")
    LOG_LEVEL: str = Field("INFO", description="Root log level for the service.")

    DB_URL: str = Field(
        "sqlite+aiosqlite:///./slotsync.db",
        description="SQLAlchemy-compatible async database URL",
    )

    INTERNAL_API_KEY: str | None = Field(
        default=None,
        description="API key required for hitting /internal endpoints",
    )

    # --- Scheduling ---
    SLOT_GRANULARITY_MINUTES: int = Field(
        default=15,
        ge=1,
        description="Step between candidate slot start times.",
    )
    MIN_BOOKING_NOTICE_MINUTES: int = Field(
        default=15,
        ge=0,
        description="Slots starting sooner than this after now are not listed.",
    )

    # --- Sync resilience ---
    SYNC_MAX_ATTEMPTS: int = Field(
        default=3,
        ge=1,
        description="Maximum attempts per external provider call.",
    )
    SYNC_BACKOFF_BASE_SECONDS: float = Field(
        default=1.0,
        ge=0.0,
        description="Base delay for exponential backoff between provider attempts.",
    )
    SYNC_CALL_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        gt=0.0,
        description="Upper bound for a single provider call.",
    )

    # --- Calendar provider (Microsoft Graph) ---
    GRAPH_BASE_URL: AnyHttpUrl | None = None
    GRAPH_ACCESS_TOKEN: str | None = Field(
        default=None,
        description=(
            "Access token issued and refreshed outside this service. "
            "When unset, calendar sync is disabled."
        ),
    )

    # --- Meeting provider (Zoom) ---
    ZOOM_BASE_URL: AnyHttpUrl | None = None
    ZOOM_ACCESS_TOKEN: str | None = Field(
        default=None,
        description=(
            "Access token issued and refreshed outside this service. "
            "When unset, meeting sync is disabled."
        ),
    )

    # --- SMTP / Email configuration ---
    SMTP_HOST: str | None = Field(
        default=None,
        description="SMTP server hostname for sending client notifications.",
    )
    SMTP_PORT: int = Field(
        default=587,
        description="SMTP server port (usually 587 for TLS).",
    )
    SMTP_USERNAME: str | None = Field(
        default=None,
        description="SMTP username (if authentication is required).",
    )
    SMTP_PASSWORD: str | None = Field(
        default=None,
        description="SMTP password (if authentication is required).",
    )
    SMTP_USE_TLS: bool = Field(
        default=True,
        description="Whether to use STARTTLS when connecting to SMTP.",
    )
    SMTP_FROM_ADDRESS: str | None = Field(
        default=None,
        description="From address used in booking notification emails.",
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Cached accessor for application settings.

    Using LRU cache ensures settings are read and validated only once,
    while still being easily importable across the app.
    """
    return Settings()
