"""Application settings loaded from environment variables.

Hey future me - every knob of the cover pipeline lives here. Nested settings are
read from env vars with the COVERSHELF_ prefix and "__" as the nesting delimiter:

    COVERSHELF_DATABASE__URL=postgresql+asyncpg://...
    COVERSHELF_COVER_FETCH__MAX_FILE_SIZE_BYTES=2097152
    COVERSHELF_RESILIENCE__PROVIDERS__LONGITOOD__TIMEOUT_SECONDS=3

Tests build Settings(...) directly instead of touching the environment.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseModel):
    """Database connection settings."""

    url: str = Field(
        default="sqlite+aiosqlite:///./covershelf.db",
        description="SQLAlchemy async database URL",
    )
    echo: bool = Field(default=False, description="Log all SQL statements")
    pool_pre_ping: bool = Field(default=True)
    # Pool settings only apply to PostgreSQL (SQLite has no real pool)
    pool_size: int = Field(default=5, ge=1)
    max_overflow: int = Field(default=10, ge=0)
    pool_timeout: int = Field(default=30, ge=1)
    pool_recycle: int = Field(default=3600, ge=-1)


class StorageSettings(BaseModel):
    """Cover object storage settings.

    The local disk gateway treats base_path as the bucket root. Objects are
    served to clients under public_base_url + "/" + storage key.
    """

    base_path: Path = Field(default=Path("./data/covers"))
    public_base_url: str = Field(default="/media")
    upload_enabled: bool = Field(default=True)
    read_enabled: bool = Field(default=True)
    write_provenance: bool = Field(
        default=False, description="Store a provenance text file next to each cover"
    )

    @field_validator("public_base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class CoverFetchSettings(BaseModel):
    """Download/processing limits for the fetch pipeline."""

    max_file_size_bytes: int = Field(default=5_242_880, ge=1)
    download_timeout_seconds: float = Field(default=10.0, gt=0)
    max_redirects: int = Field(default=3, ge=0)
    user_agent: str = Field(default="CoverShelf/0.1 (+cover-ingestion)")
    # Order matters! The read path probes storage keys in exactly this order.
    source_labels: list[str] = Field(
        default_factory=lambda: ["google-books", "open-library", "longitood", "unknown"]
    )
    placeholder_url: str = Field(default="/static/images/placeholder-book-cover.svg")
    max_concurrency: int = Field(default=8, ge=1)
    failed_retry_hours: int = Field(default=24, ge=0)
    google_books_api_key: str | None = Field(default=None)


class ProviderResilienceSettings(BaseModel):
    """Rate limit, circuit breaker and timeout knobs for ONE provider."""

    rate_limit_max_tokens: int = Field(default=10, ge=1)
    rate_limit_refill_per_second: float = Field(default=5.0, gt=0)
    breaker_window_size: int = Field(default=20, ge=1)
    breaker_minimum_calls: int = Field(default=5, ge=1)
    breaker_failure_rate_threshold: float = Field(default=50.0, gt=0, le=100)
    breaker_open_seconds: float = Field(default=30.0, ge=0)
    breaker_half_open_calls: int = Field(default=2, ge=1)
    timeout_seconds: float = Field(default=10.0, gt=0)


def _default_provider_settings() -> dict[str, ProviderResilienceSettings]:
    # Longitood is a tiny free service - go easy on it
    return {
        "cover-download": ProviderResilienceSettings(
            rate_limit_max_tokens=20, rate_limit_refill_per_second=10.0
        ),
        "google-books": ProviderResilienceSettings(
            rate_limit_max_tokens=10, rate_limit_refill_per_second=2.0, timeout_seconds=5.0
        ),
        "open-library": ProviderResilienceSettings(
            rate_limit_max_tokens=10, rate_limit_refill_per_second=5.0, timeout_seconds=5.0
        ),
        "longitood": ProviderResilienceSettings(
            rate_limit_max_tokens=5,
            rate_limit_refill_per_second=1.0,
            timeout_seconds=5.0,
            breaker_open_seconds=60.0,
        ),
    }


class ResilienceSettings(BaseModel):
    """Per-provider resilience settings, keyed by provider name."""

    default: ProviderResilienceSettings = Field(default_factory=ProviderResilienceSettings)
    providers: dict[str, ProviderResilienceSettings] = Field(
        default_factory=_default_provider_settings
    )

    def for_provider(self, name: str) -> ProviderResilienceSettings:
        """Get settings for a provider, falling back to the default entry."""
        return self.providers.get(name, self.default)


class ObservabilitySettings(BaseModel):
    """Logging settings."""

    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False)

    @field_validator("log_level")
    @classmethod
    def upper_level(cls, value: str) -> str:
        return value.upper()


class Settings(BaseSettings):
    """Root settings object."""

    model_config = SettingsConfigDict(
        env_prefix="COVERSHELF_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    app_name: str = Field(default="covershelf")
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    cover_fetch: CoverFetchSettings = Field(default_factory=CoverFetchSettings)
    resilience: ResilienceSettings = Field(default_factory=ResilienceSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
