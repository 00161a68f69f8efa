"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings.

    All values loaded from .env file or environment variables.
    Validation happens automatically on startup.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),  # Check current dir, then parent
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra env vars
    )

    # ===================
    # SUPABASE
    # ===================
    supabase_url: str = Field(
        ...,
        description="Supabase project URL"
    )
    supabase_key: str = Field(
        ...,
        description="Supabase anon/public key"
    )
    supabase_service_key: Optional[str] = Field(
        None,
        description="Supabase service role key (used by the geocoding worker)"
    )

    # ===================
    # GEOCODING
    # ===================
    overpass_url: str = Field(
        default="https://overpass-api.de/api/interpreter",
        description="Overpass API interpreter endpoint (tier 1)"
    )
    nominatim_domain: str = Field(
        default="nominatim.openstreetmap.org",
        description="Nominatim host for free-text search (tier 2)"
    )
    nominatim_user_agent: str = Field(
        default="address-import-backend",
        description="User agent sent to Nominatim (required by its usage policy)"
    )
    geocoding_country: str = Field(
        default="Deutschland",
        description="Country name used to scope structured queries"
    )
    geocoding_country_code: str = Field(
        default="de",
        min_length=2,
        max_length=2,
        description="ISO country code used to restrict free-text search"
    )
    geocoding_timeout_seconds: int = Field(
        default=10,
        ge=1,
        le=120,
        description="Timeout per external geocoding request"
    )
    nominatim_min_delay_seconds: float = Field(
        default=1.1,
        ge=0,
        le=60,
        description="Minimum gap between Nominatim requests across all workers"
    )
    nominatim_max_retries: int = Field(
        default=2,
        ge=0,
        le=10,
        description="Retries of a Nominatim request after a service error"
    )

    # ===================
    # BATCH GEOCODING
    # ===================
    geocode_batch_size: int = Field(
        default=50,
        ge=1,
        le=200,
        description="Addresses selected per batch step"
    )
    geocode_max_workers: int = Field(
        default=50,
        ge=1,
        le=200,
        description="Concurrent resolutions within one batch step"
    )

    # ===================
    # COLUMN MAPPING
    # ===================
    saved_mapping_match_threshold: float = Field(
        default=0.80,
        ge=0,
        le=1,
        description="Share of current headers that must exist in a saved mapping to reuse it"
    )
    saved_mapping_confidence: float = Field(
        default=0.95,
        ge=0,
        le=1,
        description="Confidence reported when a saved mapping is reused"
    )

    # ===================
    # TASK QUEUE
    # ===================
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection used by the rq continuation queue"
    )
    geocode_queue_name: str = Field(
        default="geocoding",
        description="rq queue that runs batch geocoding steps"
    )
    geocode_job_timeout_seconds: int = Field(
        default=600,
        ge=30,
        le=3600,
        description="Maximum runtime of one batch step on the worker"
    )

    # ===================
    # APP SETTINGS
    # ===================
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Application environment"
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API host"
    )
    api_port: int = Field(
        default=8000,
        ge=1000,
        le=65535,
        description="API port"
    )

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def service_role_configured(self) -> bool:
        """Check if the worker can use the service role key."""
        return bool(self.supabase_service_key)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload.

    Returns:
        Settings: Application settings

    Raises:
        ValidationError: If required env vars are missing or invalid
    """
    return Settings()


# For convenient imports: from config.settings import settings
settings = get_settings()
