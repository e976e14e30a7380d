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
        description="Supabase service role key (for admin operations)"
    )
    products_table: str = Field(
        default="products",
        description="Catalog table holding product stock"
    )
    stock_update_rpc: str = Field(
        default="apply_stock_updates",
        description="Postgres function applying one batch of stock updates atomically"
    )

    # ===================
    # API SECURITY
    # ===================
    admin_api_key: Optional[str] = Field(
        None,
        description="Admin API key expected in X-API-Key (check disabled when unset)"
    )

    # ===================
    # STOCK SYNC
    # ===================
    sync_batch_size: int = Field(
        default=10,
        ge=1,
        le=500,
        description="Update instructions per storage transaction"
    )
    sync_retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per batch on transient storage errors"
    )
    sync_retry_delay_seconds: float = Field(
        default=1.0,
        ge=0,
        le=60,
        description="Fixed delay between attempts of the same batch"
    )
    sync_batch_delay_seconds: float = Field(
        default=0.1,
        ge=0,
        le=10,
        description="Pause between successive batch dispatches"
    )
    heartbeat_initial_seconds: float = Field(
        default=10.0,
        gt=0,
        le=120,
        description="Idle time before the first keep-alive ping"
    )
    heartbeat_interval_seconds: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Idle time between subsequent keep-alive pings"
    )
    header_scan_rows: int = Field(
        default=15,
        ge=1,
        le=100,
        description="Rows scanned when looking for the header row"
    )
    sample_matches_limit: int = Field(
        default=100,
        ge=0,
        description="Matched rows kept in the result for review"
    )
    sample_unmatched_limit: int = Field(
        default=200,
        ge=0,
        description="Unmatched rows kept in the result for review"
    )
    max_upload_mb: int = Field(
        default=20,
        ge=1,
        le=200,
        description="Largest accepted spreadsheet upload"
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
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Origins allowed to call the API (JSON list in env)"
    )

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024


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
