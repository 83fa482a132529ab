"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
Pipeline tunables (match threshold, batch limits, retention) live here so
they can be changed per environment without code edits.
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

    # ===================
    # PRODUCT MATCHING
    # ===================
    fuzzy_match_threshold: float = Field(
        default=0.8,
        ge=0.3,
        le=1.0,
        description="Minimum final score for a fuzzy catalog match to be accepted"
    )
    max_candidates_per_step: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Candidates fetched per matching step"
    )
    local_fuzzy_pool_size: int = Field(
        default=50,
        ge=5,
        le=500,
        description="Products pulled for local trigram scoring when the database function is unavailable"
    )

    # ===================
    # STAGING LIMITS
    # ===================
    max_rows_per_upload: int = Field(
        default=1000,
        ge=1,
        le=10000,
        description="Maximum data rows accepted in one upload"
    )
    max_pending_batches_per_shop: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Batches a shop may hold in STAGING at once"
    )
    preview_page_size: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Rows per preview page"
    )

    # ===================
    # RETENTION
    # ===================
    staging_retention_days: int = Field(
        default=7,
        ge=1,
        le=90,
        description="Days staging rows are kept before the cleanup sweep removes them"
    )
    abandoned_batch_hours: int = Field(
        default=48,
        ge=1,
        le=720,
        description="Hours after which an uncommitted STAGING batch is cancelled"
    )
    stale_commit_claim_hours: int = Field(
        default=6,
        ge=1,
        le=168,
        description="Hours after which a commit claim on a STAGING batch is treated as dead"
    )

    # ===================
    # SPEC RULES / COMMIT
    # ===================
    spec_rule_cache_ttl_seconds: int = Field(
        default=300,
        ge=0,
        le=86400,
        description="How long loaded spec rules are reused before reloading"
    )
    max_sku_attempts: int = Field(
        default=20,
        ge=1,
        le=1000,
        description="Sequence values tried before SKU generation gives up"
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

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"


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
