"""
Centralized configuration management for the GPT quota proxy.

This module provides a Pydantic Settings-based configuration system that:
- Validates environment variables at startup
- Provides type coercion (strings to ints, bools, etc.)
- Groups related settings for better organization
- Keeps secrets in SecretStr so they never end up in logs
- Supports .env file loading

Quota limits are read once at process start. Changing them requires a
redeploy with new environment values.

Usage:
    from quota_proxy.config import get_settings

    settings = get_settings()
    limit = settings.usage.limit_for(is_pro=True)
"""

from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


# =============================================================================
# LLM Provider Settings
# =============================================================================


class LLMSettings(BaseSettings):
    """Configuration for the upstream OpenAI chat completion API."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    openai_api_key: Optional[SecretStr] = Field(
        default=None,
        description="OpenAI API key, injected by the hosting environment",
    )
    openai_base_url: Optional[str] = Field(
        default=None,
        description="Override for the OpenAI API base URL",
    )
    openai_model: str = Field(
        default="gpt-4o-mini",
        description="OpenAI model to use",
    )
    openai_temperature: float = Field(
        default=0.2,
        ge=0.0,
        le=2.0,
        description="Sampling temperature",
    )
    openai_json_response: bool = Field(
        default=True,
        description="Request a JSON object response format",
    )
    llm_api_timeout: float = Field(
        default=60.0,
        gt=0,
        le=600,
        description="Timeout in seconds for LLM API requests",
    )

    @property
    def is_configured(self) -> bool:
        """Check if the OpenAI key is available."""
        return bool(self.openai_api_key and self.openai_api_key.get_secret_value())


# =============================================================================
# Usage Quota Settings
# =============================================================================


class UsageSettings(BaseSettings):
    """Configuration for monthly usage quotas and the usage store."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    usage_limit_free: int = Field(
        default=3,
        ge=0,
        description="Monthly calls allowed for standard users",
    )
    usage_limit_pro: int = Field(
        default=1000,
        ge=0,
        description="Monthly calls allowed for privileged users",
    )
    usage_key_prefix: str = Field(
        default="gpt_usage:",
        description="Prefix for usage record keys in Redis",
    )
    usage_transaction_max_attempts: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Optimistic transaction attempts before giving up",
    )
    usage_transaction_backoff: float = Field(
        default=0.05,
        ge=0.0,
        description="Base backoff in seconds between conflicting attempts",
    )

    def limit_for(self, is_pro: bool) -> int:
        """Get the monthly limit for a tier."""
        return self.usage_limit_pro if is_pro else self.usage_limit_free


# =============================================================================
# Database Settings (Supabase tier lookup)
# =============================================================================


class DatabaseSettings(BaseSettings):
    """Configuration for the Supabase users table that holds subscription status."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL",
    )
    supabase_service_role_key: Optional[SecretStr] = Field(
        default=None,
        description="Supabase service role key",
    )
    supabase_users_table: str = Field(
        default="users",
        description="Table holding one row per user",
    )
    supabase_pro_column: str = Field(
        default="is_pro",
        description="Boolean column marking privileged users",
    )
    pro_user_ids: str = Field(
        default="",
        description="Comma-separated privileged user ids, used when Supabase is not configured",
    )

    @property
    def is_configured(self) -> bool:
        """Check if Supabase is properly configured."""
        return bool(self.supabase_url and self.supabase_service_role_key)

    @property
    def pro_user_id_list(self) -> List[str]:
        """Get parsed list of statically privileged user ids."""
        return [uid.strip() for uid in self.pro_user_ids.split(",") if uid.strip()]


# =============================================================================
# Redis Settings
# =============================================================================


class RedisSettings(BaseSettings):
    """Configuration for the Redis usage store."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    redis_url: Optional[str] = Field(
        default=None,
        description="Redis connection URL",
    )

    @property
    def is_configured(self) -> bool:
        """Check if Redis is configured."""
        return bool(self.redis_url)


# =============================================================================
# Security Settings
# =============================================================================


class SecuritySettings(BaseSettings):
    """Configuration for caller identity and CORS."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    dev_mode: bool = Field(
        default=False,
        description="Accept requests without an identity header as dev_user",
    )
    auth_user_header: str = Field(
        default="X-User-Id",
        description="Header carrying the user id verified by the authenticating gateway",
    )
    allowed_origins: str = Field(
        default="http://localhost:3000,http://127.0.0.1:3000",
        description="Comma-separated list of allowed CORS origins",
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def origins_list(self) -> List[str]:
        """Get parsed list of allowed origins."""
        return [
            origin.strip()
            for origin in self.allowed_origins.split(",")
            if origin.strip()
        ]


# =============================================================================
# Logging Settings
# =============================================================================


class LoggingSettings(BaseSettings):
    """Configuration for logging."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_format_json: bool = Field(
        default=False,
        description="Force JSON log format in development",
    )
    request_logging_enabled: bool = Field(
        default=True,
        description="Enable request logging middleware",
    )


# =============================================================================
# Monitoring Settings (Sentry)
# =============================================================================


class SentrySettings(BaseSettings):
    """Configuration for Sentry error tracking."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    sentry_dsn: Optional[str] = Field(
        default=None,
        description="Sentry DSN for error tracking",
    )
    sentry_environment: str = Field(
        default="development",
        description="Sentry environment name",
    )
    sentry_traces_sample_rate: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Sentry transaction sample rate (0.0 to 1.0)",
    )
    sentry_release: Optional[str] = Field(
        default="gpt-quota-proxy@1.0.0",
        description="Sentry release version",
    )
    server_name: str = Field(
        default="gpt-quota-proxy",
        description="Server name for Sentry",
    )

    @property
    def is_configured(self) -> bool:
        """Check if Sentry is configured."""
        return bool(self.sentry_dsn)


# =============================================================================
# Main Settings Class
# =============================================================================


class Settings(BaseSettings):
    """
    Main settings class that aggregates all configuration groups.

    This class provides a single entry point for all application configuration
    with validation, type coercion, and feature detection.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    llm: LLMSettings = Field(default_factory=LLMSettings)
    usage: UsageSettings = Field(default_factory=UsageSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    sentry: SentrySettings = Field(default_factory=SentrySettings)

    @property
    def is_supabase_configured(self) -> bool:
        """Check if the Supabase tier lookup is available."""
        return self.database.is_configured

    @property
    def is_redis_configured(self) -> bool:
        """Check if the Redis usage store is available."""
        return self.redis.is_configured

    @property
    def is_sentry_configured(self) -> bool:
        """Check if Sentry error tracking is available."""
        return self.sentry.is_configured

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.security.is_production

    @property
    def is_dev_mode(self) -> bool:
        """Check if development mode is enabled."""
        return self.security.dev_mode

    def get_config_summary(self) -> dict:
        """
        Get a summary of configuration status for logging.

        Never includes secret values.
        """
        return {
            "environment": self.security.environment,
            "dev_mode": self.is_dev_mode,
            "openai_configured": self.llm.is_configured,
            "openai_model": self.llm.openai_model,
            "usage_limit_free": self.usage.usage_limit_free,
            "usage_limit_pro": self.usage.usage_limit_pro,
            "usage_store": "redis" if self.is_redis_configured else "memory",
            "tier_source": "supabase" if self.is_supabase_configured else "static",
            "sentry_configured": self.is_sentry_configured,
            "allowed_origins": self.security.origins_list,
            "log_level": self.logging.log_level,
        }


# =============================================================================
# Settings Singleton
# =============================================================================


@lru_cache()
def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload settings.

    Returns:
        Validated Settings instance

    Raises:
        ValidationError: If required configuration is missing or invalid
    """
    return Settings()


def reload_settings() -> Settings:
    """
    Reload settings from environment.

    This clears the cache and returns fresh settings.
    Useful for testing or after environment changes.
    """
    get_settings.cache_clear()
    return get_settings()
