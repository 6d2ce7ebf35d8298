"""
Configuration validation for quota proxy startup.

Checks the loaded settings for combinations that would make the proxy
unsafe or useless, logs the findings and fails fast on critical errors.

Usage:
    from quota_proxy.config_validator import validate_config, ConfigurationError

    try:
        validate_config()
    except ConfigurationError as e:
        logger.critical(f"Configuration error: {e}")
        sys.exit(1)
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from quota_proxy.config import Settings, get_settings

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """
    Raised when critical configuration is missing or invalid.

    This exception should cause the application to fail fast at startup.
    """

    def __init__(self, message: str, missing_vars: Optional[List[str]] = None):
        super().__init__(message)
        self.missing_vars = missing_vars or []


@dataclass
class ValidationResult:
    """Result of configuration validation."""

    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    info: List[str] = field(default_factory=list)
    missing_vars: List[str] = field(default_factory=list)

    def add_error(self, message: str, missing_var: Optional[str] = None) -> None:
        """Add a critical error."""
        self.errors.append(message)
        self.is_valid = False
        if missing_var:
            self.missing_vars.append(missing_var)

    def add_warning(self, message: str) -> None:
        """Add a non-critical warning."""
        self.warnings.append(message)

    def add_info(self, message: str) -> None:
        """Add an informational message."""
        self.info.append(message)


# =============================================================================
# Validation Functions
# =============================================================================


def validate_llm_config(settings: Settings, result: ValidationResult) -> None:
    """Validate upstream LLM configuration."""
    llm = settings.llm

    if not llm.is_configured:
        result.add_error(
            "OPENAI_API_KEY is not set. The proxy cannot forward requests without it.",
            missing_var="OPENAI_API_KEY",
        )
        return

    result.add_info(f"Upstream model: {llm.openai_model}")

    if llm.llm_api_timeout < 10:
        result.add_warning(
            f"LLM_API_TIMEOUT is set to {llm.llm_api_timeout}s. Short timeouts "
            "roll back many reservations on slow completions."
        )


def validate_usage_config(settings: Settings, result: ValidationResult) -> None:
    """Validate quota limits and the usage store backend."""
    usage = settings.usage

    if usage.usage_limit_pro < usage.usage_limit_free:
        result.add_warning(
            f"USAGE_LIMIT_PRO ({usage.usage_limit_pro}) is lower than "
            f"USAGE_LIMIT_FREE ({usage.usage_limit_free})."
        )

    if settings.is_redis_configured:
        result.add_info("Usage store: redis")
    elif settings.is_production:
        result.add_error(
            "REDIS_URL is required in production. The in-memory usage store "
            "cannot enforce quotas across processes.",
            missing_var="REDIS_URL",
        )
    else:
        result.add_warning("REDIS_URL not set, using the in-memory usage store")


def validate_tier_config(settings: Settings, result: ValidationResult) -> None:
    """Validate the subscription tier source."""
    if settings.is_supabase_configured:
        result.add_info("Tier source: supabase")
        return

    count = len(settings.database.pro_user_id_list)
    result.add_warning(
        f"Supabase not configured, tiers come from PRO_USER_IDS ({count} privileged users)"
    )


def validate_security_config(settings: Settings, result: ValidationResult) -> None:
    """Validate security configuration."""
    if settings.is_production and settings.is_dev_mode:
        result.add_error(
            "DEV_MODE=true is not allowed in production environment. "
            "Set DEV_MODE=false for production deployment."
        )


def validate_sentry_config(settings: Settings, result: ValidationResult) -> None:
    """Validate error tracking configuration."""
    if settings.is_production and not settings.is_sentry_configured:
        result.add_warning("SENTRY_DSN not set, errors will only be logged")


# =============================================================================
# Main Validation Function
# =============================================================================


def validate_config(
    settings: Optional[Settings] = None,
    fail_on_error: bool = True,
) -> ValidationResult:
    """
    Validate the application configuration.

    Args:
        settings: Settings instance to validate (uses get_settings() if None)
        fail_on_error: If True, raises ConfigurationError on critical errors

    Returns:
        ValidationResult with validation status and messages

    Raises:
        ConfigurationError: If fail_on_error is True and critical errors found
    """
    if settings is None:
        try:
            settings = get_settings()
        except Exception as e:
            logger.critical(f"Failed to load configuration: {e}")
            if fail_on_error:
                raise ConfigurationError(f"Failed to load configuration: {e}") from e
            result = ValidationResult(is_valid=False)
            result.add_error(f"Failed to load configuration: {e}")
            return result

    result = ValidationResult(is_valid=True)

    validate_llm_config(settings, result)
    validate_usage_config(settings, result)
    validate_tier_config(settings, result)
    validate_security_config(settings, result)
    validate_sentry_config(settings, result)

    for info in result.info:
        logger.info(f"[CONFIG] {info}")

    for warning in result.warnings:
        logger.warning(f"[CONFIG] {warning}")

    for error in result.errors:
        logger.error(f"[CONFIG] {error}")

    if fail_on_error and not result.is_valid:
        raise ConfigurationError(
            f"Configuration validation failed with {len(result.errors)} error(s). "
            "See logs for details.",
            missing_vars=result.missing_vars,
        )

    return result


def log_config_summary(settings: Optional[Settings] = None) -> None:
    """Log a summary of the current configuration."""
    if settings is None:
        settings = get_settings()

    summary = settings.get_config_summary()

    logger.info("=" * 60)
    logger.info("GPT Quota Proxy Configuration Summary")
    logger.info("=" * 60)
    logger.info(f"Environment: {summary['environment']}")
    logger.info(f"Dev Mode: {summary['dev_mode']}")
    logger.info(f"Log Level: {summary['log_level']}")
    logger.info("-" * 60)
    logger.info(f"Upstream: {'Configured' if summary['openai_configured'] else 'Missing'} ({summary['openai_model']})")
    logger.info(f"Limits: free={summary['usage_limit_free']} pro={summary['usage_limit_pro']}")
    logger.info(f"Usage Store: {summary['usage_store']}")
    logger.info(f"Tier Source: {summary['tier_source']}")
    logger.info(f"Sentry Monitoring: {'Enabled' if summary['sentry_configured'] else 'Disabled'}")
    logger.info(f"Allowed Origins: {len(summary['allowed_origins'])} configured")
    logger.info("=" * 60)
