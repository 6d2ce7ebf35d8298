"""
Server for the GPT quota proxy.

Assembles configuration, logging, Sentry, the usage store and the proxy
service into the FastAPI application.
"""

import logging
import os
import re
import sys
from contextlib import asynccontextmanager
from typing import Optional

import sentry_sdk
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

# Configure structured logging FIRST, before other imports that use logging
from quota_proxy.config import LoggingSettings, SecuritySettings
from quota_proxy.utils.logging import setup_logging

_logging_settings = LoggingSettings()
logger = setup_logging(
    service_name="gpt-quota-proxy",
    level=_logging_settings.log_level,
    json_format=_logging_settings.log_format_json or SecuritySettings().is_production,
)

from quota_proxy import __version__
from quota_proxy.config import Settings, get_settings
from quota_proxy.config_validator import (
    ConfigurationError,
    log_config_summary,
    validate_config,
)

# =============================================================================
# Configuration Validation
# =============================================================================

try:
    settings: Settings = get_settings()
    validate_config(settings, fail_on_error=True)
    log_config_summary(settings)
except ConfigurationError as e:
    logger.critical(f"Configuration validation failed: {e}")
    logger.critical("Application cannot start due to configuration errors.")
    sys.exit(1)
except Exception as e:
    logger.critical(f"Unexpected error loading configuration: {e}")
    sys.exit(1)

from app.error_handlers import register_exception_handlers
from app.middleware import RequestLoggingMiddleware
from app.routes import gpt_router, health_router
from quota_proxy.proxy import GptProxyService
from quota_proxy.storage import RedisClient
from quota_proxy.text_generation import OpenAIChatCaller
from quota_proxy.usage import (
    InMemoryUsageStore,
    RedisUsageStore,
    StaticTierResolver,
    SupabaseTierResolver,
    TierResolver,
    UsageLedger,
    UsageStore,
)

# =============================================================================
# Sentry Error Tracking Configuration
# =============================================================================

SENSITIVE_BREADCRUMB_KEYS = [
    "password", "api_key", "apikey", "api-key", "secret", "token",
    "authorization", "bearer", "credential", "private", "x-user-id",
]


def filter_sensitive_breadcrumbs(crumb, hint):
    """
    Filter sensitive data from Sentry breadcrumbs.

    Removes authorization headers, identity headers, keys in query
    strings and log messages that mention credentials.
    """
    if crumb.get("category") == "http":
        data = crumb.get("data")
        if isinstance(data, dict):
            headers = data.get("headers")
            if isinstance(headers, dict):
                for key in list(headers.keys()):
                    if any(s in key.lower() for s in SENSITIVE_BREADCRUMB_KEYS):
                        headers[key] = "[FILTERED]"
            if "url" in data:
                for key in SENSITIVE_BREADCRUMB_KEYS:
                    if f"{key}=" in data["url"].lower():
                        pattern = re.compile(f"({re.escape(key)}=)[^&]*", re.IGNORECASE)
                        data["url"] = pattern.sub(r"\1[FILTERED]", data["url"])

    if crumb.get("category") in ("console", "log") and "message" in crumb:
        message = str(crumb["message"]).lower()
        if any(key in message for key in SENSITIVE_BREADCRUMB_KEYS) or "sk-" in message:
            crumb["message"] = "[FILTERED - may contain sensitive data]"

    return crumb


if settings.is_sentry_configured:
    sentry_settings = settings.sentry
    sentry_sdk.init(
        dsn=sentry_settings.sentry_dsn,
        environment=sentry_settings.sentry_environment,
        sample_rate=1.0,
        traces_sample_rate=sentry_settings.sentry_traces_sample_rate,
        integrations=[
            StarletteIntegration(transaction_style="endpoint"),
            FastApiIntegration(transaction_style="endpoint"),
        ],
        before_breadcrumb=filter_sensitive_breadcrumbs,
        send_default_pii=False,
        attach_stacktrace=True,
        server_name=sentry_settings.server_name,
        release=sentry_settings.sentry_release,
    )
    logger.info(f"Sentry initialized for environment: {sentry_settings.sentry_environment}")
else:
    logger.info("Sentry DSN not configured, error tracking disabled")


# =============================================================================
# Service Wiring
# =============================================================================


def build_usage_store(settings: Settings, redis_client: Optional[RedisClient]) -> UsageStore:
    """Create the usage store: Redis when configured, in-memory otherwise."""
    if redis_client is not None:
        return RedisUsageStore(
            redis_client.client,
            key_prefix=settings.usage.usage_key_prefix,
            max_attempts=settings.usage.usage_transaction_max_attempts,
            backoff_seconds=settings.usage.usage_transaction_backoff,
        )

    logger.warning("REDIS_URL not set, using in-memory usage store (single process only)")
    return InMemoryUsageStore()


def build_tier_resolver(settings: Settings) -> TierResolver:
    """Create the tier resolver: Supabase when configured, static list otherwise."""
    db = settings.database
    if db.is_configured:
        return SupabaseTierResolver.from_credentials(
            db.supabase_url,
            db.supabase_service_role_key.get_secret_value(),
            table=db.supabase_users_table,
            pro_column=db.supabase_pro_column,
        )
    return StaticTierResolver(db.pro_user_id_list)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build process-wide services on startup and release them on shutdown."""
    redis_client: Optional[RedisClient] = None
    if settings.is_redis_configured:
        redis_client = RedisClient(settings.redis.redis_url)
        await redis_client.connect()

    usage_store = build_usage_store(settings, redis_client)
    upstream = OpenAIChatCaller.from_settings(settings.llm)

    app.state.redis_client = redis_client
    app.state.usage_store = usage_store
    app.state.proxy_service = GptProxyService(
        ledger=UsageLedger(usage_store),
        tier_resolver=build_tier_resolver(settings),
        upstream=upstream,
        limits=settings.usage,
    )
    logger.info("GPT quota proxy services initialized")

    yield

    try:
        await upstream.close()
    except Exception as e:
        logger.warning("Failed to close LLM client: %s", e)
    try:
        await usage_store.close()
    except Exception as e:
        logger.warning("Failed to close usage store: %s", e)
    if redis_client is not None:
        try:
            await redis_client.close()
        except Exception as e:
            logger.warning("Failed to close Redis client: %s", e)


# =============================================================================
# Initialize FastAPI App
# =============================================================================

app = FastAPI(
    title="GPT Quota Proxy",
    description="""
## Quota-gated GPT proxy

Forwards chat completion requests to OpenAI on behalf of signed-in users
and enforces a monthly request quota per user.

- `POST /gpt/preflight`: current usage, limit and period
- `POST /gpt/ask`: forward `messages` if quota is left

Caller identity is taken from the header set by the authenticating gateway.
""",
    version=__version__,
    lifespan=lifespan,
    openapi_tags=[
        {"name": "health", "description": "Health checks and system status"},
        {"name": "gpt", "description": "Quota-gated chat completion"},
    ],
)

register_exception_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.security.origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

if settings.logging.request_logging_enabled:
    app.add_middleware(RequestLoggingMiddleware)

app.include_router(health_router)
app.include_router(gpt_router)


if __name__ == "__main__":
    reload_enabled = os.environ.get("UVICORN_RELOAD", "false").lower() == "true"
    port = int(os.environ.get("PORT", "8000"))
    uvicorn.run("server:app", host="0.0.0.0", port=port, reload=reload_enabled)
