"""
Health check and root endpoints.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request

from app.dependencies import get_usage_store
from quota_proxy import __version__
from quota_proxy.config import get_settings
from quota_proxy.usage import UsageStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/")
async def root() -> Dict[str, Any]:
    """Service banner."""
    return {"service": "gpt-quota-proxy", "version": __version__}


@router.get("/health")
async def health(
    request: Request,
    store: UsageStore = Depends(get_usage_store),
) -> Dict[str, Any]:
    """
    Liveness and usage store status.

    Reports ``degraded`` when the usage store does not answer; ask calls
    fail closed in that state.
    """
    settings = get_settings()
    services: Dict[str, Any] = {"usage_store": await store.health_check()}

    redis_client = getattr(request.app.state, "redis_client", None)
    if redis_client is not None:
        services["redis"] = await redis_client.health_check()

    healthy = all(s.get("status") == "healthy" for s in services.values())
    if not healthy:
        logger.warning(f"Health check degraded: {services}")

    return {
        "status": "healthy" if healthy else "degraded",
        "version": __version__,
        "environment": settings.security.environment,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "services": services,
    }
