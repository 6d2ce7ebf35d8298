"""
FastAPI dependencies for the GPT quota proxy.

Process-wide services are built once in the application lifespan and
kept on ``app.state``. These dependencies hand them to route handlers,
and tests replace them through ``app.dependency_overrides``.
"""

from fastapi import Request

from quota_proxy.exceptions import InternalError
from quota_proxy.proxy import GptProxyService
from quota_proxy.usage import UsageStore


def get_proxy_service(request: Request) -> GptProxyService:
    """Get the proxy service built at startup."""
    service = getattr(request.app.state, "proxy_service", None)
    if service is None:
        raise InternalError(internal_message="Proxy service not initialized")
    return service


def get_usage_store(request: Request) -> UsageStore:
    """Get the usage store built at startup."""
    store = getattr(request.app.state, "usage_store", None)
    if store is None:
        raise InternalError(internal_message="Usage store not initialized")
    return store
