"""
Caller identity for the GPT quota proxy API.

The proxy does not authenticate users itself. An authenticating gateway
in front of it verifies the caller and forwards the verified user id in
a trusted header (``X-User-Id`` by default). Requests without that header
are rejected as UNAUTHENTICATED.

Security Considerations:
- The header must be stripped from client requests by the gateway
- Dev mode (accept missing header as ``dev_user``) is refused in production
"""

import logging

from fastapi import Depends, Request

from quota_proxy.config import Settings, get_settings
from quota_proxy.exceptions import AuthenticationError
from quota_proxy.utils.logging import set_request_context

logger = logging.getLogger(__name__)

DEV_USER_ID = "dev_user"


async def get_caller_id(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> str:
    """
    Resolve the verified user id of the caller.

    Args:
        request: The FastAPI request object
        settings: Application settings

    Returns:
        The caller's user id

    Raises:
        AuthenticationError: If no identity is attached to the request
    """
    user_id = getattr(request.state, "user_id", None)
    if not user_id:
        user_id = (request.headers.get(settings.security.auth_user_header) or "").strip()

    if not user_id:
        if settings.is_dev_mode:
            logger.debug("Development mode: using dev_user identity")
            user_id = DEV_USER_ID
        else:
            logger.warning(
                f"Missing caller identity on {request.method} {request.url.path} "
                f"from {request.client.host if request.client else 'unknown'}"
            )
            raise AuthenticationError()

    request.state.user_id = user_id
    set_request_context(user_id=user_id)
    return user_id
