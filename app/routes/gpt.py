"""
Quota-gated GPT endpoints.

- POST /gpt/preflight: current usage, limit and period (read only)
- POST /gpt/ask: forward chat messages if the caller has quota left
"""

import logging
from typing import Union

from fastapi import APIRouter, Depends

from app.auth import get_caller_id
from app.dependencies import get_proxy_service
from app.models import AskRequest
from quota_proxy.proxy import GptProxyService
from quota_proxy.types.usage import (
    AutofillResponse,
    LimitReachedResponse,
    PreflightResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/gpt", tags=["gpt"])


@router.post("/preflight", response_model=PreflightResponse)
async def preflight(
    user_id: str = Depends(get_caller_id),
    service: GptProxyService = Depends(get_proxy_service),
) -> PreflightResponse:
    """
    Get usage for the current period without consuming quota.

    The count may be stale by the time the client calls ask.
    """
    return await service.preflight(user_id)


@router.post(
    "/ask",
    response_model=Union[AutofillResponse, LimitReachedResponse],
)
async def ask(
    body: AskRequest,
    user_id: str = Depends(get_caller_id),
    service: GptProxyService = Depends(get_proxy_service),
) -> Union[AutofillResponse, LimitReachedResponse]:
    """
    Forward chat messages to the upstream LLM.

    Returns ``limitReached`` without calling upstream when the monthly
    quota is used up. A failed upstream call gives the slot back and
    returns INTERNAL.
    """
    return await service.ask(user_id, body.messages)
