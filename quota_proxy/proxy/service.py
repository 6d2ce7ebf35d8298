"""
Quota-gated GPT proxy service.

This module provides the two entry operations of the proxy:
- preflight: Report current usage and limit without changing anything
- ask: Reserve a usage slot, call the upstream LLM, and roll the
  reservation back if the call fails

All cross-request coordination goes through the usage ledger's store;
the service itself keeps no mutable state between calls.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Tuple

from quota_proxy.config import UsageSettings
from quota_proxy.exceptions import (
    AuthenticationError,
    InternalError,
    InvalidArgumentError,
    UpstreamError,
)
from quota_proxy.text_generation import UpstreamCaller
from quota_proxy.types.usage import (
    AskResponse,
    AutofillResponse,
    LimitReached,
    LimitReachedResponse,
    PeriodUsage,
    PreflightResponse,
    UsageSummary,
)
from quota_proxy.usage.ledger import UsageLedger
from quota_proxy.usage.period import current_period, utc_now
from quota_proxy.usage.tiers import TierResolver

logger = logging.getLogger(__name__)


class GptProxyService:
    """Orchestrates tier lookup, usage accounting and the upstream call."""

    def __init__(
        self,
        ledger: UsageLedger,
        tier_resolver: TierResolver,
        upstream: UpstreamCaller,
        limits: UsageSettings,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize the service.

        Args:
            ledger: Usage ledger over the shared store.
            tier_resolver: Source of the privileged flag.
            upstream: LLM caller.
            limits: Monthly limits per tier.
            clock: Time source for the current period.
        """
        self.ledger = ledger
        self.tier_resolver = tier_resolver
        self.upstream = upstream
        self.limits = limits
        self._clock = clock

    async def _resolve_limit(self, user_id: str) -> Tuple[bool, int]:
        is_pro = await self.tier_resolver.is_pro(user_id)
        return is_pro, self.limits.limit_for(is_pro)

    async def preflight(self, user_id: str) -> PreflightResponse:
        """
        Get usage figures for the current period.

        Args:
            user_id: Authenticated caller.

        Returns:
            PreflightResponse with used, limit, tier and period.

        Raises:
            AuthenticationError: If no user id is given.
        """
        if not user_id:
            raise AuthenticationError()

        is_pro, limit = await self._resolve_limit(user_id)
        period = current_period(self._clock())
        used = await self.ledger.read_count(user_id, period)

        return PreflightResponse(
            usage=PeriodUsage(used=used, limit=limit, is_pro=is_pro, period=period),
        )

    async def ask(self, user_id: str, messages: Any) -> AskResponse:
        """
        Forward a chat request if the caller has quota left.

        A slot is reserved before the upstream call. If the call fails,
        is cancelled or times out, the slot is given back before the
        error propagates.

        Args:
            user_id: Authenticated caller.
            messages: Chat messages; must be a list.

        Returns:
            AutofillResponse with the generated content, or
            LimitReachedResponse if the quota is used up.

        Raises:
            AuthenticationError: If no user id is given.
            InvalidArgumentError: If messages is not a list.
            UpstreamError: If the upstream call failed (slot rolled back).
            UsageStoreError: If the reservation could not be made.
        """
        if not user_id:
            raise AuthenticationError()
        if not isinstance(messages, list):
            raise InvalidArgumentError("messages must be an array", field="messages")

        is_pro, limit = await self._resolve_limit(user_id)
        period = current_period(self._clock())

        reservation = await self.ledger.reserve_slot(user_id, period, limit)

        if isinstance(reservation, LimitReached):
            used = await self.ledger.read_count(user_id, period)
            return LimitReachedResponse(
                usage=UsageSummary(used=used, limit=limit, is_pro=is_pro),
            )

        try:
            content = await self.upstream.complete(messages)
        except asyncio.CancelledError:
            logger.warning(f"Upstream call cancelled for user {user_id[:8]}..., rolling back")
            await asyncio.shield(self.ledger.rollback_slot(user_id, period))
            raise
        except UpstreamError as e:
            logger.warning(f"Upstream call failed for user {user_id[:8]}...: {e.message}")
            await self.ledger.rollback_slot(user_id, period)
            raise
        except Exception as e:
            logger.error(f"Unexpected upstream failure for user {user_id[:8]}...: {e}")
            await self.ledger.rollback_slot(user_id, period)
            raise InternalError(str(e) or "LLM call failed", original_error=e) from e

        return AutofillResponse(
            content=content,
            usage=UsageSummary(used=reservation.new_count, limit=limit, is_pro=is_pro),
        )
