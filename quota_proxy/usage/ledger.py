"""
Usage ledger: the accounting core of the proxy.

The ledger owns the per-user monthly counters:
- read_count: Current usage for display (no atomicity)
- reserve_slot: Atomic check-and-increment before an upstream call
- rollback_slot: Best-effort atomic decrement after an upstream failure

Period rollover is lazy. Every read and write compares the stored period
with the requested one and treats a stale record as zero usage.
"""

import logging
from datetime import datetime
from typing import Callable, Optional, Tuple

from quota_proxy.exceptions import QuotaProxyException, UsageStoreError
from quota_proxy.types.usage import (
    LimitReached,
    ReservationResult,
    Reserved,
    UsageRecord,
)

from .period import utc_now
from .store import UsageStore

logger = logging.getLogger(__name__)


def _short(user_id: str) -> str:
    return f"{user_id[:8]}..."


class UsageLedger:
    """
    Reserve/rollback accounting on top of a transactional usage store.

    The store handle is passed in explicitly so tests can substitute an
    in-memory store.
    """

    def __init__(
        self,
        store: UsageStore,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize the ledger.

        Args:
            store: Transactional store holding usage records.
            clock: Source of ``updatedAt`` timestamps.
        """
        self._store = store
        self._clock = clock

    async def read_count(self, user_id: str, period: str) -> int:
        """
        Get the usage of a user within a period.

        Args:
            user_id: The user identifier.
            period: Period token (``YYYY-MM``).

        Returns:
            Stored count, or 0 if there is no record or it belongs to
            another period.
        """
        record = await self._store.get(user_id)
        if record is None:
            return 0
        return record.effective_count(period)

    async def reserve_slot(self, user_id: str, period: str, limit: int) -> ReservationResult:
        """
        Atomically reserve one usage slot.

        Writing the period together with the new count also performs the
        rollover of a record left over from an earlier period.

        Args:
            user_id: The user identifier.
            period: Period token the slot is taken from.
            limit: Maximum slots allowed in the period.

        Returns:
            Reserved with the count including the new slot, or
            LimitReached if no slot is left (nothing is written).

        Raises:
            UsageStoreError: If the reservation could not be committed.
        """
        now = self._clock()

        def reserve(current: Optional[UsageRecord]) -> Tuple[Optional[UsageRecord], ReservationResult]:
            count = current.effective_count(period) if current is not None else 0
            if count >= limit:
                return None, LimitReached(limit=limit)

            new_count = count + 1
            return UsageRecord(period=period, count=new_count, updated_at=now), Reserved(new_count)

        try:
            result = await self._store.run_transaction(user_id, reserve)
        except QuotaProxyException:
            raise
        except Exception as e:
            raise UsageStoreError(operation="reserve", original_error=e) from e

        if isinstance(result, Reserved):
            logger.info(
                f"Reserved usage slot {result.new_count}/{limit} "
                f"for user {_short(user_id)} in {period}"
            )
        else:
            logger.info(f"Usage limit {limit} reached for user {_short(user_id)} in {period}")

        return result

    async def rollback_slot(self, user_id: str, period: str) -> None:
        """
        Give back a slot taken by reserve_slot, best-effort.

        Nothing is written when the user has no record, the record
        belongs to another period, or its count is already zero. Failures
        are logged and swallowed so they never replace the error that
        triggered the rollback.

        Args:
            user_id: The user identifier.
            period: Period token the slot was reserved in.
        """
        now = self._clock()

        def rollback(current: Optional[UsageRecord]) -> Tuple[Optional[UsageRecord], bool]:
            if current is None or current.period != period or current.count <= 0:
                return None, False
            return current.model_copy(update={"count": current.count - 1, "updated_at": now}), True

        try:
            released = await self._store.run_transaction(user_id, rollback)
        except Exception:
            logger.exception(f"Usage rollback failed for user {_short(user_id)} in {period}")
            return

        if released:
            logger.info(f"Rolled back usage slot for user {_short(user_id)} in {period}")
        else:
            logger.debug(f"Nothing to roll back for user {_short(user_id)} in {period}")
