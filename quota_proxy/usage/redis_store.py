"""
Redis-backed usage store for distributed deployments.

Records are stored as JSON strings under ``<prefix><user_id>``.
Transactions use optimistic concurrency: the key is WATCHed, the update
is computed from the value read, and the write is sent in MULTI/EXEC.
If another client changed the key in between, EXEC fails with a
WatchError and the transaction is retried with exponential backoff.
"""

import asyncio
import logging
import random
from typing import Optional

from pydantic import ValidationError
from redis.exceptions import RedisError, WatchError

from quota_proxy.exceptions import TransactionConflictError, UsageStoreError
from quota_proxy.types.usage import UsageRecord

from .store import T, TransactionUpdate, UsageStore

logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "gpt_usage:"
DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_BACKOFF_SECONDS = 0.05
MAX_BACKOFF_SECONDS = 1.0


class RedisUsageStore(UsageStore):
    """Usage store on top of a ``redis.asyncio`` client."""

    def __init__(
        self,
        client,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
    ):
        """
        Initialize the Redis store.

        Args:
            client: A ``redis.asyncio.Redis`` instance.
            key_prefix: Prefix for all usage keys.
            max_attempts: Transaction attempts before giving up on conflicts.
            backoff_seconds: Base delay between conflicting attempts.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self._client = client
        self._key_prefix = key_prefix
        self._max_attempts = max_attempts
        self._backoff_seconds = backoff_seconds

    def _get_key(self, user_id: str) -> str:
        """Get the full Redis key with prefix."""
        return f"{self._key_prefix}{user_id}"

    def _decode(self, raw) -> Optional[UsageRecord]:
        if raw is None:
            return None
        try:
            return UsageRecord.model_validate_json(raw)
        except ValidationError as e:
            raise UsageStoreError(operation="decode", original_error=e) from e

    @staticmethod
    def _encode(record: UsageRecord) -> str:
        return record.model_dump_json(by_alias=True)

    def _calculate_retry_delay(self, attempt: int) -> float:
        """
        Calculate retry delay with exponential backoff and jitter.

        Args:
            attempt: Attempt that just conflicted (1-indexed).

        Returns:
            Delay in seconds.
        """
        delay = self._backoff_seconds * (2 ** (attempt - 1))
        jitter = random.uniform(0, delay * 0.25)
        return min(delay + jitter, MAX_BACKOFF_SECONDS)

    async def get(self, user_id: str) -> Optional[UsageRecord]:
        try:
            raw = await self._client.get(self._get_key(user_id))
        except RedisError as e:
            raise UsageStoreError(operation="get", original_error=e) from e
        return self._decode(raw)

    async def run_transaction(self, user_id: str, update: TransactionUpdate) -> T:
        key = self._get_key(user_id)

        try:
            async with self._client.pipeline(transaction=True) as pipe:
                for attempt in range(1, self._max_attempts + 1):
                    try:
                        await pipe.watch(key)
                        current = self._decode(await pipe.get(key))
                        new_record, result = update(current)

                        if new_record is None:
                            await pipe.unwatch()
                            return result

                        pipe.multi()
                        pipe.set(key, self._encode(new_record))
                        await pipe.execute()
                        return result

                    except WatchError:
                        if attempt == self._max_attempts:
                            break
                        delay = self._calculate_retry_delay(attempt)
                        logger.debug(
                            f"Usage transaction conflict on attempt {attempt}, "
                            f"retrying in {delay:.3f}s"
                        )
                        await asyncio.sleep(delay)

        except RedisError as e:
            raise UsageStoreError(operation="transaction", original_error=e) from e

        logger.warning(
            f"Usage transaction gave up after {self._max_attempts} conflicting attempts"
        )
        raise TransactionConflictError(
            internal_message=f"WATCH conflict on {key} after {self._max_attempts} attempts"
        )

    async def health_check(self) -> dict:
        try:
            await self._client.ping()
            return {"status": "healthy", "backend": "redis"}
        except RedisError as e:
            logger.warning(f"Redis usage store health check failed: {e}")
            return {"status": "unhealthy", "backend": "redis", "error": str(e)[:100]}
