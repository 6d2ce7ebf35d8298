"""
Tests for the Redis usage store.

The redis.asyncio client is replaced by mocks; the tests check the
WATCH/MULTI/EXEC sequence, conflict retries and error mapping.
"""

import unittest
from unittest.mock import AsyncMock, MagicMock

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import WatchError

from quota_proxy.exceptions import TransactionConflictError, UsageStoreError
from quota_proxy.types.usage import LimitReached, Reserved, UsageRecord
from quota_proxy.usage import RedisUsageStore, UsageLedger
from quota_proxy.usage.redis_store import MAX_BACKOFF_SECONDS


def make_client(stored=None, execute_side_effect=None):
    """Create a mocked redis client whose pipeline returns ``stored`` on GET."""
    pipe = MagicMock()
    pipe.__aenter__ = AsyncMock(return_value=pipe)
    pipe.__aexit__ = AsyncMock(return_value=False)
    pipe.watch = AsyncMock()
    pipe.unwatch = AsyncMock()
    pipe.get = AsyncMock(return_value=stored)
    pipe.multi = MagicMock()
    pipe.set = MagicMock()
    pipe.execute = AsyncMock(side_effect=execute_side_effect, return_value=[True])

    client = MagicMock()
    client.pipeline.return_value = pipe
    client.get = AsyncMock(return_value=stored)
    client.ping = AsyncMock(return_value=True)
    return client, pipe


def increment(current):
    count = current.count if current is not None else 0
    return UsageRecord(period="2024-02", count=count + 1), count + 1


class TestRedisGet(unittest.IsolatedAsyncioTestCase):
    """Tests for plain reads."""

    async def test_missing_key(self):
        client, _ = make_client(stored=None)
        store = RedisUsageStore(client)

        self.assertIsNone(await store.get("u1"))
        client.get.assert_awaited_once_with("gpt_usage:u1")

    async def test_decodes_record(self):
        client, _ = make_client(stored='{"period": "2024-02", "count": 2, "updatedAt": null}')
        store = RedisUsageStore(client, key_prefix="test:")

        record = await store.get("u1")

        self.assertEqual((record.period, record.count), ("2024-02", 2))
        client.get.assert_awaited_once_with("test:u1")

    async def test_corrupt_value(self):
        client, _ = make_client(stored='{"period": "February", "count": -1}')
        store = RedisUsageStore(client)

        with self.assertRaises(UsageStoreError):
            await store.get("u1")

    async def test_connection_error(self):
        client, _ = make_client()
        client.get.side_effect = RedisConnectionError("refused")
        store = RedisUsageStore(client)

        with self.assertRaises(UsageStoreError) as ctx:
            await store.get("u1")
        self.assertIn("get", ctx.exception.internal_message)


class TestRedisTransaction(unittest.IsolatedAsyncioTestCase):
    """Tests for run_transaction."""

    async def test_writes_new_record(self):
        client, pipe = make_client(stored=None)
        store = RedisUsageStore(client)

        result = await store.run_transaction("u1", increment)

        self.assertEqual(result, 1)
        pipe.watch.assert_awaited_once_with("gpt_usage:u1")
        pipe.multi.assert_called_once()
        key, payload = pipe.set.call_args.args
        self.assertEqual(key, "gpt_usage:u1")
        written = UsageRecord.model_validate_json(payload)
        self.assertEqual((written.period, written.count), ("2024-02", 1))
        self.assertIn('"updatedAt"', payload)
        pipe.execute.assert_awaited_once()

    async def test_no_write_unwatches(self):
        client, pipe = make_client(stored='{"period": "2024-02", "count": 3}')
        store = RedisUsageStore(client)

        result = await store.run_transaction("u1", lambda current: (None, "unchanged"))

        self.assertEqual(result, "unchanged")
        pipe.unwatch.assert_awaited_once()
        pipe.multi.assert_not_called()
        pipe.execute.assert_not_awaited()

    async def test_retries_after_watch_conflict(self):
        client, pipe = make_client(
            stored='{"period": "2024-02", "count": 1}',
            execute_side_effect=[WatchError("changed"), [True]],
        )
        store = RedisUsageStore(client, backoff_seconds=0)
        calls = []

        def update(current):
            calls.append(current.count)
            return increment(current)

        result = await store.run_transaction("u1", update)

        self.assertEqual(result, 2)
        self.assertEqual(len(calls), 2)
        self.assertEqual(pipe.watch.await_count, 2)
        self.assertEqual(pipe.execute.await_count, 2)

    async def test_gives_up_after_max_attempts(self):
        client, pipe = make_client(
            stored=None,
            execute_side_effect=WatchError("changed"),
        )
        store = RedisUsageStore(client, max_attempts=3, backoff_seconds=0)

        with self.assertRaises(TransactionConflictError) as ctx:
            await store.run_transaction("u1", increment)

        self.assertEqual(pipe.execute.await_count, 3)
        self.assertIn("3 attempts", ctx.exception.internal_message)
        self.assertEqual(ctx.exception.status_code, 500)

    async def test_redis_error_is_wrapped(self):
        client, pipe = make_client(stored=None)
        pipe.watch.side_effect = RedisConnectionError("refused")
        store = RedisUsageStore(client)

        with self.assertRaises(UsageStoreError) as ctx:
            await store.run_transaction("u1", increment)
        self.assertNotIsInstance(ctx.exception, TransactionConflictError)
        self.assertIn("transaction", ctx.exception.internal_message)

    async def test_ledger_on_redis_store(self):
        client, pipe = make_client(stored='{"period": "2024-01", "count": 3}')
        ledger = UsageLedger(RedisUsageStore(client))

        self.assertEqual(await ledger.reserve_slot("u1", "2024-02", 3), Reserved(new_count=1))

        pipe.get.return_value = '{"period": "2024-02", "count": 3}'
        self.assertEqual(await ledger.reserve_slot("u1", "2024-02", 3), LimitReached(limit=3))


class TestRedisStoreConfig(unittest.IsolatedAsyncioTestCase):
    """Tests for construction, backoff and health."""

    def test_rejects_zero_attempts(self):
        with self.assertRaises(ValueError):
            RedisUsageStore(MagicMock(), max_attempts=0)

    def test_backoff_grows_and_is_capped(self):
        store = RedisUsageStore(MagicMock(), backoff_seconds=0.05)

        first = store._calculate_retry_delay(1)
        third = store._calculate_retry_delay(3)

        self.assertGreaterEqual(first, 0.05)
        self.assertLessEqual(first, 0.0625)
        self.assertGreaterEqual(third, 0.2)
        self.assertLessEqual(store._calculate_retry_delay(20), MAX_BACKOFF_SECONDS)

    async def test_health_check(self):
        client, _ = make_client()
        store = RedisUsageStore(client)
        self.assertEqual((await store.health_check())["status"], "healthy")

        client.ping.side_effect = RedisConnectionError("refused")
        self.assertEqual((await store.health_check())["status"], "unhealthy")


if __name__ == "__main__":
    unittest.main()
