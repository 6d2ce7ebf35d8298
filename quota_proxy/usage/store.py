"""
Transactional storage for usage records.

A store holds one UsageRecord per user and supports atomic
read-modify-write through ``run_transaction``. The update function
receives the current record (or None) and returns the record to write
(or None to leave the store untouched) together with a result value.
Stores with optimistic concurrency may call the update function more
than once, so it must not have side effects.
"""

import copy
import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional, Tuple, TypeVar

from quota_proxy.types.usage import UsageRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")

TransactionUpdate = Callable[[Optional[UsageRecord]], Tuple[Optional[UsageRecord], T]]


class UsageStore(ABC):
    """Abstract base class for usage record storage backends."""

    @abstractmethod
    async def get(self, user_id: str) -> Optional[UsageRecord]:
        """
        Read the usage record for a user outside of any transaction.

        Args:
            user_id: The user identifier.

        Returns:
            The stored record, or None if the user has none.
        """
        pass

    @abstractmethod
    async def run_transaction(self, user_id: str, update: TransactionUpdate) -> T:
        """
        Atomically read, transform and write the record for a user.

        Args:
            user_id: The user identifier.
            update: Pure function from the current record to
                ``(record_to_write_or_None, result)``.

        Returns:
            The result produced by the committed run of ``update``.

        Raises:
            UsageStoreError: If the transaction could not be committed.
        """
        pass

    async def health_check(self) -> dict:
        """Report backend status for the health endpoint."""
        return {"status": "healthy", "backend": self.__class__.__name__}

    async def close(self) -> None:
        """Release backend resources."""
        return None


class InMemoryUsageStore(UsageStore):
    """
    Thread-safe in-memory usage store.

    Transactions run under a lock, so they never conflict. Suitable for
    development and tests; it cannot coordinate several processes.
    """

    def __init__(self, records: Optional[Dict[str, UsageRecord]] = None):
        self._records: Dict[str, UsageRecord] = dict(records or {})
        self._lock = threading.RLock()
        self.write_count = 0

    async def get(self, user_id: str) -> Optional[UsageRecord]:
        with self._lock:
            record = self._records.get(user_id)
            return copy.deepcopy(record) if record is not None else None

    async def run_transaction(self, user_id: str, update: TransactionUpdate) -> T:
        with self._lock:
            current = self._records.get(user_id)
            new_record, result = update(copy.deepcopy(current) if current is not None else None)
            if new_record is not None:
                self._records[user_id] = new_record
                self.write_count += 1
            return result

    def put(self, user_id: str, record: UsageRecord) -> None:
        """Seed a record directly, bypassing transactions."""
        with self._lock:
            self._records[user_id] = record
