"""
Subscription tier lookup.

A user is either privileged ("pro") or standard. The proxy only needs
that flag to pick the monthly limit; the tier itself is managed
elsewhere (billing) and only read here.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Iterable, Optional

from quota_proxy.exceptions import TierLookupError

logger = logging.getLogger(__name__)


class TierResolver(ABC):
    """Abstract base class for tier lookups."""

    @abstractmethod
    async def is_pro(self, user_id: str) -> bool:
        """
        Check whether a user has the privileged limit.

        Args:
            user_id: The user identifier.

        Returns:
            True for privileged users.

        Raises:
            TierLookupError: If the tier source cannot be reached.
        """
        pass


class StaticTierResolver(TierResolver):
    """Tier lookup against a fixed set of privileged user ids."""

    def __init__(self, pro_user_ids: Optional[Iterable[str]] = None):
        self._pro_user_ids = frozenset(pro_user_ids or ())

    async def is_pro(self, user_id: str) -> bool:
        return user_id in self._pro_user_ids


class SupabaseTierResolver(TierResolver):
    """
    Tier lookup against a Supabase users table.

    A user is privileged only when its row exists and the pro column is
    exactly ``true``. Missing rows and null or non-boolean values count
    as standard users.
    """

    def __init__(
        self,
        client,
        table: str = "users",
        pro_column: str = "is_pro",
    ):
        """
        Initialize the resolver.

        Args:
            client: A ``supabase.Client``.
            table: Table holding one row per user, keyed by ``id``.
            pro_column: Boolean column marking privileged users.
        """
        self._client = client
        self._table = table
        self._pro_column = pro_column

    @classmethod
    def from_credentials(cls, url: str, key: str, **kwargs) -> "SupabaseTierResolver":
        """Create a resolver with a new Supabase client."""
        from supabase import create_client

        return cls(create_client(url, key), **kwargs)

    async def is_pro(self, user_id: str) -> bool:
        try:
            # Supabase client is sync, run it in the thread pool
            response = await asyncio.to_thread(
                lambda: self._client.table(self._table).select(
                    self._pro_column
                ).eq("id", user_id).limit(1).execute()
            )
        except Exception as e:
            logger.error(f"Supabase error getting tier for user {user_id[:8]}...: {e}")
            raise TierLookupError(original_error=e) from e

        if not response.data:
            return False
        return response.data[0].get(self._pro_column) is True
