"""
Usage accounting for the GPT quota proxy.

This module provides the monthly period model, the transactional usage
stores and the ledger that reserves and rolls back usage slots.
"""

from .ledger import UsageLedger
from .period import current_period, utc_now
from .redis_store import RedisUsageStore
from .store import InMemoryUsageStore, UsageStore
from .tiers import StaticTierResolver, SupabaseTierResolver, TierResolver

__all__ = [
    "InMemoryUsageStore",
    "RedisUsageStore",
    "StaticTierResolver",
    "SupabaseTierResolver",
    "TierResolver",
    "UsageLedger",
    "UsageStore",
    "current_period",
    "utc_now",
]
