"""Shared types for the GPT quota proxy."""

from .usage import (
    AskResponse,
    AutofillResponse,
    LimitReached,
    LimitReachedResponse,
    PeriodUsage,
    PreflightResponse,
    ReservationResult,
    Reserved,
    UsageRecord,
    UsageSummary,
)

__all__ = [
    "AskResponse",
    "AutofillResponse",
    "LimitReached",
    "LimitReachedResponse",
    "PeriodUsage",
    "PreflightResponse",
    "ReservationResult",
    "Reserved",
    "UsageRecord",
    "UsageSummary",
]
