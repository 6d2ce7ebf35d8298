"""
Pydantic models for usage accounting and proxy responses.

This module defines the data models for:
- The per-user usage record held in the usage store
- Reservation outcomes returned by the usage ledger
- Response payloads of the preflight and ask operations
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class UsageRecord(BaseModel):
    """
    Usage of one user within one period.

    ``count`` only means something while ``period`` is the current period.
    A record from an older period counts as zero usage.
    """

    period: str = Field(
        ...,
        pattern=r"^\d{4}-\d{2}$",
        description="UTC calendar month the count belongs to (YYYY-MM)",
    )
    count: int = Field(
        default=0,
        ge=0,
        description="Slots consumed within the period",
    )
    updated_at: Optional[datetime] = Field(
        default=None,
        alias="updatedAt",
        description="Time of the last mutation",
    )

    model_config = ConfigDict(populate_by_name=True)

    def effective_count(self, period: str) -> int:
        """Return the count if the record belongs to ``period``, else 0."""
        if self.period != period:
            return 0
        return self.count


@dataclass(frozen=True)
class Reserved:
    """A slot was reserved; ``new_count`` includes it."""

    new_count: int


@dataclass(frozen=True)
class LimitReached:
    """The user has no slot left in the period; nothing was written."""

    limit: int


ReservationResult = Union[Reserved, LimitReached]


# =============================================================================
# Response models
# =============================================================================


class UsageSummary(BaseModel):
    """Usage figures attached to ask responses."""

    used: int
    limit: int
    is_pro: bool = Field(..., alias="isPro")

    model_config = ConfigDict(populate_by_name=True)


class PeriodUsage(UsageSummary):
    """Usage figures returned by preflight, including the period token."""

    period: str


class PreflightResponse(BaseModel):
    """Response of the read-only usage check."""

    type: Literal["usage"] = "usage"
    usage: PeriodUsage


class LimitReachedResponse(BaseModel):
    """Response of an ask call made with no quota left."""

    type: Literal["limitReached"] = "limitReached"
    usage: UsageSummary


class AutofillResponse(BaseModel):
    """Response of a successful ask call."""

    type: Literal["autofill"] = "autofill"
    content: str
    usage: UsageSummary


AskResponse = Union[AutofillResponse, LimitReachedResponse]
