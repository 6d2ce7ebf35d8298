"""Utility modules for the GPT quota proxy."""

from .logging import (
    Timer,
    clear_request_context,
    get_request_id,
    redact_sensitive_data,
    set_request_context,
    setup_logging,
)

__all__ = [
    "Timer",
    "clear_request_context",
    "get_request_id",
    "redact_sensitive_data",
    "set_request_context",
    "setup_logging",
]
