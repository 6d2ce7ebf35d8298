"""Middleware for the GPT quota proxy API."""

from .logging import RequestLoggingMiddleware

__all__ = ["RequestLoggingMiddleware"]
