"""API routes for the GPT quota proxy."""

from .gpt import router as gpt_router
from .health import router as health_router

__all__ = ["gpt_router", "health_router"]
