"""Entry operations of the GPT quota proxy."""

from .service import GptProxyService

__all__ = ["GptProxyService"]
