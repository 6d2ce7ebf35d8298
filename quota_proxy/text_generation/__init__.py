"""Upstream LLM calls for the GPT quota proxy."""

from .core import Messages, OpenAIChatCaller, UpstreamCaller

__all__ = [
    "Messages",
    "OpenAIChatCaller",
    "UpstreamCaller",
]
