"""Request models for the GPT quota proxy API."""

from .requests import AskRequest

__all__ = ["AskRequest"]
