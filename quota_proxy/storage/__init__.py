"""Storage connections for the GPT quota proxy."""

from .redis_client import RedisClient

__all__ = ["RedisClient"]
