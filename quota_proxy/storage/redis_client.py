"""
Redis client for the usage store.

Wraps connection setup, health checking and shutdown for the
process-wide Redis connection. The instance is created once in the
application lifespan and handed to the usage store explicitly.
"""

import logging
from typing import Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class RedisClient:
    """
    Async Redis client with connection management.

    Owns a connection pool for the lifetime of the process and exposes
    health checking for the health endpoint.
    """

    def __init__(self, redis_url: str) -> None:
        """
        Initialize RedisClient.

        Args:
            redis_url: Redis connection URL.
        """
        self.redis_url = redis_url
        self._client: Optional[redis.Redis] = None
        self._is_available: bool = False
        self._connection_error: Optional[str] = None

    @property
    def client(self) -> redis.Redis:
        """Get the underlying client, creating it on first access."""
        if self._client is None:
            self._client = redis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_connect_timeout=5.0,
                socket_timeout=5.0,
                retry_on_timeout=True,
            )
        return self._client

    async def connect(self) -> bool:
        """
        Verify the connection with a ping.

        The client stays usable when the ping fails so a later request can
        succeed once Redis is reachable again.

        Returns:
            True if Redis answered the ping.
        """
        try:
            await self.client.ping()
            self._is_available = True
            self._connection_error = None
            logger.info("Redis connection established successfully")
        except redis.ConnectionError as e:
            self._connection_error = f"Redis connection failed: {str(e)}"
            logger.warning(self._connection_error)
            self._is_available = False
        except redis.TimeoutError as e:
            self._connection_error = f"Redis connection timeout: {str(e)}"
            logger.warning(self._connection_error)
            self._is_available = False

        return self._is_available

    async def close(self) -> None:
        """Close the Redis connection and cleanup resources."""
        if self._client:
            try:
                await self._client.aclose()
                logger.info("Redis connection closed")
            except Exception as e:
                logger.warning(f"Error closing Redis connection: {str(e)}")
            finally:
                self._client = None
                self._is_available = False

    async def health_check(self) -> dict:
        """
        Check Redis connection health.

        Returns:
            Dictionary with health status information.
        """
        try:
            await self.client.ping()
            info = await self.client.info("server")
            self._is_available = True

            return {
                "status": "healthy",
                "connected": True,
                "redis_version": info.get("redis_version", "unknown"),
                "uptime_seconds": info.get("uptime_in_seconds", 0),
            }
        except redis.ConnectionError as e:
            self._is_available = False
            self._connection_error = str(e)
            return {
                "status": "unhealthy",
                "connected": False,
                "error": f"Connection error: {str(e)}",
            }
        except Exception as e:
            return {
                "status": "error",
                "connected": False,
                "error": str(e),
            }

    @property
    def is_available(self) -> bool:
        """Check if Redis answered the last ping."""
        return self._is_available
