"""Redis connection shared by the permission cache and the session store."""

import logging
from typing import Optional

import redis

from orgauth.core.config import settings

logger = logging.getLogger("orgauth.cache")


class CacheService:
    """Lazily-built Redis client.

    The socket timeout bounds every call so a stalled Redis aborts the
    request rather than leaking it.
    """

    def __init__(self, client: Optional[redis.Redis] = None):
        self._client = client

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(
                settings.REDIS_URL,
                decode_responses=True,
                max_connections=100,
                socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
                socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT,
            )
        return self._client

    def health_check(self) -> bool:
        """Check if Redis is reachable."""
        try:
            return bool(self.client.ping())
        except redis.RedisError:
            logger.warning("Redis health check failed", exc_info=True)
            return False


cache_service = CacheService()
