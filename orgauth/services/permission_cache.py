"""Redis-backed cache of resolved role permission sets."""

import json
import logging
from typing import List, Optional

from orgauth.core.config import settings
from orgauth.services.cache_service import CacheService, cache_service

logger = logging.getLogger("orgauth.permission_cache")


def role_permissions_key(role_id: int) -> str:
    """Deterministic cache key for a role's permission set."""
    return f"permissions:role:{role_id}"


class PermissionCache:
    """Get/set/invalidate for ``permissions:role:<id>`` entries.

    ``get`` and ``set`` let ``redis.RedisError`` propagate; the
    authorization engine decides how to degrade.
    """

    def __init__(self, cache: CacheService, ttl_seconds: Optional[int] = None):
        self._cache = cache
        self.ttl_seconds = ttl_seconds or settings.PERMISSION_CACHE_TTL_SECONDS

    def get(self, role_id: int) -> Optional[List[str]]:
        """Return the cached permission names, or None on a miss.

        An entry that does not decode to a list of strings counts as a miss.
        """
        raw = self._cache.client.get(role_permissions_key(role_id))
        if raw is None:
            return None
        try:
            value = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Discarding undecodable permission cache entry for role %s", role_id)
            return None
        if not isinstance(value, list) or not all(isinstance(p, str) for p in value):
            logger.warning("Discarding malformed permission cache entry for role %s", role_id)
            return None
        return value

    def set(self, role_id: int, permissions: List[str]) -> None:
        """Store the permission names with the configured TTL."""
        self._cache.client.set(
            role_permissions_key(role_id),
            json.dumps(list(permissions)),
            ex=self.ttl_seconds,
        )

    def invalidate(self, role_id: int) -> None:
        """Delete the cached entry for a role."""
        key = role_permissions_key(role_id)
        logger.info("Invalidating permissions cache key %s", key)
        self._cache.client.delete(key)


permission_cache = PermissionCache(cache_service)
