"""Refresh-token session store on Redis.

Each session is stored under the raw refresh-token string with the
principal id as value. A per-principal set (``sessions:user:<id>``) indexes
the principal's tokens so bulk revocation does not scan the keyspace; the
set is updated in the same MULTI transaction as the session key.
"""

import logging
from typing import List, Optional

from orgauth.core.config import settings
from orgauth.services.cache_service import CacheService, cache_service

logger = logging.getLogger("orgauth.sessions")


def principal_index_key(user_id: int) -> str:
    return f"sessions:user:{user_id}"


class SessionStore:
    """Point lookup, single-use consumption and bulk revocation of sessions.

    All methods let ``redis.RedisError`` propagate so callers can fail closed.
    """

    def __init__(self, cache: CacheService, ttl_seconds: Optional[int] = None):
        self._cache = cache
        self.ttl_seconds = ttl_seconds or settings.REFRESH_TOKEN_TTL_SECONDS

    def _dead_members(self, index_key: str) -> List[str]:
        """Indexed tokens whose session key has already expired."""
        client = self._cache.client
        tokens = list(client.smembers(index_key))
        if not tokens:
            return []
        pipe = client.pipeline(transaction=False)
        for token in tokens:
            pipe.exists(token)
        return [token for token, alive in zip(tokens, pipe.execute()) if not alive]

    def store(self, token: str, user_id: int) -> None:
        """Register an issued refresh token for a principal.

        Index entries left behind by passively expired sessions are dropped
        in the same transaction.
        """
        index_key = principal_index_key(user_id)
        dead = self._dead_members(index_key)
        pipe = self._cache.client.pipeline(transaction=True)
        pipe.set(token, str(user_id), ex=self.ttl_seconds)
        if dead:
            pipe.srem(index_key, *dead)
        pipe.sadd(index_key, token)
        pipe.expire(index_key, self.ttl_seconds)
        pipe.execute()

    def get_principal(self, token: str) -> Optional[str]:
        """Return the principal id stored for a token, or None if absent."""
        return self._cache.client.get(token)

    def consume(self, token: str, user_id: int) -> bool:
        """Delete a token; True only if this call actually removed it.

        Concurrent callers presenting the same token race on DEL; exactly one
        observes a removed count of 1.
        """
        pipe = self._cache.client.pipeline(transaction=True)
        pipe.delete(token)
        pipe.srem(principal_index_key(user_id), token)
        removed, _ = pipe.execute()
        return removed == 1

    def revoke(self, token: str) -> bool:
        """Delete a token regardless of owner; True if a key was removed."""
        client = self._cache.client
        user_id = client.get(token)
        pipe = client.pipeline(transaction=True)
        pipe.delete(token)
        if user_id is not None:
            pipe.srem(principal_index_key(int(user_id)), token)
        results = pipe.execute()
        return results[0] == 1

    def revoke_all_for_principal(self, user_id: int) -> int:
        """Delete every refresh token of a principal. Returns the count removed.

        Only the members read here are removed from the index; a session
        stored concurrently keeps its entry and is caught by the next call.
        """
        client = self._cache.client
        index_key = principal_index_key(user_id)
        tokens = list(client.smembers(index_key))
        if not tokens:
            return 0
        pipe = client.pipeline(transaction=True)
        for token in tokens:
            pipe.delete(token)
        pipe.srem(index_key, *tokens)
        results = pipe.execute()
        removed = sum(results[:-1])
        logger.info("Revoked %d session(s) for user %s", removed, user_id)
        return removed

    def count_for_principal(self, user_id: int) -> int:
        """Number of live sessions; expired index entries are not counted."""
        index_key = principal_index_key(user_id)
        return self._cache.client.scard(index_key) - len(self._dead_members(index_key))


session_store = SessionStore(cache_service)
