"""Redis caching layer.

Used as the fast local mirror of the active recommendation batch. Every
operation swallows Redis errors and reports a miss/failure instead, so an
unavailable Redis only costs a database round trip.
"""

import hashlib
import json
import logging
from typing import Any

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class CacheService:
    """Async Redis cache service."""

    def __init__(self, redis_url: str, client: redis.Redis | None = None):
        self.redis_url = redis_url
        self._redis = client

    async def _get_redis(self) -> redis.Redis:
        """Get or create Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return self._redis

    async def close(self):
        """Close Redis connection."""
        if self._redis:
            await self._redis.aclose()

    async def get(self, key: str) -> Any | None:
        """Get value from cache."""
        try:
            client = await self._get_redis()
            value = await client.get(key)
            if value:
                return json.loads(value)
            return None
        except Exception as e:
            logger.warning(f"Cache get error for {key}: {e}")
            return None

    async def set(
        self,
        key: str,
        value: Any,
        ttl: int | None = None,
    ) -> bool:
        """Set value in cache with optional TTL (seconds)."""
        try:
            client = await self._get_redis()
            serialized = json.dumps(value)
            if ttl:
                await client.setex(key, ttl, serialized)
            else:
                await client.set(key, serialized)
            return True
        except Exception as e:
            logger.warning(f"Cache set error for {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        """Delete key from cache."""
        try:
            client = await self._get_redis()
            await client.delete(key)
            return True
        except Exception as e:
            logger.warning(f"Cache delete error for {key}: {e}")
            return False

    async def flush_pattern(self, pattern: str) -> int:
        """Delete all keys matching a pattern. Returns count of deleted keys."""
        try:
            client = await self._get_redis()
            deleted = 0
            async for key in client.scan_iter(match=pattern, count=500):
                await client.delete(key)
                deleted += 1
            return deleted
        except Exception as e:
            logger.warning(f"Cache flush_pattern error for {pattern}: {e}")
            return 0

    # Key patterns for different data types
    @staticmethod
    def cooldown_key(user_id: int, item_type: str, mode: str) -> str:
        return f"rec:cooldown:{user_id}:{item_type}:{mode}"

    @staticmethod
    def cooldown_pattern(user_id: int, item_type: str | None = None) -> str:
        return f"rec:cooldown:{user_id}:{item_type or '*'}:*"

    @staticmethod
    def token_owner_key(token: str) -> str:
        # Only a digest of the token is ever stored
        return f"auth:owner:{hashlib.sha256(token.encode()).hexdigest()}"
