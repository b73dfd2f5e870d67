"""
Redis client for Feed Service caching.
"""

from typing import Iterable, List, Optional, Union

import redis.asyncio as redis

from shared.logging import get_logger
from shared.errors import ExternalServiceError


class RedisCache:
    """Thin key-value primitives over a shared Redis.

    Reads and writes degrade to a miss or a no-op when Redis is
    unavailable. Scans and deletes raise ``ExternalServiceError`` so the
    invalidation engine can report a failed pass.
    """

    def __init__(self, redis_url: str, socket_timeout: float = 5.0, scan_count: int = 500):
        self.redis_url = redis_url
        self.socket_timeout = socket_timeout
        self.scan_count = scan_count
        self.logger = get_logger("feed.cache.redis")
        self.redis: Optional[redis.Redis] = None

    async def start(self):
        """Start the Redis cache."""
        try:
            self.redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=self.socket_timeout,
                socket_timeout=self.socket_timeout,
                health_check_interval=30
            )

            await self.redis.ping()

            self.logger.info("Redis cache started")

        except Exception as e:
            # Reads fall back to the store, so a cold cache is not fatal at startup
            self.logger.error("Failed to start Redis cache", error=str(e))

    async def stop(self):
        """Stop the Redis cache."""
        if self.redis:
            await self.redis.aclose()
            self.logger.info("Redis cache stopped")

    async def get(self, key: str) -> Optional[str]:
        """Get a cached string; ``None`` on miss or when Redis is unavailable."""
        if self.redis is None:
            return None
        try:
            return await self.redis.get(key)
        except Exception as e:
            self.logger.warning("Cache get failed", key=key, error=str(e))
            return None

    async def set_with_expiry(self, key: str, value: str, ttl_seconds: int) -> bool:
        """Store ``value`` under ``key`` for ``ttl_seconds``."""
        if self.redis is None:
            return False
        try:
            await self.redis.setex(key, ttl_seconds, value)
            self.logger.debug("Cached value", key=key, ttl=ttl_seconds)
            return True
        except Exception as e:
            self.logger.warning("Cache set failed", key=key, error=str(e))
            return False

    async def scan_keys_matching(self, pattern: str) -> List[str]:
        """Enumerate keys matching a glob ``pattern`` with SCAN (non-blocking)."""
        client = self._require_client()
        try:
            return [key async for key in client.scan_iter(match=pattern, count=self.scan_count)]
        except Exception as e:
            raise ExternalServiceError("redis", f"scan failed: {e}", details={"pattern": pattern})

    async def delete(self, keys: Union[str, Iterable[str]]) -> int:
        """Delete one key or a batch of keys in a single command."""
        batch = [keys] if isinstance(keys, str) else list(keys)
        if not batch:
            return 0
        client = self._require_client()
        try:
            return int(await client.delete(*batch))
        except Exception as e:
            raise ExternalServiceError("redis", f"delete failed: {e}", details={"keys": len(batch)})

    def _require_client(self) -> redis.Redis:
        if self.redis is None:
            raise ExternalServiceError("redis", "cache not started")
        return self.redis

    async def health_check(self) -> bool:
        """Check Redis health."""
        try:
            return bool(await self._require_client().ping())
        except Exception:
            return False
