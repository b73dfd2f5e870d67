"""
Read-through orchestration: cache first, store on miss, populate, return.
"""

import json
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from fastapi.encoders import jsonable_encoder

from shared.logging import get_logger
from .redis_cache import RedisCache

SOURCE_CACHE = "cache"
SOURCE_STORE = "store"


@dataclass
class CachedValue:
    """A read result tagged with where it came from."""
    value: Any
    source: str

    @property
    def cached(self) -> bool:
        return self.source == SOURCE_CACHE


class ReadThroughCache:
    """Serve reads from Redis, falling back to a loader and populating on miss.

    Values are stored as JSON text. Loader results are normalized with
    ``jsonable_encoder`` before being returned so a hit and a miss hand the
    caller the same shape. ``None`` (not found) is never cached.
    """

    def __init__(self, cache: RedisCache, metrics=None):
        self.cache = cache
        self.metrics = metrics
        self.logger = get_logger("feed.cache.read_through")

    async def fetch(
        self,
        namespace: str,
        key: str,
        ttl_seconds: int,
        loader: Callable[[], Awaitable[Any]],
    ) -> CachedValue:
        raw = await self.cache.get(key)
        if raw is not None:
            try:
                value = json.loads(raw)
            except (TypeError, ValueError):
                self.logger.warning("Discarding undecodable cache entry", key=key)
            else:
                self._count("cache_hits_total", namespace)
                self.logger.debug("Cache hit", namespace=namespace, key=key)
                return CachedValue(value, SOURCE_CACHE)

        self._count("cache_misses_total", namespace)
        value = jsonable_encoder(await loader())

        if value is not None:
            await self.cache.set_with_expiry(key, json.dumps(value), ttl_seconds)

        return CachedValue(value, SOURCE_STORE)

    def _count(self, metric: str, namespace: str):
        if self.metrics:
            self.metrics.increment_counter(metric, namespace=namespace)
