"""
Time-boxed cache for external catalog data (weather, event windows).

Entries are keyed by namespace and fetch date and expire after a fixed TTL.
Storage is in-process by default; when a Redis URL is configured entries
live in Redis so the web process and scheduled workers share them.
"""

import json
import logging
import time
from datetime import date
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class CatalogCache:
    """JSON value cache with a per-entry time-to-live."""

    def __init__(self, ttl_seconds: int = 3600, redis_url: Optional[str] = None):
        """Initialize the cache.

        Args:
            ttl_seconds: Lifetime of each entry; 0 disables caching
            redis_url: Use Redis for storage when given
        """
        self.ttl_seconds = ttl_seconds
        self._memory: Dict[str, Tuple[float, str]] = {}
        self._redis = redis.from_url(redis_url) if redis_url else None

    @classmethod
    def from_settings(cls, settings) -> "CatalogCache":
        return cls(ttl_seconds=settings.catalog_cache_ttl, redis_url=settings.redis_url)

    @staticmethod
    def _key(namespace: str, fetch_date: date) -> str:
        return f"scoop:catalog:{namespace}:{fetch_date.isoformat()}"

    async def get(self, namespace: str, fetch_date: date) -> Optional[Any]:
        """Return the cached value or None when missing or expired."""
        if self.ttl_seconds <= 0:
            return None
        key = self._key(namespace, fetch_date)

        if self._redis is not None:
            try:
                raw = await self._redis.get(key)
            except redis.RedisError as e:
                logger.warning(f"Redis cache read failed for {key}: {e}")
                return None
            return json.loads(raw) if raw else None

        entry = self._memory.get(key)
        if entry is None:
            return None
        expires_at, raw = entry
        if time.monotonic() >= expires_at:
            del self._memory[key]
            return None
        return json.loads(raw)

    async def set(self, namespace: str, fetch_date: date, value: Any) -> None:
        if self.ttl_seconds <= 0:
            return
        key = self._key(namespace, fetch_date)
        raw = json.dumps(value, default=str)

        if self._redis is not None:
            try:
                await self._redis.set(key, raw, ex=self.ttl_seconds)
            except redis.RedisError as e:
                logger.warning(f"Redis cache write failed for {key}: {e}")
            return

        self._memory[key] = (time.monotonic() + self.ttl_seconds, raw)

    async def get_or_fetch(
        self,
        namespace: str,
        fetch_date: date,
        fetcher: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Return the cached value, calling ``fetcher`` on a miss.

        Args:
            namespace: Catalog name, e.g. ``weather``
            fetch_date: Date the data is for
            fetcher: Coroutine factory producing JSON-serializable data

        Returns:
            Cached or freshly fetched value
        """
        cached = await self.get(namespace, fetch_date)
        if cached is not None:
            logger.debug(f"Catalog cache hit: {namespace} {fetch_date}")
            return cached

        value = await fetcher()
        if value is not None:
            await self.set(namespace, fetch_date, value)
        return value

    def clear(self) -> None:
        self._memory.clear()
