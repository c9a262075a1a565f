"""
Distributed Cache Service using Redis

Provides a shared cache layer for all worker machines so that enrichment
feeds (KEV catalog, EPSS scores) are not refetched by every job.

Key features:
- Automatic JSON serialization/deserialization
- TTL-based expiration
- Graceful fallback when Redis is unavailable
- Batch operations for efficiency
- Cache key prefixing for namespace isolation
"""

import asyncio
import json
import logging
from typing import Any, Callable, Dict, List, Optional

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from depextract.core.config import settings

logger = logging.getLogger(__name__)


class CacheService:
    """
    Distributed cache service using Redis.

    Every method degrades to a cache miss when Redis is unreachable or the
    cache is disabled by configuration.
    """

    def __init__(self, enabled: Optional[bool] = None):
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[redis.Redis] = None
        self._available: bool = (
            settings.ENRICHMENT_CACHE_ENABLED if enabled is None else enabled
        )
        self._lock: asyncio.Lock = asyncio.Lock()

    @property
    def available(self) -> bool:
        return self._available

    async def get_client(self) -> redis.Redis:
        """Get or create Redis client with connection pooling."""
        if self._client is not None and self._pool is not None:
            return self._client

        async with self._lock:
            # Double-check after acquiring lock
            if self._client is not None and self._pool is not None:
                return self._client

            try:
                self._pool = ConnectionPool.from_url(
                    settings.REDIS_URL,
                    encoding="utf-8",
                    decode_responses=True,
                    max_connections=20,
                )
                self._client = redis.Redis(connection_pool=self._pool)
                await self._client.ping()
                self._available = True
                logger.info("Redis cache connection established")
            except Exception as e:
                logger.warning(f"Redis connection failed: {e}. Cache will be disabled.")
                self._available = False
                self._client = None
                self._pool = None
                raise
        return self._client

    async def close(self) -> None:
        """Close Redis connection pool."""
        if self._client:
            await self._client.aclose()
            self._client = None
        if self._pool:
            await self._pool.disconnect()
            self._pool = None

    def _make_key(self, key: str) -> str:
        """Create prefixed cache key."""
        return f"{settings.CACHE_PREFIX}{key}"

    async def get(self, key: str) -> Optional[Any]:
        """Get a JSON value from cache, or None if missing/unavailable."""
        if not self._available:
            return None

        try:
            client = await self.get_client()
            data = await client.get(self._make_key(key))
            if data:
                return json.loads(data)
            return None
        except redis.ConnectionError:
            logger.warning("Redis connection lost, disabling cache temporarily")
            self._available = False
            return None
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to decode cached value for {key}: {e}")
            return None
        except Exception as e:
            logger.warning(f"Cache get error for {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        """Set a JSON value in cache with TTL."""
        if not self._available:
            return False

        if ttl_seconds is None:
            ttl_seconds = settings.CACHE_DEFAULT_TTL_HOURS * 3600

        try:
            client = await self.get_client()
            serialized = json.dumps(value, default=str)
            await client.setex(self._make_key(key), ttl_seconds, serialized)
            return True
        except redis.ConnectionError:
            logger.warning("Redis connection lost, disabling cache temporarily")
            self._available = False
            return False
        except (TypeError, ValueError) as e:
            logger.warning(f"Failed to serialize value for {key}: {e}")
            return False
        except Exception as e:
            logger.warning(f"Cache set error for {key}: {e}")
            return False

    async def mget(self, keys: List[str]) -> Dict[str, Any]:
        """Batch get multiple keys. Missing keys map to None."""
        if not self._available or not keys:
            return {k: None for k in keys}

        try:
            client = await self.get_client()
            values = await client.mget([self._make_key(k) for k in keys])

            result: Dict[str, Any] = {}
            for key, value in zip(keys, values):
                if value:
                    try:
                        result[key] = json.loads(value)
                    except json.JSONDecodeError:
                        result[key] = None
                else:
                    result[key] = None
            return result
        except redis.ConnectionError:
            self._available = False
            return {k: None for k in keys}
        except Exception as e:
            logger.warning(f"Cache mget error: {e}")
            return {k: None for k in keys}

    async def mset(self, mapping: Dict[str, Any], ttl_seconds: Optional[int] = None) -> bool:
        """Batch set multiple key-value pairs with a shared TTL."""
        if not self._available or not mapping:
            return False

        if ttl_seconds is None:
            ttl_seconds = settings.CACHE_DEFAULT_TTL_HOURS * 3600

        try:
            client = await self.get_client()
            pipe = client.pipeline()
            for key, value in mapping.items():
                pipe.setex(self._make_key(key), ttl_seconds, json.dumps(value, default=str))
            await pipe.execute()
            return True
        except Exception as e:
            logger.warning(f"Cache mset error: {e}")
            return False

    async def get_or_fetch(
        self,
        key: str,
        fetch_fn: Callable[[], Any],
        ttl_seconds: Optional[int] = None,
    ) -> Any:
        """
        Get from cache or fetch and cache if missing.

        A None result from fetch_fn is returned but never cached.
        """
        cached = await self.get(key)
        if cached is not None:
            return cached

        data = await fetch_fn()
        if data is not None:
            await self.set(key, data, ttl_seconds)
        return data


# Global cache service instance
cache_service = CacheService()


class CacheTTL:
    """Standard TTL values for cached enrichment data (seconds)."""

    KEV_CATALOG = 24 * 3600  # catalog updates daily
    EPSS_SCORE = 24 * 3600  # EPSS updates daily


class CacheKeys:
    """Cache key builders for consistent key naming."""

    @staticmethod
    def kev_catalog() -> str:
        return "kev:catalog"

    @staticmethod
    def epss(cve_id: str) -> str:
        return f"epss:{cve_id}"
