"""
Redis client for caching catalog listings, active promotions and heuristics.
Gracefully degrades if Redis is unavailable: a cache miss is never an error.
"""

import json
import logging
import time
from typing import Any, Optional, Protocol

from storefront.core.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

_redis_client = None


def get_redis_client():
    """
    Lazy-initialize Redis client singleton.
    Returns None if Redis is disabled or unavailable.
    """
    global _redis_client

    if not settings.REDIS_ENABLED:
        return None

    if _redis_client is None:
        try:
            import redis
            _redis_client = redis.from_url(
                settings.REDIS_URL,
                decode_responses=True,
                socket_connect_timeout=2,
            )
            _redis_client.ping()
            logger.info("Redis connected successfully")
        except Exception as e:
            logger.warning(f"Redis unavailable, caching disabled: {e}")
            _redis_client = None

    return _redis_client


def cache_set(key: str, value: Any, ttl: int = 300) -> bool:
    """Cache a value with TTL (default 5 minutes). Returns True if cached."""
    client = get_redis_client()
    if client is None:
        return False
    try:
        client.setex(key, ttl, json.dumps(value, default=str))
        return True
    except Exception as e:
        logger.warning(f"Redis cache_set failed: {e}")
        return False


def cache_get(key: str) -> Optional[Any]:
    """Retrieve a cached value. Returns None if not found or Redis unavailable."""
    client = get_redis_client()
    if client is None:
        return None
    try:
        data = client.get(key)
        return json.loads(data) if data else None
    except Exception as e:
        logger.warning(f"Redis cache_get failed: {e}")
        return None


def cache_delete(key: str) -> bool:
    """Invalidate a cached value. Returns True if the delete reached Redis."""
    client = get_redis_client()
    if client is None:
        return False
    try:
        client.delete(key)
        return True
    except Exception as e:
        logger.warning(f"Redis cache_delete failed: {e}")
        return False


class Cache(Protocol):
    """Best-effort key/value cache injected into the services."""

    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any, ttl: int = 300) -> bool: ...

    def delete(self, key: str) -> bool: ...


class RedisCache:
    """Cache backed by the shared Redis client."""

    def get(self, key: str) -> Optional[Any]:
        return cache_get(key)

    def set(self, key: str, value: Any, ttl: int = 300) -> bool:
        return cache_set(key, value, ttl=ttl)

    def delete(self, key: str) -> bool:
        return cache_delete(key)


class InMemoryCache:
    """
    Process-local cache with TTL, used for local development and tests.
    Values go through JSON like Redis so callers see identical shapes.
    """

    def __init__(self):
        self._store: dict[str, tuple[str, Optional[float]]] = {}

    def get(self, key: str) -> Optional[Any]:
        entry = self._store.get(key)
        if entry is None:
            return None
        data, expires_at = entry
        if expires_at is not None and time.monotonic() >= expires_at:
            del self._store[key]
            return None
        return json.loads(data)

    def set(self, key: str, value: Any, ttl: int = 300) -> bool:
        expires_at = time.monotonic() + ttl if ttl > 0 else None
        self._store[key] = (json.dumps(value, default=str), expires_at)
        return True

    def delete(self, key: str) -> bool:
        self._store.pop(key, None)
        return True

    def clear(self) -> None:
        self._store.clear()

    def keys(self) -> list[str]:
        return list(self._store.keys())


def get_cache() -> Cache:
    """FastAPI dependency returning the process cache."""
    return RedisCache()
