"""
Redis cache layer — async Redis client with typed helpers.

Provides:
    • Lazy async client (disabled when REDIS_URL is unset)
    • JSON serialisation cache helpers
    • TTL-aware get/set and invalidation

Every helper degrades to a cache miss on error: the alert store stays
the source of truth.

Usage:
    from backend.app.core.cache import cache_get, cache_set, cache_delete

    await cache_set("alerts:stats", stats.to_dict(), ttl=60)
    cached = await cache_get("alerts:stats")
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from backend.app.core.config import settings

logger = logging.getLogger(__name__)

# Lazy Redis client, initialised on first use
_redis_client = None


async def _get_redis():
    """Get or create async Redis client."""
    global _redis_client
    if not settings.cache_enabled:
        return None
    if _redis_client is None:
        try:
            import redis.asyncio as aioredis
            _redis_client = aioredis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
            )
            logger.info("Redis connected: %s", settings.REDIS_URL)
        except Exception as e:
            logger.warning("Redis unavailable: %s — caching disabled", e)
            return None
    return _redis_client


async def cache_get(key: str) -> Optional[Any]:
    """Get a cached value by key. Returns None on miss or error."""
    client = await _get_redis()
    if not client:
        return None
    try:
        raw = await client.get(key)
        if raw is not None:
            return json.loads(raw)
    except Exception as e:
        logger.warning("Cache GET error for %s: %s", key, e)
    return None


async def cache_set(key: str, value: Any, ttl: Optional[int] = None) -> bool:
    """Set a cached value with optional TTL (seconds)."""
    client = await _get_redis()
    if not client:
        return False
    try:
        serialised = json.dumps(value, default=str)
        await client.set(key, serialised, ex=ttl or settings.REDIS_CACHE_TTL)
        return True
    except Exception as e:
        logger.warning("Cache SET error for %s: %s", key, e)
        return False


async def cache_delete(key: str) -> bool:
    """Delete a cache key."""
    client = await _get_redis()
    if not client:
        return False
    try:
        await client.delete(key)
        return True
    except Exception as e:
        logger.warning("Cache DELETE error for %s: %s", key, e)
        return False


async def ping_redis() -> Optional[bool]:
    """True/False for reachability, None when caching is disabled."""
    client = await _get_redis()
    if not client:
        return None
    try:
        return bool(await client.ping())
    except Exception as e:
        logger.warning("Redis PING failed: %s", e)
        return False


async def close_redis() -> None:
    """Close Redis connection."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("Redis connection closed")
