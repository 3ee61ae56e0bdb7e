"""
Redis client for the insights cache.

Computed insights are cached per meter as a JSON string. Every cache
operation is best-effort: connection failures are logged and treated as a
miss, so a Redis outage only costs extra database queries.

CHANGELOG:
- 2026-10-17: Initial creation, per-meter insights cache (STORY-029)
"""

import json
import logging

import redis.asyncio as redis

from gridbill.config import load_settings

logger = logging.getLogger(__name__)


def insights_cache_key(meter_id: str) -> str:
    """Return the cache key holding a meter's insights payload."""
    return f"insights:{meter_id}"


async def get_redis() -> redis.Redis:
    """Create and return an async Redis client from settings.

    Returns:
        redis.Redis: Async Redis client.
    """
    return redis.from_url(load_settings().redis_url)


async def read_cached_insights(meter_id: str) -> list[dict] | None:
    """Return the cached insights list for a meter, or None on miss/failure."""
    key = insights_cache_key(meter_id)
    try:
        client = await get_redis()
        try:
            cached = await client.get(key)
        finally:
            await client.aclose()
    except Exception:
        logger.warning("Redis read failed for key %s, falling back to DB", key, exc_info=True)
        return None
    if cached is None:
        return None
    return json.loads(cached)


async def store_cached_insights(meter_id: str, insights: list[dict], ttl_s: int) -> None:
    """Cache a meter's insights list for ``ttl_s`` seconds."""
    key = insights_cache_key(meter_id)
    try:
        client = await get_redis()
        try:
            await client.set(key, json.dumps(insights), ex=ttl_s)
        finally:
            await client.aclose()
    except Exception:
        logger.warning("Redis write failed for key %s", key, exc_info=True)

