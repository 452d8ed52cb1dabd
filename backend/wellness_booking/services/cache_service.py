"""
Redis caching for the session catalogue.

What we cache:
  - The GET /sessions response (template list, JSON-serialized)
  - Key: "sessions:list"

What we never cache:
  - Availability. Remaining seats come straight from the ledger; a stale
    count would send users to checkout for a slot that is already full.

Fail-open: if Redis is disabled, unreachable, or errors mid-request, callers
get a miss and fall through to the database.
"""

import json
from typing import Optional

import redis.asyncio as redis

from wellness_booking.core.config import get_settings
from wellness_booking.core.logging import get_logger
from wellness_booking.core.metrics import record_cache_operation

logger = get_logger(__name__)
settings = get_settings()

SESSION_LIST_KEY = "sessions:list"

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Get or create Redis connection. Returns None if Redis is disabled."""
    global _redis_client

    if not settings.REDIS_ENABLED:
        return None

    if _redis_client is None:
        try:
            _redis_client = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
            )
            await _redis_client.ping()
            logger.info("redis_connected", url=settings.REDIS_URL)
        except Exception as e:
            logger.error("redis_connection_failed", error=str(e))
            _redis_client = None
            return None

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


async def get_cached_sessions() -> Optional[list]:
    client = await get_redis()
    if not client:
        return None

    try:
        data = await client.get(SESSION_LIST_KEY)
    except Exception as e:
        logger.error("cache_get_error", key=SESSION_LIST_KEY, error=str(e))
        return None

    record_cache_operation("get", hit=data is not None)
    if data is None:
        return None
    return json.loads(data)


async def set_cached_sessions(data: list) -> None:
    client = await get_redis()
    if not client:
        return

    try:
        await client.setex(SESSION_LIST_KEY, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        logger.debug("cache_set", key=SESSION_LIST_KEY, ttl=settings.REDIS_CACHE_TTL)
    except Exception as e:
        logger.error("cache_set_error", key=SESSION_LIST_KEY, error=str(e))


async def get_cache_stats() -> dict:
    """Get Redis cache statistics for the health endpoint."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
        hits = info.get("keyspace_hits", 0)
        misses = info.get("keyspace_misses", 0)
        return {
            "status": "connected",
            "hits": hits,
            "misses": misses,
            "hit_rate": round(hits / max(hits + misses, 1) * 100, 2),
        }
    except Exception as e:
        return {"status": "error", "error": str(e)}
