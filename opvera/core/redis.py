"""
Optional async Redis client for the channel history cache.

redis_url empty: no client, chat history is read from the DB only.
Connection failure: no client either, and no new connection attempt for
RECONNECT_AFTER_SECONDS so a dead Redis does not add a timeout to every request.
"""
import logging
import time
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError

from opvera.config import get_settings
from opvera.services.redis_chat_cache import RedisChatCache

logger = logging.getLogger(__name__)

RECONNECT_AFTER_SECONDS = 30.0

_redis_client: Any = None
_retry_at: float = 0.0


def _redacted(url: str) -> str:
    return url.split("@")[-1]


async def get_redis_client() -> Any:
    """Lazy singleton: one async Redis client, or None if disabled or unreachable."""
    global _redis_client, _retry_at
    if _redis_client is not None:
        return _redis_client
    url = (get_settings().redis_url or "").strip()
    if not url or time.monotonic() < _retry_at:
        return None
    client = Redis.from_url(url, decode_responses=True, socket_connect_timeout=2)
    try:
        await client.ping()
    except (RedisError, OSError) as e:
        _retry_at = time.monotonic() + RECONNECT_AFTER_SECONDS
        logger.warning("Redis unavailable at %s, history cache off for %ss: %s", _redacted(url), RECONNECT_AFTER_SECONDS, e)
        await client.aclose()
        return None
    _redis_client = client
    logger.info("Redis history cache connected: %s", _redacted(url))
    return _redis_client


async def redis_status() -> dict:
    """Health summary for /api/ai/health."""
    client = await get_redis_client()
    if client is None:
        return {"redis": "unavailable", "message": "Redis disabled or connection failed"}
    try:
        await client.ping()
    except (RedisError, OSError) as e:
        logger.warning("Redis health ping failed: %s", e)
        return {"redis": "error", "message": str(e)}
    return {"redis": "ok"}


def build_redis_chat_cache(client: Any) -> RedisChatCache:
    settings = get_settings()
    return RedisChatCache(
        client,
        ttl_seconds=settings.chat_cache_ttl_seconds,
        limit=settings.chat_history_max_messages,
    )


async def close_redis() -> None:
    """Shutdown hook: close the shared client."""
    global _redis_client
    if _redis_client is None:
        return
    try:
        await _redis_client.aclose()
    except (RedisError, OSError) as e:
        logger.warning("Redis close error: %s", e)
    _redis_client = None
