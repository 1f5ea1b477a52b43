"""
Redis cache for channel history. Cache-Aside: Redis is read-through cache only.
All Redis errors are handled internally; never raise to caller. System works if Redis is down.
Key: channel:{channel_id}:history, a Redis LIST of JSON strings. Last N items, TTL 1 day.
"""
import json
import logging
from typing import Any

from redis.exceptions import RedisError

from opvera.config import get_settings

logger = logging.getLogger(__name__)

CHANNEL_KEY_PREFIX = "channel:"
DEFAULT_LIMIT = 20


def _key(channel_id: str) -> str:
    return f"{CHANNEL_KEY_PREFIX}{channel_id}:history"


def _serialize(message: dict) -> str:
    return json.dumps({"role": message["role"], "content": message.get("content", "")})


def _deserialize(s: str) -> dict | None:
    try:
        data = json.loads(s)
        if isinstance(data, dict) and "role" in data:
            return {"role": data["role"], "content": data.get("content", "")}
    except (json.JSONDecodeError, TypeError):
        pass
    return None


class RedisChatCache:
    """
    Async Redis cache for channel history. LIST-based: RPUSH, LTRIM, EXPIRE.
    Methods log Redis errors and return None / no-op so the DB path takes over.
    """

    def __init__(self, redis_client: Any, ttl_seconds: int | None = None, limit: int | None = None):
        settings = get_settings()
        self._redis = redis_client
        self._ttl = ttl_seconds or settings.chat_cache_ttl_seconds
        self._limit = limit or settings.chat_history_max_messages or DEFAULT_LIMIT

    async def get_last_messages(self, channel_id: str) -> list[dict] | None:
        """LRANGE -limit -1; None on miss or error (caller should hit DB)."""
        if not self._redis:
            return None
        try:
            raw_list = await self._redis.lrange(_key(channel_id), -self._limit, -1)
            if not raw_list:
                return None
            out = []
            for item in raw_list:
                s = item.decode() if isinstance(item, bytes) else item
                m = _deserialize(s)
                if m:
                    out.append(m)
            return out or None
        except (RedisError, OSError) as e:
            logger.warning("Redis history get failed for channel %s: %s", channel_id, e)
            return None

    async def append_message(self, channel_id: str, message: dict) -> None:
        """After DB save: RPUSH, LTRIM to last N, EXPIRE."""
        if not self._redis:
            return
        try:
            key = _key(channel_id)
            await self._redis.rpush(key, _serialize(message))
            await self._redis.ltrim(key, -self._limit, -1)
            await self._redis.expire(key, self._ttl)
        except (RedisError, OSError) as e:
            logger.warning("Redis history append failed for channel %s: %s", channel_id, e)

    async def warm(self, channel_id: str, messages: list[dict]) -> None:
        """Replace the list with the last N messages loaded from DB."""
        if not self._redis or not messages:
            return
        try:
            key = _key(channel_id)
            pipe = self._redis.pipeline()
            pipe.delete(key)
            for m in messages:
                pipe.rpush(key, _serialize(m))
            pipe.ltrim(key, -self._limit, -1)
            pipe.expire(key, self._ttl)
            await pipe.execute()
        except (RedisError, OSError) as e:
            logger.warning("Redis history warm failed for channel %s: %s", channel_id, e)
