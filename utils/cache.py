"""
utils/cache.py - Redis cache for directory reads

Graceful degradation: with REDIS_URL unset, or redis unreachable, every
call is a miss and callers read the hosted database directly.

    from utils.cache import cache

    drivers = cache.get("directory:drivers")
    cache.set("directory:drivers", rows, ttl=300)
    cache.delete_pattern("directory:*")
"""

import json
import logging
import time
from typing import Optional, Any

import redis
from config import settings

logger = logging.getLogger(__name__)

_redis_client: Optional[redis.Redis] = None
_redis_last_fail: float = 0.0
_REDIS_RETRY_INTERVAL = 60.0        # seconds before reconnecting after a failure
_redis_warned: bool = False


def _get_redis() -> Optional[redis.Redis]:
    """Redis client, or None when disabled or unreachable."""
    global _redis_client, _redis_last_fail, _redis_warned

    if not settings.REDIS_ENABLED:
        return None

    if _redis_client is not None:
        return _redis_client

    now = time.time()
    if now - _redis_last_fail < _REDIS_RETRY_INTERVAL:
        return None

    try:
        client = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=3,
            socket_timeout=2,
            retry_on_timeout=True,
        )
        client.ping()
        _redis_client = client
        _redis_warned = False
        logger.info("✅ Redis connected, directory cache enabled")
        return _redis_client
    except redis.RedisError as e:
        _redis_last_fail = now
        _redis_client = None
        if not _redis_warned:
            logger.warning(f"⚠️ Redis unavailable – directory reads go straight to the hosted database: {e}")
            _redis_warned = True
        return None


class Cache:
    """JSON values in redis; every failure reads as a miss."""

    def get(self, key: str) -> Optional[Any]:
        r = _get_redis()
        if r is None:
            return None
        try:
            raw = r.get(key)
            return json.loads(raw) if raw is not None else None
        except (redis.RedisError, ValueError) as e:
            logger.debug(f"Cache GET error for {key}: {e}")
            return None

    def set(self, key: str, value: Any, ttl: int = 300) -> bool:
        r = _get_redis()
        if r is None:
            return False
        try:
            r.setex(key, ttl, json.dumps(value, default=str))
            return True
        except (redis.RedisError, TypeError) as e:
            logger.debug(f"Cache SET error for {key}: {e}")
            return False

    def delete_pattern(self, pattern: str) -> int:
        """Delete keys matching a glob pattern with SCAN; returns how many went."""
        r = _get_redis()
        if r is None:
            return 0
        try:
            deleted = 0
            cursor = 0
            while True:
                cursor, keys = r.scan(cursor=cursor, match=pattern, count=100)
                if keys:
                    r.delete(*keys)
                    deleted += len(keys)
                if cursor == 0:
                    break
            return deleted
        except redis.RedisError as e:
            logger.debug(f"Cache DELETE_PATTERN error for {pattern}: {e}")
            return 0

    def ping(self) -> bool:
        r = _get_redis()
        if r is None:
            return False
        try:
            return bool(r.ping())
        except redis.RedisError:
            return False

    @property
    def enabled(self) -> bool:
        return settings.REDIS_ENABLED and _get_redis() is not None


cache = Cache()
