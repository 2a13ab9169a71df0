"""
Redis hot layer for travel estimates
Sits in front of the travel_time_cache table; every failure falls through to SQL
"""
import json
import logging
from typing import Any, Optional

from .config import TRAVEL_HOT_CACHE_SECONDS
from .rate_limiter import get_redis_client, redis_configured

logger = logging.getLogger(__name__)


class Cache:
    """Redis cache wrapper with JSON serialization and a key prefix"""

    def __init__(self, prefix: str = "travel", client=None):
        self.prefix = prefix
        self.redis_client = client
        self._unavailable = False

    def _get_client(self):
        """Lazy load Redis client; give up for the process after one failure"""
        if self.redis_client is not None:
            return self.redis_client
        if self._unavailable or not redis_configured():
            return None
        try:
            self.redis_client = get_redis_client()
        except Exception as e:
            logger.warning(f"⚠️ Redis cache unavailable: {e}")
            self._unavailable = True
            return None
        return self.redis_client

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    def get_many(self, keys: list[str]) -> dict[str, Any]:
        """Values found in Redis, keyed by the unprefixed key"""
        client = self._get_client()
        if not client or not keys:
            return {}

        try:
            values = client.mget([self._key(k) for k in keys])
        except Exception as e:
            logger.error(f"❌ Cache get error for {len(keys)} keys: {e}")
            return {}

        found = {}
        for key, value in zip(keys, values):
            if not value:
                continue
            try:
                found[key] = json.loads(value)
            except ValueError:
                logger.warning(f"⚠️ Ignoring unreadable cache entry {self._key(key)}")
        logger.debug(f"✅ Cache HIT {len(found)}/{len(keys)}")
        return found

    def set_many(
        self,
        items: dict[str, Any],
        ttl: Optional[int] = None,
        max_ttls: Optional[dict[str, int]] = None,
    ) -> bool:
        """
        Write values with a shared TTL.
        `max_ttls` caps individual keys, e.g. at the seconds left before a row expires;
        keys with nothing left are skipped.
        """
        client = self._get_client()
        if not client or not items:
            return False

        try:
            pipe = client.pipeline()
            written = 0
            for key, value in items.items():
                seconds = ttl or TRAVEL_HOT_CACHE_SECONDS
                if max_ttls and key in max_ttls:
                    seconds = min(seconds, max_ttls[key])
                if seconds <= 0:
                    continue
                pipe.setex(self._key(key), seconds, json.dumps(value))
                written += 1
            pipe.execute()
            logger.debug(f"✅ Cache SET {written} keys")
            return True
        except Exception as e:
            logger.error(f"❌ Cache set error for {len(items)} keys: {e}")
            return False


# Global cache instance
travel_hot_cache = Cache()
