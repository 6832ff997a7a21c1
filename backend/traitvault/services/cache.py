"""
Redis cache for collection read endpoints.

Each cached response lives under ``traitvault:collection:<id>:<view>:<hash>``
and its key is added to the collection's index set, so invalidating a
collection is one SMEMBERS plus one DELETE. Invalidated after ingestion
touches a collection and after every rarity recomputation. Any Redis
failure is logged and treated as a miss.
"""

import hashlib
import json
import logging
from typing import Any, Optional

import redis.asyncio as redis

from traitvault.core.config import settings

logger = logging.getLogger(__name__)

CACHE_PREFIX = "traitvault:collection:"

# Rarity scheduler normally invalidates well before this
CACHE_TTL_SECONDS = 300


def _index_key(collection_id: int) -> str:
    return f"{CACHE_PREFIX}{collection_id}:keys"


def _make_cache_key(collection_id: int, view: str, **params) -> str:
    raw = json.dumps(params, sort_keys=True, default=str)
    digest = hashlib.md5(raw.encode()).hexdigest()[:12]
    return f"{CACHE_PREFIX}{collection_id}:{view}:{digest}"


class CacheService:
    """Per-collection response cache."""

    _redis: Optional[redis.Redis] = None

    @classmethod
    async def get_redis(cls) -> redis.Redis:
        if cls._redis is None:
            cls._redis = redis.from_url(
                settings.redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
            )
        return cls._redis

    @classmethod
    async def close(cls):
        if cls._redis is not None:
            await cls._redis.close()
            cls._redis = None

    @classmethod
    async def get(cls, collection_id: int, view: str, **params) -> Optional[Any]:
        try:
            r = await cls.get_redis()
            key = _make_cache_key(collection_id, view, **params)
            data = await r.get(key)
        except Exception as e:
            logger.warning("Cache read for collection %s failed: %s", collection_id, e)
            return None

        if data is None:
            return None
        logger.debug("Cache hit: %s", key)
        return json.loads(data)

    @classmethod
    async def set(cls, collection_id: int, view: str, response_data: Any, **params) -> None:
        """Store a JSON-ready response and register its key with the collection."""
        key = _make_cache_key(collection_id, view, **params)
        index = _index_key(collection_id)
        try:
            r = await cls.get_redis()
            await r.set(key, json.dumps(response_data, default=str), ex=CACHE_TTL_SECONDS)
            await r.sadd(index, key)
            await r.expire(index, CACHE_TTL_SECONDS)
        except Exception as e:
            logger.warning("Cache write for collection %s failed: %s", collection_id, e)

    @classmethod
    async def invalidate_collection(cls, collection_id: int) -> int:
        """Drop every cached view of one collection; returns keys removed."""
        index = _index_key(collection_id)
        try:
            r = await cls.get_redis()
            keys = await r.smembers(index)
            if keys:
                await r.delete(*keys)
            await r.delete(index)
        except Exception as e:
            logger.warning("Cache invalidation for collection %s failed: %s", collection_id, e)
            return 0

        logger.info("Cache invalidated for collection %s (%d keys)", collection_id, len(keys))
        return len(keys)

    @classmethod
    async def health_check(cls) -> bool:
        try:
            r = await cls.get_redis()
            await r.ping()
            return True
        except Exception:
            return False
