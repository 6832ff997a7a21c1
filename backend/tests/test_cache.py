import json
from unittest.mock import AsyncMock

from traitvault.services.cache import CACHE_TTL_SECONDS, CacheService, _make_cache_key


def test_cache_key_is_stable_and_scoped_per_collection():
    assert _make_cache_key(1, "nfts", limit=10, sort="token_id") == _make_cache_key(
        1, "nfts", sort="token_id", limit=10
    )
    assert _make_cache_key(1, "nfts").startswith("traitvault:collection:1:nfts:")
    assert not _make_cache_key(10, "nfts").startswith("traitvault:collection:1:")


async def test_hit_is_decoded(monkeypatch):
    redis = AsyncMock()
    redis.get.return_value = json.dumps({"total": 3})
    monkeypatch.setattr(CacheService, "_redis", redis)

    assert await CacheService.get(1, "nfts", limit=10) == {"total": 3}

    redis.get.return_value = None
    assert await CacheService.get(1, "nfts", limit=10) is None


async def test_set_registers_key_with_collection(monkeypatch):
    redis = AsyncMock()
    monkeypatch.setattr(CacheService, "_redis", redis)

    await CacheService.set(4, "traits", {"hat": []})

    key = _make_cache_key(4, "traits")
    redis.set.assert_awaited_once_with(key, '{"hat": []}', ex=CACHE_TTL_SECONDS)
    redis.sadd.assert_awaited_once_with("traitvault:collection:4:keys", key)


async def test_invalidate_deletes_indexed_keys(monkeypatch):
    redis = AsyncMock()
    redis.smembers.return_value = {"traitvault:collection:4:nfts:abc"}
    monkeypatch.setattr(CacheService, "_redis", redis)

    assert await CacheService.invalidate_collection(4) == 1

    redis.smembers.assert_awaited_once_with("traitvault:collection:4:keys")
    assert redis.delete.await_args_list[0].args == ("traitvault:collection:4:nfts:abc",)
    assert redis.delete.await_args_list[1].args == ("traitvault:collection:4:keys",)


async def test_redis_errors_are_misses(monkeypatch):
    redis = AsyncMock()
    redis.get.side_effect = ConnectionError("refused")
    redis.set.side_effect = ConnectionError("refused")
    redis.smembers.side_effect = ConnectionError("refused")
    redis.ping.side_effect = ConnectionError("refused")
    monkeypatch.setattr(CacheService, "_redis", redis)

    assert await CacheService.get(1, "traits") is None
    await CacheService.set(1, "traits", {"hat": []})
    assert await CacheService.invalidate_collection(1) == 0
    assert await CacheService.health_check() is False
