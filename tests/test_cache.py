"""
Valkey cache client is best effort
"""
import json

from app.services.cache import CacheClient, cache_aside


class FakeRedis:
    def __init__(self):
        self.data = {}
        self.expiry = {}
        self.closed = False

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self.data[key] = value
        self.expiry[key] = ex

    async def delete(self, key):
        self.data.pop(key, None)

    async def aclose(self):
        self.closed = True


class DownRedis:
    async def get(self, key):
        raise ConnectionError("valkey unreachable")

    async def set(self, key, value, ex=None):
        raise ConnectionError("valkey unreachable")

    async def delete(self, key):
        raise ConnectionError("valkey unreachable")

    async def aclose(self):
        raise ConnectionError("valkey unreachable")


async def test_json_round_trip_with_ttl(settings):
    redis = FakeRedis()
    cache = CacheClient(redis=redis, settings=settings)
    await cache.set_json("k", {"a": 1}, ttl=60)
    assert json.loads(redis.data["k"]) == {"a": 1}
    assert redis.expiry["k"] == 60
    assert await cache.get_json("k") == {"a": 1}

    await cache.delete("k")
    assert await cache.get_json("k") is None


async def test_non_json_value_is_a_miss(settings):
    redis = FakeRedis()
    redis.data["k"] = "{not json"
    assert await CacheClient(redis=redis, settings=settings).get_json("k") is None


async def test_backend_errors_are_swallowed(settings):
    cache = CacheClient(redis=DownRedis(), settings=settings)
    assert await cache.get_json("k") is None
    await cache.set_json("k", [1, 2])
    await cache.delete("k")
    await cache.close()


async def test_cache_aside_loads_once(settings):
    cache = CacheClient(redis=FakeRedis(), settings=settings)
    loads = []

    async def loader():
        loads.append(1)
        return {"total": 5}

    first, cached_first = await cache_aside(cache, "report", 30, loader)
    second, cached_second = await cache_aside(cache, "report", 30, loader)

    assert first == second == {"total": 5}
    assert (cached_first, cached_second) == (False, True)
    assert len(loads) == 1


async def test_cache_aside_still_serves_when_cache_is_down(settings):
    cache = CacheClient(redis=DownRedis(), settings=settings)

    async def loader():
        return [1]

    assert await cache_aside(cache, "report", 30, loader) == ([1], False)
