"""
Valkey/Redis cache (redis.asyncio). Best effort: every backend error is logged and
treated as a miss or a skipped write.
"""
import json
from typing import Any, Awaitable, Callable, Optional

from loguru import logger

from app.core.config import Settings, get_settings

# report TTLs (seconds)
TTL_LONG = 3600
TTL_SHORT = 1800


class CacheClient:
    def __init__(self, redis: Any = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._redis = redis

    def _connection(self) -> Any:
        if self._redis is None:
            import redis.asyncio as aioredis

            self._redis = aioredis.from_url(
                self.settings.valkey_url,
                socket_connect_timeout=self.settings.VALKEY_CONNECT_TIMEOUT,
                socket_timeout=self.settings.VALKEY_CONNECT_TIMEOUT,
                decode_responses=True,
            )
        return self._redis

    async def get_json(self, key: str) -> Optional[Any]:
        try:
            raw = await self._connection().get(key)
        except Exception as e:
            logger.warning(f"cache GET error for '{key}': {e}")
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning(f"cache value for '{key}' is not JSON: {e}")
            return None

    async def set_json(self, key: str, value: Any, ttl: int = TTL_LONG) -> None:
        try:
            await self._connection().set(key, json.dumps(value, default=str), ex=ttl)
        except Exception as e:
            logger.warning(f"cache SET error for '{key}': {e}")

    async def delete(self, key: str) -> None:
        try:
            await self._connection().delete(key)
        except Exception as e:
            logger.warning(f"cache DELETE error for '{key}': {e}")

    async def close(self) -> None:
        if self._redis is not None:
            try:
                await self._redis.aclose()
            except Exception as e:
                logger.debug(f"cache close error: {e}")
            self._redis = None


async def cache_aside(
    cache: CacheClient,
    key: str,
    ttl: int,
    loader: Callable[[], Awaitable[Any]],
) -> tuple[Any, bool]:
    """Return (data, from_cache); on a miss run loader and store its result."""
    cached = await cache.get_json(key)
    if cached is not None:
        logger.debug(f"cache hit: {key}")
        return cached, True
    data = await loader()
    await cache.set_json(key, data, ttl)
    return data, False


_default_cache: Optional[CacheClient] = None


def get_cache() -> CacheClient:
    global _default_cache
    if _default_cache is None:
        _default_cache = CacheClient()
    return _default_cache
