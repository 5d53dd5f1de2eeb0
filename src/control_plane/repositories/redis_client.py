import json
from typing import Any

import redis.asyncio as redis

from control_plane.configs.logging_config import get_logger

log = get_logger(__name__)


class RedisClient:
    """
    Simple Redis client wrapper, connected once at startup.
    """

    client: redis.Redis = None

    async def connect(self, url: str) -> None:
        try:
            log.info("redis.connect start")
            self.client = redis.from_url(url, decode_responses=True)
            await self.client.ping()
            log.info("redis.connect ok")
        except Exception as e:
            log.error(f"Error connecting to Redis: {e}")
            raise

    async def ping(self) -> bool:
        if self.client is None:
            return False
        return bool(await self.client.ping())

    async def close(self) -> None:
        if self.client:
            await self.client.aclose()
            self.client = None


redis_client = RedisClient()


class HostnameCache:
    """
    Hostname -> tenant resolution cache.

    Only positive resolutions are stored; a cache failure degrades to a store
    read instead of failing the request.
    """

    def __init__(self, client: redis.Redis, ttl_seconds: int):
        self._client = client
        self._ttl = ttl_seconds

    @staticmethod
    def _key(hostname: str) -> str:
        return f"cp:hostname:{hostname.lower()}"

    async def get(self, hostname: str) -> dict[str, Any] | None:
        try:
            raw = await self._client.get(self._key(hostname))
        except redis.RedisError as e:
            log.warning("cache.hostname.get_failed hostname=%s error=%s", hostname, str(e))
            return None
        return json.loads(raw) if raw else None

    async def set(self, hostname: str, value: dict[str, Any]) -> None:
        try:
            await self._client.setex(self._key(hostname), self._ttl, json.dumps(value))
        except redis.RedisError as e:
            log.warning("cache.hostname.set_failed hostname=%s error=%s", hostname, str(e))

    async def invalidate(self, hostname: str) -> None:
        try:
            await self._client.delete(self._key(hostname))
        except redis.RedisError as e:
            log.warning("cache.hostname.invalidate_failed hostname=%s error=%s", hostname, str(e))
