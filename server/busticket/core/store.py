"""Expiring key-value store used as the source of truth for seat holds."""

import logging
from datetime import timedelta
from typing import Optional, Protocol

import redis.asyncio as aioredis
from redis.asyncio import Redis
from redis.exceptions import RedisError

from .config import settings
from .exceptions import UnavailableError

logger = logging.getLogger(__name__)


class ExpiringStore(Protocol):
    """
    Minimal contract the seat hold code needs from a networked store.

    Every single-key operation is atomic on its own; nothing spans keys.
    """

    async def set_with_ttl(self, key: str, value: str, ttl: timedelta) -> None: ...

    async def set_if_absent(self, key: str, value: str, ttl: timedelta) -> bool: ...

    async def get(self, key: str) -> Optional[str]: ...

    async def delete(self, key: str) -> bool: ...

    async def delete_if_equals(self, key: str, value: str) -> bool: ...

    async def ttl(self, key: str) -> Optional[timedelta]: ...

    async def scan_keys(self, pattern: str) -> list[str]: ...

    async def ping(self) -> bool: ...


def _ttl_millis(ttl: timedelta) -> int:
    # Redis rejects non-positive expiries; a hold on its last millisecond still gets one
    return max(1, int(ttl.total_seconds() * 1000))


# Compare-and-delete, so a stale caller never removes an entry another hold now owns
_CAS_DEL_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
  return redis.call('del', KEYS[1])
else
  return 0
end
"""


class RedisExpiringStore:
    """ExpiringStore backed by redis-py's asyncio client."""

    def __init__(self, client: Redis):
        self.client = client

    async def set_with_ttl(self, key: str, value: str, ttl: timedelta) -> None:
        try:
            await self.client.set(key, value, px=_ttl_millis(ttl))
        except RedisError as e:
            raise self._unavailable("set", key, e) from e

    async def set_if_absent(self, key: str, value: str, ttl: timedelta) -> bool:
        try:
            created = await self.client.set(key, value, px=_ttl_millis(ttl), nx=True)
        except RedisError as e:
            raise self._unavailable("set_if_absent", key, e) from e
        return bool(created)

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self.client.get(key)
        except RedisError as e:
            raise self._unavailable("get", key, e) from e

    async def delete(self, key: str) -> bool:
        try:
            return bool(await self.client.delete(key))
        except RedisError as e:
            raise self._unavailable("delete", key, e) from e

    async def delete_if_equals(self, key: str, value: str) -> bool:
        try:
            return bool(await self.client.eval(_CAS_DEL_SCRIPT, 1, key, value))
        except RedisError as e:
            raise self._unavailable("delete_if_equals", key, e) from e

    async def ttl(self, key: str) -> Optional[timedelta]:
        """Remaining lifetime of ``key``; None when the key is missing or never expires."""
        try:
            remaining = await self.client.pttl(key)
        except RedisError as e:
            raise self._unavailable("ttl", key, e) from e
        if remaining is None or remaining < 0:
            return None
        return timedelta(milliseconds=remaining)

    async def scan_keys(self, pattern: str) -> list[str]:
        try:
            return [key async for key in self.client.scan_iter(match=pattern, count=500)]
        except RedisError as e:
            raise self._unavailable("scan", pattern, e) from e

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except (RedisError, OSError):
            return False

    @staticmethod
    def _unavailable(operation: str, key: str, error: Exception) -> UnavailableError:
        logger.error(
            "Expiring store call failed",
            extra={"operation": operation, "key": key, "error": str(error)},
        )
        return UnavailableError(dependency="seat hold store")


class RedisConnection:
    """Owns the process-wide Redis client; opened and closed by the app lifespan."""

    def __init__(self, url: Optional[str] = None):
        self.url = url or settings.redis_url
        self._client: Optional[Redis] = None

    async def connect(self) -> Redis:
        if self._client is None:
            self._client = aioredis.from_url(
                self.url,
                decode_responses=True,
                socket_connect_timeout=settings.redis_socket_timeout_seconds,
                socket_timeout=settings.redis_socket_timeout_seconds,
                socket_keepalive=True,
            )
            logger.info("Connected to Redis", extra={"url": self.url})
        return self._client

    async def disconnect(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("Disconnected from Redis")

    @property
    def client(self) -> Redis:
        if self._client is None:
            raise RuntimeError("Redis client not connected. Call connect() first.")
        return self._client


# Global connection instance
redis_connection = RedisConnection()


def get_store() -> ExpiringStore:
    """FastAPI dependency returning the expiring store for the current process."""
    return RedisExpiringStore(redis_connection.client)
