"""Cache backend contract and its Redis implementation.

Everything the rate limiter, the token blacklist and the housekeeping sweep
persist goes through ``CacheBackend``. Values are plain strings; TTLs are
seconds (float) and ``None``/``0`` means "no expiry".
"""

from contextlib import contextmanager
from typing import Iterator, Protocol, runtime_checkable

import redis.asyncio as redis
from redis.exceptions import RedisError

from src.utils.logger import get_logger

logger = get_logger(__name__)


class CacheBackendError(Exception):
    """Base error for cache backend operations."""


class CacheBackendUnavailableError(CacheBackendError):
    """Backend missing, unreachable, or timed out."""


class CacheKeyNotFoundError(CacheBackendError):
    """Key is absent (or already expired)."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Key not found: {key}")


@runtime_checkable
class CacheBackend(Protocol):
    """String key-value store with per-key TTL."""

    async def get(self, key: str) -> str: ...

    async def set(self, key: str, value: str, ttl: float | None = None) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def keys(self, pattern: str) -> list[str]: ...

    async def ttl(self, key: str) -> float | None: ...

    async def ping(self) -> bool: ...


@contextmanager
def _translate_errors(operation: str, key: str) -> Iterator[None]:
    try:
        yield
    except (RedisError, OSError) as e:
        # redis TimeoutError/ConnectionError and socket errors alike
        raise CacheBackendUnavailableError(
            f"Redis {operation} failed for '{key}': {e}"
        ) from e


class RedisCacheBackend:
    """``CacheBackend`` backed by ``redis.asyncio``.

    The client is expected to be created with ``decode_responses=True`` and
    socket timeouts, so a degraded Redis surfaces as
    ``CacheBackendUnavailableError`` instead of stalling the caller.
    """

    def __init__(self, client: redis.Redis):
        self.client = client

    async def get(self, key: str) -> str:
        with _translate_errors("GET", key):
            value = await self.client.get(key)
        if value is None:
            raise CacheKeyNotFoundError(key)
        return value

    async def set(self, key: str, value: str, ttl: float | None = None) -> None:
        px = max(1, int(ttl * 1000)) if ttl else None
        with _translate_errors("SET", key):
            await self.client.set(key, value, px=px)

    async def delete(self, key: str) -> None:
        with _translate_errors("DEL", key):
            await self.client.delete(key)

    async def keys(self, pattern: str) -> list[str]:
        # SCAN instead of KEYS so large keyspaces do not block the server
        with _translate_errors("SCAN", pattern):
            return [key async for key in self.client.scan_iter(match=pattern)]

    async def ttl(self, key: str) -> float | None:
        with _translate_errors("PTTL", key):
            remaining_ms = await self.client.pttl(key)
        if remaining_ms == -2:
            raise CacheKeyNotFoundError(key)
        if remaining_ms == -1:
            return None
        return remaining_ms / 1000

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except (RedisError, OSError) as e:
            logger.warning("Redis ping failed", error=str(e))
            return False

    async def close(self) -> None:
        await self.client.aclose()
