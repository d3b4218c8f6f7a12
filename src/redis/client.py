"""Async Redis client construction and lifespan management."""

from contextlib import asynccontextmanager
from typing import AsyncIterator

import redis.asyncio as redis

from src.redis.backend import RedisCacheBackend
from src.utils.settings.redis import RedisSettings
from src.utils.logger import get_logger

logger = get_logger(__name__)


def create_redis_client(settings: RedisSettings | None = None) -> redis.Redis:
    """Build a Redis client with bounded socket timeouts."""
    settings = settings or RedisSettings()
    return redis.Redis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
        socket_connect_timeout=settings.REDIS_CONNECT_TIMEOUT_SECONDS,
    )


async def connect_cache_backend(
    settings: RedisSettings | None = None,
) -> RedisCacheBackend | None:
    """Connect to Redis, or return None when it is unreachable.

    A None backend puts rate limiting and token blacklisting in pass-through
    mode for the lifetime of the process.
    """
    settings = settings or RedisSettings()
    backend = RedisCacheBackend(create_redis_client(settings))

    if not await backend.ping():
        logger.warning(
            "Redis unavailable, continuing without cache backend",
            redis_url=settings.REDIS_URL,
        )
        await backend.close()
        return None

    logger.info("Connected to Redis", redis_url=settings.REDIS_URL)
    return backend


@asynccontextmanager
async def cache_backend_lifespan(
    settings: RedisSettings | None = None,
) -> AsyncIterator[RedisCacheBackend | None]:
    """Compose-able lifespan context that closes the backend on shutdown."""
    backend = await connect_cache_backend(settings)
    try:
        yield backend
    finally:
        if backend is not None:
            try:
                await backend.close()
                logger.info("Redis connection closed")
            except Exception as e:
                logger.error(f"Error closing Redis connection: {e}")
