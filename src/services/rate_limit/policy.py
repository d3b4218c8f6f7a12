"""Rate limit policy: the active ``RateLimitConfig`` and its persistence."""

from pydantic import ValidationError

from src.api.core.models.rate_limit import CONFIG_CACHE_KEY, RateLimitConfig
from src.redis.backend import (
    CacheBackend,
    CacheBackendError,
    CacheBackendUnavailableError,
    CacheKeyNotFoundError,
)
from src.utils.logger import get_logger

logger = get_logger(__name__)


class RateLimitConfigCorruptError(Exception):
    """Stored config exists but cannot be deserialized."""

    def __init__(self, raw: str, reason: str):
        self.raw = raw
        self.reason = reason
        super().__init__(f"Corrupt rate limit config in cache: {reason}")


class RateLimitPolicy:
    """Holds the in-memory config and syncs it with the cache backend.

    Readers take ``policy.config`` once per request; the attribute is only
    ever swapped wholesale, never mutated, so each request sees one
    consistent snapshot.
    """

    def __init__(
        self,
        backend: CacheBackend | None,
        config: RateLimitConfig | None = None,
    ):
        self.backend = backend
        self._config = config or RateLimitConfig.default()

    @property
    def config(self) -> RateLimitConfig:
        return self._config

    async def load_from_backend(self) -> RateLimitConfig:
        """Replace the in-memory config with the stored one, if any.

        Missing config (first boot) and an unreachable backend keep the
        current config. Stored-but-invalid config raises
        ``RateLimitConfigCorruptError`` and also keeps the current config.
        """
        if self.backend is None:
            logger.warning("No cache backend, keeping current rate limit config")
            return self._config

        try:
            raw = await self.backend.get(CONFIG_CACHE_KEY)
        except CacheKeyNotFoundError:
            logger.info("Rate limit config not found in cache, using current config")
            return self._config
        except CacheBackendError as e:
            logger.warning(
                "Could not load rate limit config, keeping current config",
                error=str(e),
            )
            return self._config

        try:
            config = RateLimitConfig.model_validate_json(raw)
        except ValidationError as e:
            raise RateLimitConfigCorruptError(raw, str(e)) from e

        self._config = config
        logger.info("Rate limit config loaded from cache", config=config.model_dump())
        return config

    async def save_to_backend(self) -> None:
        """Persist the current config without expiry.

        Raises:
            CacheBackendError: the write failed or there is no backend.
        """
        if self.backend is None:
            raise CacheBackendUnavailableError("No cache backend configured")

        await self.backend.set(CONFIG_CACHE_KEY, self._config.to_json(), None)
        logger.info("Rate limit config saved to cache")

    async def update(self, config: RateLimitConfig) -> None:
        """Swap in ``config`` and persist it.

        The in-memory swap is not rolled back if persisting fails; the
        error propagates so the operator can retry the save.
        """
        self._config = config
        logger.info("Rate limit config updated", config=config.model_dump())
        await self.save_to_backend()
