"""Periodic cleanup of rate limit and blacklist keys.

Every key the service writes under ``rate_limit:*`` and ``blacklist:*`` carries
a TTL, so Redis expires them on its own. The sweep removes keys that somehow
lost their expiry (older deployments wrote counters without one) and reports
key counts for monitoring.
"""

import asyncio
import time
from dataclasses import dataclass, field

from src.metrics.registry import MetricsRegistry
from src.redis.backend import (
    CacheBackend,
    CacheBackendError,
    CacheKeyNotFoundError,
)
from src.utils.logger import get_logger

logger = get_logger(__name__)

RATE_LIMIT_PATTERN = "rate_limit:*"
BLACKLIST_PATTERN = "blacklist:*"
DEFAULT_PATTERNS = (RATE_LIMIT_PATTERN, BLACKLIST_PATTERN)


@dataclass
class CacheStats:
    """Key counts per pattern."""

    keys_by_pattern: dict[str, int] = field(default_factory=dict)
    duration_seconds: float = 0.0

    @property
    def rate_limit_keys(self) -> int:
        return self.keys_by_pattern.get(RATE_LIMIT_PATTERN, 0)

    @property
    def blacklist_keys(self) -> int:
        return self.keys_by_pattern.get(BLACKLIST_PATTERN, 0)


@dataclass
class SweepResult:
    deleted_by_pattern: dict[str, int] = field(default_factory=dict)

    @property
    def total_deleted(self) -> int:
        return sum(self.deleted_by_pattern.values())


class CacheHousekeeper:
    """Runs ``sweep`` every ``interval_seconds`` until stopped."""

    def __init__(
        self,
        backend: CacheBackend,
        interval_seconds: float,
        metrics: MetricsRegistry | None = None,
        patterns: tuple[str, ...] = DEFAULT_PATTERNS,
    ):
        self.backend = backend
        self.interval_seconds = interval_seconds
        self.metrics = metrics
        self.patterns = patterns
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def collect_stats(self) -> CacheStats:
        start = time.perf_counter()
        stats = CacheStats()
        for pattern in self.patterns:
            try:
                stats.keys_by_pattern[pattern] = len(await self.backend.keys(pattern))
            except CacheBackendError as e:
                logger.warning("Failed to count keys", pattern=pattern, error=str(e))
                continue
            if self.metrics:
                self.metrics.cache_keys.labels(pattern=pattern).set(
                    stats.keys_by_pattern[pattern]
                )
        stats.duration_seconds = time.perf_counter() - start
        return stats

    async def cleanup_pattern(self, pattern: str) -> int:
        """Delete keys matching ``pattern`` that have no expiry."""
        keys = await self.backend.keys(pattern)

        deleted = 0
        for key in keys:
            try:
                remaining = await self.backend.ttl(key)
            except CacheKeyNotFoundError:
                # Expired between SCAN and PTTL
                continue
            except CacheBackendError as e:
                logger.warning("Failed to read TTL", key=key, error=str(e))
                continue

            if remaining is not None:
                continue

            try:
                await self.backend.delete(key)
            except CacheBackendError as e:
                logger.warning("Failed to delete stale key", key=key, error=str(e))
                continue
            deleted += 1
            logger.debug("Deleted stale key", key=key)

        if self.metrics and deleted:
            self.metrics.housekeeping_deleted_keys_total.labels(pattern=pattern).inc(
                deleted
            )
        return deleted

    async def sweep(self) -> SweepResult:
        stats_before = await self.collect_stats()

        result = SweepResult()
        for pattern in self.patterns:
            try:
                result.deleted_by_pattern[pattern] = await self.cleanup_pattern(pattern)
            except CacheBackendError as e:
                logger.warning("Cache cleanup failed", pattern=pattern, error=str(e))

        stats_after = await self.collect_stats()
        logger.info(
            "Cache cleanup finished",
            deleted=result.deleted_by_pattern,
            keys_before=stats_before.keys_by_pattern,
            keys_after=stats_after.keys_by_pattern,
        )
        return result

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.sweep()
            except Exception as e:
                # keep the loop alive; next tick retries
                logger.error("Cache cleanup crashed", error=str(e))

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="cache-housekeeping")
        logger.info("Cache housekeeping started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Cache housekeeping stopped")
