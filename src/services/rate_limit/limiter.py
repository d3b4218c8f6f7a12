"""Fixed-window rate limiter backed by the cache backend.

Per request the limiter checks the IP block record, then reads, increments
and writes the caller's counter, and compares it with the caller's limit.
The limiter keeps no in-process state; every decision round-trips through
the backend, so any number of API workers can share one Redis.

The read-then-write increment is not atomic. Two concurrent requests from
the same caller can both read N and both write N+1, so the count may lag by
the number of racing requests. Rate limiting tolerates that.

Every backend failure fails open (the request is let through) except an
existing block record, which always rejects.
"""

from datetime import datetime, timezone

from src.api.core.models.rate_limit import (
    UNAUTHENTICATED_SCOPE,
    RateLimitConfig,
    RateLimitDecision,
    authenticated_scope,
    block_key,
    counter_key,
)
from src.core.context import RequestIdentity
from src.metrics.registry import MetricsRegistry
from src.redis.backend import (
    CacheBackend,
    CacheBackendError,
    CacheKeyNotFoundError,
)
from src.services.rate_limit.policy import RateLimitPolicy
from src.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_WINDOW_SECONDS = 60


class RateLimiter:
    """Decides per request whether to allow, reject, or report a block."""

    def __init__(
        self,
        backend: CacheBackend | None,
        policy: RateLimitPolicy,
        metrics: MetricsRegistry | None = None,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
    ):
        self.backend = backend
        self.policy = policy
        self.metrics = metrics
        self.window_seconds = window_seconds

    async def check(self, identity: RequestIdentity) -> RateLimitDecision:
        """Evaluate one request. Never raises backend errors."""
        if self.backend is None:
            return self._fail_open("backend_missing")

        config = self.policy.config

        blocked = await self._check_block(identity, config)
        if blocked is not None:
            return blocked

        scope, limit, identity_key = self._resolve_scope(identity, config)
        key = counter_key(scope, identity_key)

        try:
            count = await self._increment(key)
        except CacheBackendError as e:
            logger.warning(
                "Rate limit counter update failed, allowing request",
                identity=str(identity),
                key=key,
                error=str(e),
            )
            return self._fail_open("counter_error")

        if count == 1:
            logger.debug("New rate limit counter", identity=str(identity), limit=limit)
        elif count % 10 == 0 or count > limit * 80 // 100:
            logger.info(
                "Rate limit counter updated",
                identity=str(identity),
                count=count,
                limit=limit,
            )

        if count <= limit:
            self._record(scope, "allowed")
            return RateLimitDecision.allowed(scope, limit, limit - count)

        if not identity.authenticated:
            await self._plant_block(identity, config, count, limit)
        else:
            logger.info(
                "Rate limit exceeded",
                identity=str(identity),
                count=count,
                limit=limit,
            )

        self._record(scope, "rejected")
        return RateLimitDecision.rejected(scope, limit, self.window_seconds)

    async def _check_block(
        self, identity: RequestIdentity, config: RateLimitConfig
    ) -> RateLimitDecision | None:
        key = block_key(identity.client_ip)
        try:
            value = await self.backend.get(key)
        except CacheKeyNotFoundError:
            return None
        except CacheBackendError as e:
            logger.warning(
                "Block check failed, continuing without it",
                client_ip=identity.client_ip,
                error=str(e),
            )
            self._fail_open_metric("block_check_error")
            return None

        logger.info("Blocked client rejected", client_ip=identity.client_ip, block=value)
        self._record("block", "blocked")
        return RateLimitDecision.blocked(config.block_duration_seconds)

    def _resolve_scope(
        self, identity: RequestIdentity, config: RateLimitConfig
    ) -> tuple[str, int, str | int]:
        if identity.user_id is None:
            return UNAUTHENTICATED_SCOPE, config.unauthenticated_limit, identity.client_ip
        role, limit = config.limit_for(identity.role)
        return authenticated_scope(role), limit, identity.user_id

    async def _increment(self, key: str) -> int:
        """Read, bump and write the counter without extending its window.

        The first write of a window sets the full window TTL; later writes
        reapply whatever TTL the key has left.
        """
        try:
            raw = await self.backend.get(key)
        except CacheKeyNotFoundError:
            raw = None

        try:
            count = int(raw) if raw is not None else 0
        except ValueError:
            logger.warning("Unparseable rate limit counter, resetting", key=key, value=raw)
            count = 0

        if count <= 0:
            await self.backend.set(key, "1", self.window_seconds)
            return 1

        try:
            remaining = await self.backend.ttl(key)
        except CacheKeyNotFoundError:
            # Window expired between GET and PTTL
            await self.backend.set(key, "1", self.window_seconds)
            return 1

        if remaining is None or remaining <= 0:
            remaining = self.window_seconds

        count += 1
        await self.backend.set(key, str(count), remaining)
        return count

    async def _plant_block(
        self,
        identity: RequestIdentity,
        config: RateLimitConfig,
        count: int,
        limit: int,
    ) -> None:
        if config.block_duration_seconds <= 0:
            # a TTL of 0 would mean a permanent block
            return

        key = block_key(identity.client_ip)
        value = (
            f"blocked:count={count}:limit={limit}"
            f":time={datetime.now(timezone.utc).isoformat()}"
        )
        try:
            await self.backend.set(key, value, config.block_duration_seconds)
        except CacheBackendError as e:
            logger.warning(
                "Failed to block client", client_ip=identity.client_ip, error=str(e)
            )
            return

        if self.metrics:
            self.metrics.rate_limit_blocks_total.inc()
        logger.info(
            "Client blocked",
            client_ip=identity.client_ip,
            count=count,
            limit=limit,
            block_minutes=config.block_duration_minutes,
        )

    def _fail_open(self, reason: str) -> RateLimitDecision:
        self._fail_open_metric(reason)
        self._record("none", "allowed")
        return RateLimitDecision.unlimited()

    def _fail_open_metric(self, reason: str) -> None:
        if self.metrics:
            self.metrics.rate_limit_fail_open_total.labels(reason=reason).inc()

    def _record(self, scope: str, outcome: str) -> None:
        if self.metrics:
            self.metrics.rate_limit_decisions_total.labels(
                outcome=outcome, scope=scope
            ).inc()
