import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal

from src.redis.backend import CacheBackend
from src.redis.housekeeping import CacheHousekeeper
from src.services.rate_limit.limiter import RateLimiter
from src.utils.logger import get_logger

logger = get_logger(__name__)

HealthState = Literal["healthy", "degraded", "unhealthy"]


@dataclass
class HealthCheckResult:
    """Result of a health check."""

    service: str
    status: HealthState
    connected: bool
    details: dict = field(default_factory=dict)
    error: str | None = None


@dataclass
class OverallHealthStatus:
    """Overall health status with individual service results."""

    status: HealthState
    services: dict[str, HealthCheckResult]
    timestamp: str


class HealthService:
    """Checks the cache backend and the limiter that depends on it."""

    def __init__(
        self,
        backend: CacheBackend | None,
        rate_limiter: RateLimiter | None = None,
        housekeeper: CacheHousekeeper | None = None,
    ):
        self.backend = backend
        self.rate_limiter = rate_limiter
        self.housekeeper = housekeeper

    async def check_cache_health(self) -> HealthCheckResult:
        """Ping the backend and count the keys the service owns."""
        if self.backend is None:
            return HealthCheckResult(
                service="cache",
                status="unhealthy",
                connected=False,
                error="No cache backend configured",
            )

        if not await self.backend.ping():
            return HealthCheckResult(
                service="cache",
                status="unhealthy",
                connected=False,
                error="Ping failed",
            )

        details: dict = {}
        if self.housekeeper is not None:
            try:
                stats = await self.housekeeper.collect_stats()
                details = {
                    "keys_by_pattern": stats.keys_by_pattern,
                    "scan_duration_seconds": round(stats.duration_seconds, 4),
                    "housekeeping_running": self.housekeeper.running,
                }
            except Exception as e:
                logger.warning(f"Cache stats collection failed: {e}")
                return HealthCheckResult(
                    service="cache",
                    status="degraded",
                    connected=True,
                    error=str(e),
                )

        return HealthCheckResult(
            service="cache", status="healthy", connected=True, details=details
        )

    async def check_rate_limit_health(self) -> HealthCheckResult:
        """Rate limiting runs fail-open without a backend, which is degraded."""
        if self.rate_limiter is None:
            return HealthCheckResult(
                service="rate_limit",
                status="degraded",
                connected=False,
                error="Rate limiting disabled",
            )

        config = self.rate_limiter.policy.config
        enforcing = self.rate_limiter.backend is not None
        return HealthCheckResult(
            service="rate_limit",
            status="healthy" if enforcing else "degraded",
            connected=enforcing,
            details={
                "window_seconds": self.rate_limiter.window_seconds,
                "config": config.model_dump(by_alias=True),
            },
        )

    async def run_all_checks(self) -> OverallHealthStatus:
        """Run all health checks in parallel and return overall status."""
        results = await asyncio.gather(
            self.check_cache_health(),
            self.check_rate_limit_health(),
            return_exceptions=True,
        )

        services: dict[str, HealthCheckResult] = {}
        overall_status: HealthState = "healthy"

        for result in results:
            if isinstance(result, BaseException):
                result = HealthCheckResult(
                    service=result.__class__.__name__,
                    status="unhealthy",
                    connected=False,
                    error=str(result),
                )
            if result.status == "unhealthy":
                overall_status = "unhealthy"
            elif result.status == "degraded" and overall_status == "healthy":
                overall_status = "degraded"
            services[result.service] = result

        return OverallHealthStatus(
            status=overall_status,
            services=services,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
