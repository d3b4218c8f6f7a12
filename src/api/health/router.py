"""Health check endpoints for debugging and monitoring."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from src.api.core.dependencies import CacheBackendDep, HousekeeperDep
from src.services.health.service import HealthService, OverallHealthStatus
from src.utils.settings.app import AppSettings

router = APIRouter(prefix="/health", tags=["health"])


@router.get("/")
async def health_check(
    request: Request,
    backend: CacheBackendDep,
    housekeeper: HousekeeperDep,
) -> OverallHealthStatus:
    """Comprehensive health check for all services."""
    health_service = HealthService(
        backend, getattr(request.app.state, "rate_limiter", None), housekeeper
    )
    return await health_service.run_all_checks()


@router.get("/liveness")
async def liveness_check():
    """Simple liveness check - indicates if service is running."""
    return {"status": "alive", "service": AppSettings().SERVICE_NAME}


@router.get("/cache")
async def cache_health_check(
    backend: CacheBackendDep,
    housekeeper: HousekeeperDep,
):
    """Backend ping plus key counts; 503 when the cache is unreachable."""
    result = await HealthService(backend, housekeeper=housekeeper).check_cache_health()
    status_code = 503 if result.status == "unhealthy" else 200
    return JSONResponse(
        status_code=status_code,
        content={
            "service": result.service,
            "status": result.status,
            "connected": result.connected,
            "details": result.details,
            "error": result.error,
        },
    )
