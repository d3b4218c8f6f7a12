from fastapi import APIRouter, Request, status

from src.api.core.dependencies import AdminContextDep, RateLimitPolicyDep
from src.api.core.exceptions.base import DeliveryException
from src.api.core.messages import APIResponse, MessageCode
from src.api.core.models.rate_limit import RateLimitConfig
from src.api.rate_limit.schemas import (
    RateLimitConfigResponse,
    RateLimitConfigUpdateRequest,
    RateLimitStatusModel,
    RateLimitStatusResponse,
)
from src.redis.backend import CacheBackendError
from src.services.rate_limit.policy import RateLimitConfigCorruptError
from src.utils.logger import get_logger
from src.utils.settings.rate_limit import RateLimitSettings

logger = get_logger(__name__)

router = APIRouter(prefix="/rate-limit", tags=["rate-limit"])


@router.get("/config", response_model=RateLimitConfigResponse)
async def get_rate_limit_config(
    policy: RateLimitPolicyDep,
) -> RateLimitConfigResponse:
    """Return the config currently enforced by this instance."""
    return APIResponse.success(data=policy.config)


@router.get("/status", response_model=RateLimitStatusResponse)
async def get_rate_limit_status(
    request: Request,
    policy: RateLimitPolicyDep,
    admin: AdminContextDep,
) -> RateLimitStatusResponse:
    rate_limiter = getattr(request.app.state, "rate_limiter", None)
    if rate_limiter is None:
        # Limiting switched off; report what the limiter would have used
        status_model = RateLimitStatusModel(
            enabled=False,
            backend_available=getattr(request.app.state, "cache_backend", None)
            is not None,
            window_seconds=RateLimitSettings().RATE_LIMIT_WINDOW_SECONDS,
            config=policy.config,
        )
    else:
        status_model = RateLimitStatusModel(
            enabled=True,
            backend_available=rate_limiter.backend is not None,
            window_seconds=rate_limiter.window_seconds,
            config=policy.config,
        )
    return APIResponse.success(data=status_model)


@router.put("/config", response_model=RateLimitConfigResponse)
async def update_rate_limit_config(
    config_data: RateLimitConfigUpdateRequest,
    policy: RateLimitPolicyDep,
    admin: AdminContextDep,
) -> RateLimitConfigResponse:
    """Replace the config and persist it for every instance to pick up."""
    config = RateLimitConfig.model_validate(config_data.model_dump())
    logger.info("Rate limit config update requested", user_id=admin.user_id)

    try:
        await policy.update(config)
    except CacheBackendError as e:
        raise DeliveryException(
            MessageCode.RATE_LIMIT_CONFIG_NOT_PERSISTED,
            status.HTTP_503_SERVICE_UNAVAILABLE,
            {"applied": True, "persisted": False, "error": str(e)},
        ) from e

    return APIResponse.success(
        message_code=MessageCode.RATE_LIMIT_CONFIG_UPDATED, data=policy.config
    )


@router.post("/config/reload", response_model=RateLimitConfigResponse)
async def reload_rate_limit_config(
    policy: RateLimitPolicyDep,
    admin: AdminContextDep,
) -> RateLimitConfigResponse:
    """Re-read the stored config, e.g. after another instance changed it."""
    try:
        config = await policy.load_from_backend()
    except RateLimitConfigCorruptError as e:
        raise DeliveryException(
            MessageCode.RATE_LIMIT_CONFIG_CORRUPT,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            {"reason": e.reason},
        ) from e

    return APIResponse.success(
        message_code=MessageCode.RATE_LIMIT_CONFIG_RELOADED, data=config
    )
