"""Rate limit operator API schemas."""

from pydantic import BaseModel

from src.api.core.messages import APIResponse
from src.api.core.models.rate_limit import RateLimitConfig


class RateLimitConfigUpdateRequest(RateLimitConfig):
    """Full replacement config; partial updates are not supported."""


class RateLimitStatusModel(BaseModel):
    enabled: bool
    backend_available: bool
    window_seconds: int
    config: RateLimitConfig


RateLimitConfigResponse = APIResponse[RateLimitConfig]
RateLimitStatusResponse = APIResponse[RateLimitStatusModel]
