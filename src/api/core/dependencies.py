from typing import Annotated

from fastapi import Depends, Request, status

from src.api.core.exceptions.base import DeliveryException
from src.api.core.identity import get_auth_context
from src.api.core.messages import MessageCode
from src.core.context import AuthContext
from src.metrics.registry import MetricsRegistry
from src.redis.backend import CacheBackend
from src.redis.housekeeping import CacheHousekeeper
from src.services.auth.blacklist import TokenBlacklist
from src.services.rate_limit.policy import RateLimitPolicy
from src.utils.settings.auth import AuthSettings


def get_cache_backend(request: Request) -> CacheBackend | None:
    return request.app.state.cache_backend


def get_rate_limit_policy(request: Request) -> RateLimitPolicy:
    return request.app.state.rate_limit_policy


def get_token_blacklist(request: Request) -> TokenBlacklist:
    return request.app.state.token_blacklist


def get_metrics(request: Request) -> MetricsRegistry:
    return request.app.state.metrics


def get_housekeeper(request: Request) -> CacheHousekeeper | None:
    return getattr(request.app.state, "housekeeper", None)


def require_auth(request: Request) -> AuthContext:
    """Require a validated bearer token."""
    auth_context = get_auth_context(request)
    if auth_context is None:
        raise DeliveryException(
            MessageCode.AUTH_REQUIRED,
            status.HTTP_401_UNAUTHORIZED,
            {"description": "Provide an 'Authorization: Bearer <token>' header"},
        )
    return auth_context


def require_admin(
    auth_context: Annotated[AuthContext, Depends(require_auth)],
) -> AuthContext:
    """Require a caller whose role may operate the service."""
    if auth_context.role not in AuthSettings().ADMIN_ROLES:
        raise DeliveryException(
            MessageCode.AUTH_INSUFFICIENT_ROLE_PERMISSIONS,
            status.HTTP_403_FORBIDDEN,
            {"required_roles": AuthSettings().ADMIN_ROLES},
        )
    return auth_context


CacheBackendDep = Annotated[CacheBackend | None, Depends(get_cache_backend)]
RateLimitPolicyDep = Annotated[RateLimitPolicy, Depends(get_rate_limit_policy)]
TokenBlacklistDep = Annotated[TokenBlacklist, Depends(get_token_blacklist)]
MetricsDep = Annotated[MetricsRegistry, Depends(get_metrics)]
HousekeeperDep = Annotated[CacheHousekeeper | None, Depends(get_housekeeper)]
AuthContextDep = Annotated[AuthContext, Depends(require_auth)]
AdminContextDep = Annotated[AuthContext, Depends(require_admin)]
