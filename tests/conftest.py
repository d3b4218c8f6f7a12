"""Global test configuration and fixtures for the parcel delivery API."""

from collections.abc import AsyncGenerator
from typing import Callable
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from asgi_lifespan import LifespanManager
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from src.api.core.models.rate_limit import RateLimitConfig
from src.metrics.registry import MetricsRegistry
from src.services.auth import TokenBlacklist, TokenService
from src.services.rate_limit.limiter import RateLimiter
from src.services.rate_limit.policy import RateLimitPolicy
from src.utils.settings.auth import AuthSettings
from tests.fakes import FakeClock, InMemoryCacheBackend

TEST_BASE_URL = "http://test-delivery-api"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache_backend(clock: FakeClock) -> InMemoryCacheBackend:
    return InMemoryCacheBackend(clock)


@pytest.fixture
def metrics() -> MetricsRegistry:
    return MetricsRegistry()


@pytest.fixture
def rate_limit_policy(cache_backend: InMemoryCacheBackend) -> RateLimitPolicy:
    return RateLimitPolicy(cache_backend, RateLimitConfig.default())


@pytest.fixture
def rate_limiter(
    cache_backend: InMemoryCacheBackend,
    rate_limit_policy: RateLimitPolicy,
    metrics: MetricsRegistry,
) -> RateLimiter:
    return RateLimiter(cache_backend, rate_limit_policy, metrics=metrics)


@pytest.fixture
def token_service() -> TokenService:
    return TokenService(AuthSettings(JWT_SECRET="test-jwt-secret-key-for-testing-only"))


@pytest.fixture
def token_blacklist(
    cache_backend: InMemoryCacheBackend,
    token_service: TokenService,
    metrics: MetricsRegistry,
) -> TokenBlacklist:
    return TokenBlacklist(cache_backend, token_service, metrics)


@pytest_asyncio.fixture
async def app(
    cache_backend: InMemoryCacheBackend,
    token_service: TokenService,
) -> AsyncGenerator[FastAPI, None]:
    """Create FastAPI application with lifespan manager for testing.

    Redis is replaced with the in-memory backend; the lifespan wires
    everything else exactly as in production.
    """
    from src.main import create_app

    application = create_app()
    with patch(
        "src.redis.client.connect_cache_backend",
        AsyncMock(return_value=cache_backend),
    ):
        async with LifespanManager(application):
            application.state.token_service = token_service
            application.state.token_blacklist.token_service = token_service
            yield application


# JWT Token Fixtures
@pytest.fixture
def jwt_token_factory(token_service: TokenService) -> Callable[..., str]:
    """Factory for creating access tokens for test users."""

    def create_token(user_id: int, role: str | None = "client") -> str:
        return token_service.create_access_token(user_id, role)

    return create_token


@pytest.fixture
def user_token(jwt_token_factory) -> str:
    return jwt_token_factory(42, "client")


@pytest.fixture
def admin_token(jwt_token_factory) -> str:
    return jwt_token_factory(1, "admin")


# HTTP Client Fixtures
@pytest_asyncio.fixture
async def public_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create HTTP client for testing public endpoints."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url=TEST_BASE_URL,
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def authorized_client(
    app: FastAPI, user_token: str
) -> AsyncGenerator[AsyncClient, None]:
    """Create HTTP client with JWT authorization headers."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url=TEST_BASE_URL,
        headers={"Authorization": f"Bearer {user_token}"},
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def admin_client(
    app: FastAPI, admin_token: str
) -> AsyncGenerator[AsyncClient, None]:
    """Create HTTP client with admin JWT authorization headers."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url=TEST_BASE_URL,
        headers={"Authorization": f"Bearer {admin_token}"},
    ) as ac:
        yield ac
