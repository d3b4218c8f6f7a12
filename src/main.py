import uvicorn
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.core.exceptions.base import register_exception_handlers
from src.api.core.middleware.auth import auth_middleware
from src.api.core.middleware.logging import logging_middleware
from src.api.core.middleware.metrics import metrics_middleware
from src.api.core.middleware.rate_limit import RateLimitMiddleware
from src.api.router import api_router
from src.metrics.registry import MetricsRegistry
from src.redis.backend import CacheBackendError
from src.redis.client import cache_backend_lifespan
from src.redis.housekeeping import CacheHousekeeper
from src.services.auth import TokenBlacklist, TokenService
from src.services.rate_limit.limiter import RateLimiter
from src.services.rate_limit.policy import RateLimitConfigCorruptError, RateLimitPolicy
from src.utils.settings.app import AppSettings
from src.utils.settings.rate_limit import RateLimitSettings
from src.utils.settings.redis import RedisSettings
from src.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    app_settings = AppSettings()
    rate_limit_settings = RateLimitSettings()
    redis_settings = RedisSettings()

    setup_logging(
        app_settings.is_production, app_settings.DEBUG, app_settings.SERVICE_NAME
    )
    logger.info("Starting parcel delivery API...")
    app_settings.validate_prod()

    metrics = MetricsRegistry()
    app.state.metrics = metrics

    async with cache_backend_lifespan(redis_settings) as backend:
        app.state.cache_backend = backend

        policy = RateLimitPolicy(backend)
        if rate_limit_settings.RATE_LIMIT_LOAD_ON_STARTUP:
            try:
                await policy.load_from_backend()
            except RateLimitConfigCorruptError as e:
                logger.error(
                    "Stored rate limit config is corrupt, using defaults",
                    reason=e.reason,
                )
                # Replace the bad record with the defaults in force
                try:
                    await policy.save_to_backend()
                except CacheBackendError as save_error:
                    logger.warning(
                        "Could not replace corrupt rate limit config",
                        error=str(save_error),
                    )
        app.state.rate_limit_policy = policy
        logger.info(
            "Rate limit policy ready",
            config=policy.config.model_dump(by_alias=True),
        )

        app.state.rate_limiter = (
            RateLimiter(
                backend,
                policy,
                metrics=metrics,
                window_seconds=rate_limit_settings.RATE_LIMIT_WINDOW_SECONDS,
            )
            if rate_limit_settings.RATE_LIMIT_ENABLED
            else None
        )

        token_service = TokenService()
        app.state.token_service = token_service
        app.state.token_blacklist = TokenBlacklist(backend, token_service, metrics)

        housekeeper = None
        if backend is not None:
            housekeeper = CacheHousekeeper(
                backend,
                interval_seconds=redis_settings.REDIS_CLEANUP_INTERVAL_SECONDS,
                metrics=metrics,
            )
            stats = await housekeeper.collect_stats()
            logger.info("Initial cache stats", keys_by_pattern=stats.keys_by_pattern)
            if redis_settings.REDIS_CLEANUP_ENABLED:
                housekeeper.start()
        app.state.housekeeper = housekeeper

        try:
            yield
        finally:
            # Shutdown
            logger.info("Shutting down parcel delivery API...")
            if housekeeper is not None:
                await housekeeper.stop()
                try:
                    stats = await housekeeper.collect_stats()
                    logger.info(
                        "Final cache stats", keys_by_pattern=stats.keys_by_pattern
                    )
                except Exception as e:
                    logger.warning(f"Could not collect final cache stats: {e}")


def create_app() -> FastAPI:
    app_settings = AppSettings()
    is_production = app_settings.is_production

    app = FastAPI(
        title="Parcel Delivery API",
        description="Parcel delivery backend with per-identity request rate limiting",
        version=app_settings.API_VERSION,
        lifespan=lifespan,
        # Security: Disable docs in production
        docs_url=None if is_production else "/docs",
        redoc_url=None if is_production else "/redoc",
        openapi_url=None if is_production else "/openapi.json",
    )

    # Register global exception handlers
    register_exception_handlers(app)

    # Middleware added later wraps middleware added earlier, so the rate
    # limiter runs after auth has attached the caller's identity.
    app.add_middleware(
        RateLimitMiddleware,
        excluded_paths=RateLimitSettings().RATE_LIMIT_EXCLUDED_PATHS,
    )
    app.middleware("http")(auth_middleware)
    app.middleware("http")(metrics_middleware)
    app.middleware("http")(logging_middleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "Retry-After"],
    )

    app.include_router(api_router)
    return app


app = create_app()


def run_dev_server():
    """Run development server with auto-reload."""
    uvicorn.run(
        "src.main:app", host="0.0.0.0", port=8010, reload=True, access_log=False
    )


def run_prod_server():
    """Run production server."""
    uvicorn.run(
        "src.main:app", host="0.0.0.0", port=8010, reload=False, access_log=False
    )
