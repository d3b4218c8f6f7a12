"""Rate limiting settings configuration."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class RateLimitSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_WINDOW_SECONDS: int = 60
    RATE_LIMIT_LOAD_ON_STARTUP: bool = True
    RATE_LIMIT_EXCLUDED_PATHS: list[str] = ["/health", "/metrics"]


__all__ = ["RateLimitSettings"]
