"""Redis settings configuration."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class RedisSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    REDIS_URL: str = "redis://localhost:6379/0"

    # Every backend round-trip is bounded; a slow Redis must not stall requests
    REDIS_SOCKET_TIMEOUT_SECONDS: float = 2.0
    REDIS_CONNECT_TIMEOUT_SECONDS: float = 2.0

    REDIS_CLEANUP_ENABLED: bool = True
    REDIS_CLEANUP_INTERVAL_SECONDS: int = 3600


__all__ = ["RedisSettings"]
