from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class AuthSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    JWT_SECRET: SecretStr = SecretStr("change-me-in-env")
    JWT_ALGORITHM: str = "HS256"
    JWT_ISSUER: str = "delivery-app"
    ACCESS_TOKEN_TTL_MINUTES: int = 7

    # Roles allowed to change rate limit policy at runtime
    ADMIN_ROLES: list[str] = ["admin"]
