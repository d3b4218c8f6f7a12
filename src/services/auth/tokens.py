"""JWT access token issuing and validation."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt

from src.utils.settings.auth import AuthSettings
from src.utils.logger import get_logger

logger = get_logger(__name__)


class InvalidTokenError(Exception):
    """Token is malformed, badly signed, expired, or missing claims."""


class TokenExpiredError(InvalidTokenError):
    pass


@dataclass(frozen=True)
class TokenClaims:
    user_id: int
    role: str | None
    expires_at: datetime

    def remaining(self, now: datetime | None = None) -> timedelta:
        return self.expires_at - (now or datetime.now(timezone.utc))


class TokenService:
    """HS256 access tokens carrying ``user_id`` and ``role`` claims."""

    def __init__(self, settings: AuthSettings | None = None):
        self.settings = settings or AuthSettings()

    @property
    def access_token_ttl(self) -> timedelta:
        return timedelta(minutes=self.settings.ACCESS_TOKEN_TTL_MINUTES)

    def create_access_token(
        self,
        user_id: int,
        role: str | None = None,
        expires_in: timedelta | None = None,
    ) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user_id),
            "user_id": user_id,
            "iss": self.settings.JWT_ISSUER,
            "iat": now,
            "nbf": now,
            "exp": now + (expires_in if expires_in is not None else self.access_token_ttl),
        }
        if role is not None:
            payload["role"] = role
        return jwt.encode(
            payload,
            self.settings.JWT_SECRET.get_secret_value(),
            algorithm=self.settings.JWT_ALGORITHM,
        )

    def decode(self, token: str) -> TokenClaims:
        try:
            payload = jwt.decode(
                token,
                self.settings.JWT_SECRET.get_secret_value(),
                algorithms=[self.settings.JWT_ALGORITHM],
                issuer=self.settings.JWT_ISSUER,
            )
        except ExpiredSignatureError as e:
            raise TokenExpiredError("Token has expired") from e
        except JWTError as e:
            logger.debug(f"JWT decoding failed: {e}")
            raise InvalidTokenError(str(e)) from e

        user_id = payload.get("user_id", payload.get("sub"))
        try:
            user_id = int(user_id)
        except (TypeError, ValueError) as e:
            raise InvalidTokenError("Token has no numeric user id") from e

        role = payload.get("role")
        if role is not None and not isinstance(role, str):
            raise InvalidTokenError("Token role claim must be a string")

        exp = payload.get("exp")
        if exp is None:
            raise InvalidTokenError("Token has no expiry")

        return TokenClaims(
            user_id=user_id,
            role=role,
            expires_at=datetime.fromtimestamp(exp, tz=timezone.utc),
        )
