"""Rate limiting types and models."""

from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_AUTHENTICATED_ROLE = "client"
UNAUTHENTICATED_SCOPE = "unauth"

# Cache keys:
# - rate_limit:auth:<role>:<user_id>:count   per-user counter
# - rate_limit:unauth:<ip>:count             per-IP counter for anonymous traffic
# - rate_limit:block:<ip>                    block record, anonymous only
# - rate_limit_config                        persisted RateLimitConfig
CONFIG_CACHE_KEY = "rate_limit_config"
KEY_PREFIX = "rate_limit"


class RateLimitConfig(BaseModel):
    """Per-role request budgets, anonymous budget and block duration."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    authenticated_limits: dict[str, Annotated[int, Field(ge=0)]] = Field(
        default_factory=lambda: {"client": 30, "courier": 137}
    )
    unauthenticated_limit: int = Field(default=15, ge=0)
    block_duration_minutes: int = Field(default=1, ge=0, alias="block_duration")

    @classmethod
    def default(cls) -> "RateLimitConfig":
        return cls(
            authenticated_limits={"client": 30, "courier": 137},
            unauthenticated_limit=15,
            block_duration_minutes=1,
        )

    @property
    def block_duration_seconds(self) -> int:
        return self.block_duration_minutes * 60

    def limit_for(self, role: str | None) -> tuple[str, int]:
        """Resolve the (scope role, limit) pair for an authenticated caller.

        Unknown or missing roles are limited at the ``client`` rate; without a
        ``client`` entry the anonymous limit applies.
        """
        if role is not None and role in self.authenticated_limits:
            return role, self.authenticated_limits[role]
        fallback = self.authenticated_limits.get(
            DEFAULT_AUTHENTICATED_ROLE, self.unauthenticated_limit
        )
        return DEFAULT_AUTHENTICATED_ROLE, fallback

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


def counter_key(scope: str, identity: str | int) -> str:
    """``rate_limit:<scope>:<identity>:count``"""
    return f"{KEY_PREFIX}:{scope}:{identity}:count"


def authenticated_scope(role: str) -> str:
    return f"auth:{role}"


def block_key(client_ip: str) -> str:
    return f"{KEY_PREFIX}:block:{client_ip}"


class RateLimitState(str, Enum):
    ALLOWED = "allowed"
    REJECTED = "rejected"
    BLOCKED = "blocked"


class RateLimitDecision(BaseModel):
    """Outcome of one rate limit evaluation.

    ``limit``/``remaining`` are None for unlimited pass-through (backend down
    or a fail-open path), in which case no headers are emitted.
    """

    state: RateLimitState
    scope: str | None = None
    limit: int | None = None
    remaining: int | None = None
    retry_after: int | None = None

    @classmethod
    def unlimited(cls) -> "RateLimitDecision":
        return cls(state=RateLimitState.ALLOWED)

    @classmethod
    def allowed(cls, scope: str, limit: int, remaining: int) -> "RateLimitDecision":
        return cls(
            state=RateLimitState.ALLOWED, scope=scope, limit=limit, remaining=remaining
        )

    @classmethod
    def rejected(
        cls, scope: str, limit: int, retry_after: int
    ) -> "RateLimitDecision":
        return cls(
            state=RateLimitState.REJECTED,
            scope=scope,
            limit=limit,
            remaining=0,
            retry_after=retry_after,
        )

    @classmethod
    def blocked(cls, retry_after: int) -> "RateLimitDecision":
        return cls(state=RateLimitState.BLOCKED, retry_after=retry_after)

    @property
    def is_allowed(self) -> bool:
        return self.state == RateLimitState.ALLOWED

    @property
    def headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.limit is not None:
            headers["X-RateLimit-Limit"] = str(self.limit)
        if self.remaining is not None:
            headers["X-RateLimit-Remaining"] = str(self.remaining)
        if self.retry_after is not None:
            headers["Retry-After"] = str(self.retry_after)
        return headers
