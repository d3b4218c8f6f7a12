"""Request-scoped context models shared by middleware and services."""

from dataclasses import dataclass


@dataclass(frozen=True)
class AuthContext:
    """Validated caller identity attached by the auth middleware."""

    user_id: int
    role: str | None
    token: str

    def __post_init__(self):
        if self.user_id is None:
            raise ValueError("user_id is required in authentication context")


@dataclass(frozen=True)
class RequestIdentity:
    """Who is calling, as far as rate limiting is concerned."""

    client_ip: str
    user_id: int | None = None
    role: str | None = None

    @property
    def authenticated(self) -> bool:
        return self.user_id is not None

    def __str__(self) -> str:
        """String representation for logging."""
        if self.user_id is None:
            return f"ip:{self.client_ip}"
        return f"user:{self.user_id} role:{self.role or '-'}"
