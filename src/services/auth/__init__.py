"""Authentication services."""

from .blacklist import TokenBlacklist
from .tokens import InvalidTokenError, TokenClaims, TokenExpiredError, TokenService

__all__ = [
    "InvalidTokenError",
    "TokenBlacklist",
    "TokenClaims",
    "TokenExpiredError",
    "TokenService",
]
