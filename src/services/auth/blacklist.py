"""Redis-backed revocation list for access tokens."""

from src.metrics.registry import MetricsRegistry
from src.redis.backend import (
    CacheBackend,
    CacheBackendError,
    CacheBackendUnavailableError,
    CacheKeyNotFoundError,
)
from src.services.auth.tokens import TokenExpiredError, InvalidTokenError, TokenService
from src.utils.logger import get_logger

logger = get_logger(__name__)

BLACKLIST_PREFIX = "blacklist"
REVOKED_VALUE = "revoked"


def blacklist_key(token: str) -> str:
    return f"{BLACKLIST_PREFIX}:{token}"


class TokenBlacklist:
    """Revoked tokens live at ``blacklist:<token>`` until they would expire."""

    def __init__(
        self,
        backend: CacheBackend | None,
        token_service: TokenService,
        metrics: MetricsRegistry | None = None,
    ):
        self.backend = backend
        self.token_service = token_service
        self.metrics = metrics

    async def is_revoked(self, token: str) -> bool:
        """True only if a blacklist entry exists; backend trouble reads as not revoked."""
        if self.backend is None:
            return False
        try:
            await self.backend.get(blacklist_key(token))
        except CacheKeyNotFoundError:
            return False
        except CacheBackendError as e:
            logger.warning("Blacklist lookup failed", error=str(e))
            return False
        return True

    async def revoke(self, token: str) -> bool:
        """Blacklist ``token`` for the rest of its lifetime.

        Returns False when nothing needed storing (token already expired).

        Raises:
            CacheBackendError: the entry could not be written.
        """
        if self.backend is None:
            raise CacheBackendUnavailableError("No cache backend configured")

        try:
            claims = self.token_service.decode(token)
            ttl = claims.remaining().total_seconds()
        except TokenExpiredError:
            return False
        except InvalidTokenError:
            # Unreadable tokens are held for a full access token lifetime
            ttl = self.token_service.access_token_ttl.total_seconds()

        if ttl <= 0:
            return False

        await self.backend.set(blacklist_key(token), REVOKED_VALUE, ttl)
        if self.metrics:
            self.metrics.token_revocations_total.inc()
        logger.info("Token revoked", ttl_seconds=int(ttl))
        return True
