import structlog
from fastapi import Request, status

from src.api.core.exceptions.base import DeliveryException
from src.api.core.identity import AUTH_CONTEXT_STATE_KEY
from src.api.core.messages import MessageCode
from src.core.context import AuthContext
from src.services.auth.blacklist import TokenBlacklist
from src.services.auth.tokens import InvalidTokenError, TokenService

logger = structlog.get_logger(__name__)


def _extract_bearer(authorization: str) -> str:
    auth_parts = authorization.split(" ")
    if len(auth_parts) != 2 or auth_parts[0].lower() != "bearer" or not auth_parts[1]:
        raise DeliveryException(
            MessageCode.INVALID_TOKEN,
            status.HTTP_401_UNAUTHORIZED,
            {"description": "Authorization header must be 'Bearer <token>'"},
        )
    return auth_parts[1]


async def authenticate(
    authorization: str,
    token_service: TokenService,
    blacklist: TokenBlacklist | None,
) -> AuthContext:
    """Turn an Authorization header into an ``AuthContext`` or raise 401."""
    token = _extract_bearer(authorization)

    if blacklist is not None and await blacklist.is_revoked(token):
        raise DeliveryException(
            MessageCode.TOKEN_REVOKED,
            status.HTTP_401_UNAUTHORIZED,
            {"description": "Token has been revoked"},
        )

    try:
        claims = token_service.decode(token)
    except InvalidTokenError as e:
        raise DeliveryException(
            MessageCode.INVALID_TOKEN,
            status.HTTP_401_UNAUTHORIZED,
            {"description": str(e)},
        ) from e

    return AuthContext(user_id=claims.user_id, role=claims.role, token=token)


async def auth_middleware(request: Request, call_next):
    """
    Attach the caller's ``AuthContext`` when a bearer token is presented.

    Requests without an Authorization header continue unauthenticated; route
    dependencies decide whether that is acceptable.
    """
    authorization = request.headers.get("Authorization")
    if not authorization:
        return await call_next(request)

    token_service: TokenService = request.app.state.token_service
    blacklist: TokenBlacklist | None = getattr(request.app.state, "token_blacklist", None)

    try:
        auth_context = await authenticate(authorization, token_service, blacklist)
    except DeliveryException as e:
        logger.info(
            "Authentication rejected",
            message_code=e.message_code.value,
            path=request.url.path,
        )
        return e.to_response()

    setattr(request.state, AUTH_CONTEXT_STATE_KEY, auth_context)
    structlog.contextvars.bind_contextvars(user_id=auth_context.user_id)
    logger.debug(
        "Request authenticated",
        user_id=auth_context.user_id,
        role=auth_context.role,
    )
    return await call_next(request)
