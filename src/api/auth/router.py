from fastapi import APIRouter

from src.api.core.dependencies import AuthContextDep, TokenBlacklistDep
from src.api.core.messages import APIResponse, MessageCode
from src.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

LogoutResponse = APIResponse[dict[str, bool]]


@router.post("/logout", response_model=LogoutResponse)
async def logout(
    auth_context: AuthContextDep,
    blacklist: TokenBlacklistDep,
) -> LogoutResponse:
    """Revoke the bearer token used for this request."""
    revoked = await blacklist.revoke(auth_context.token)
    logger.info("User logged out", user_id=auth_context.user_id, revoked=revoked)
    return APIResponse.success(
        message_code=MessageCode.LOGGED_OUT, data={"revoked": revoked}
    )
