"""
Authentication API endpoints.
Wallet sign-in by signed message and user lookup.
"""

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from ...core.dependencies import get_auth_service
from ...core.exceptions import SkillBadgeError
from ...models.user import WalletAuthRequest, WalletAuthResponse
from ...services.auth_service import AuthService
from ...utils.logger import get_logger
from .responses import error_response, exception_response

logger = get_logger("auth")

router = APIRouter(
    prefix="/api/auth",
    tags=["authentication"],
    responses={
        400: {"description": "Bad Request"},
        401: {"description": "Unauthorized"},
        404: {"description": "Not Found"},
        500: {"description": "Internal Server Error"}
    }
)


@router.post(
    "/wallet",
    summary="Wallet sign-in",
    description="Verify a signed message and register or log in the wallet's user"
)
async def wallet_login(
    body: WalletAuthRequest,
    auth_service: AuthService = Depends(get_auth_service)
):
    """
    Register or log in a user by wallet signature.

    Returns:
        {success, user} on success, {success: false, error} otherwise
    """
    try:
        result = await auth_service.authenticate_wallet(body.wallet_address, body.signature, body.message)
    except SkillBadgeError as e:
        return JSONResponse(
            status_code=e.status_code,
            content=WalletAuthResponse(success=False, error=e.message).model_dump(mode="json", exclude_none=True)
        )
    except Exception as e:
        logger.error(f"Wallet login endpoint error: {e}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": "Authentication failed"}
        )

    content = result.model_dump(mode="json", by_alias=True, exclude_none=True)
    if not result.success:
        return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content=content)
    return content


@router.get(
    "/user/{wallet_address}",
    summary="Get user by wallet",
    description="Return the user registered for a wallet address"
)
async def get_user(
    wallet_address: str,
    auth_service: AuthService = Depends(get_auth_service)
):
    try:
        user = await auth_service.get_user(wallet_address)
    except SkillBadgeError as e:
        return exception_response(e)
    except Exception as e:
        logger.error(f"Get user endpoint error: {e}", exc_info=True)
        return error_response(500, "Failed to get user", str(e))

    return user.model_dump(mode="json", by_alias=True)
