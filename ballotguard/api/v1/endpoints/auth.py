"""Authentication endpoints."""
import structlog
from fastapi import APIRouter, HTTPException, Request, Response

from ballotguard.core import config
from ballotguard.core.rate_limit import RATE_LIMITS, limiter
from ballotguard.core.security import create_access_token, verify_admin_password
from ballotguard.schemas import AdminLoginRequest, SuccessResponse

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/admin/login", response_model=SuccessResponse)
@limiter.limit(RATE_LIMITS["admin_login"])
async def admin_login(request: Request, credentials: AdminLoginRequest, response: Response) -> SuccessResponse:
    """
    Authenticate the administrator and set a JWT in an httpOnly cookie.

    The token names the ``admin`` role; permissions are resolved from it on
    every authenticated request.

    Raises:
        HTTPException: 401 if the password is wrong

    Example:
        Request:
            POST /api/v1/auth/admin/login
            {"password": "your-secure-password"}

        Response (200):
            {"success": true, "message": "Logged in successfully"}
            Set-Cookie: admin_token=eyJhbGc...; HttpOnly; SameSite=Lax
    """
    if not verify_admin_password(credentials.password):
        logger.warning("admin_login_failed")
        raise HTTPException(status_code=401, detail="Invalid password")

    access_token = create_access_token(data={"role": "admin"})

    response.set_cookie(
        key="admin_token",
        value=access_token,
        httponly=True,
        secure=config.settings.ENVIRONMENT == "production",  # HTTPS only in production
        samesite="lax",
        max_age=config.settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )
    logger.info("admin_logged_in")
    return SuccessResponse(success=True, message="Logged in successfully")


@router.post("/admin/logout", response_model=SuccessResponse)
async def admin_logout(response: Response) -> SuccessResponse:
    """Clear the admin cookie. Works whether or not the caller is logged in."""
    response.delete_cookie(key="admin_token")
    return SuccessResponse(success=True, message="Logged out successfully")
