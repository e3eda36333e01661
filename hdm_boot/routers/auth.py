"""
Authentication API router.

Provides REST API endpoints for:
- Login with email and password (JWT issue)
- Token refresh
- Logout
- Current user info
- CSRF token issue for browser forms
- Login attempt statistics for administrators

Errors are RFC 7807 problems: 401 bad credentials or token, 422 invalid
input, 429 throttled.
"""

from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, Request, status

from hdm_boot.database import utcnow
from hdm_boot.dependencies import (
    get_auth_service,
    get_bearer_token,
    get_client_ip,
    get_csrf_service,
    get_current_user,
    get_login_throttler,
    get_user_agent,
    require_permission,
)
from hdm_boot.exceptions import AuthenticationException
from hdm_boot.models.security import JwtToken, LoginRequest, TokenData, TokenResponse
from hdm_boot.models.user import User
from hdm_boot.services.auth_service import AuthenticationService
from hdm_boot.services.csrf_service import CsrfService
from hdm_boot.services.login_throttler import LoginThrottler

logger = structlog.get_logger(__name__)

auth_router = APIRouter(prefix="/api/auth", tags=["Authentication"])
csrf_router = APIRouter(prefix="/api", tags=["Authentication"])
security_admin_router = APIRouter(prefix="/api/admin/security", tags=["Authentication"])


def token_data(user: User, token: JwtToken) -> TokenData:
    return TokenData(
        token=token.token,
        expires_in=token.time_to_expiration(),
        expires_at=token.expires_at.isoformat(),
        user=user.to_summary(),
    )


# ============================================================================
# AUTHENTICATION ENDPOINTS
# ============================================================================


@auth_router.post(
    "/login",
    response_model=TokenResponse,
    status_code=status.HTTP_200_OK,
    summary="User Login",
    description="""
    Authenticate with email and password and receive a JWT access token.

    **Error Responses:**
    - 401: Invalid email or password
    - 422: Invalid request body
    - 429: Too many login attempts
    """,
)
def login(
    login_request: LoginRequest,
    auth_service: AuthenticationService = Depends(get_auth_service),
    client_ip: str = Depends(get_client_ip),
    user_agent: Optional[str] = Depends(get_user_agent),
) -> TokenResponse:
    user, token = auth_service.authenticate_for_api(
        login_request.email, login_request.password, client_ip, user_agent
    )
    return TokenResponse(message="Login successful", data=token_data(user, token))


@auth_router.post("/refresh", summary="Refresh Access Token")
def refresh(
    token: Optional[str] = Depends(get_bearer_token),
    auth_service: AuthenticationService = Depends(get_auth_service),
) -> Dict[str, Any]:
    """Exchange a still-valid token for a fresh one."""
    if not token:
        raise AuthenticationException.missing_credentials()

    user, refreshed = auth_service.refresh(token)
    return {
        "success": True,
        "message": "Token refreshed successfully",
        "data": token_data(user, refreshed).model_dump(),
    }


@auth_router.post("/logout", summary="Logout")
def logout(
    user: User = Depends(get_current_user),
    token: Optional[str] = Depends(get_bearer_token),
    auth_service: AuthenticationService = Depends(get_auth_service),
) -> Dict[str, Any]:
    auth_service.logout(user, channel="api")
    if token:
        auth_service.invalidate_token(token)
    return {
        "success": True,
        "message": "Logout successful",
        "data": {"logged_out_at": utcnow().isoformat()},
    }


@auth_router.get("/me", summary="Current User")
def me(request: Request, user: User = Depends(get_current_user)) -> Dict[str, Any]:
    token: Optional[JwtToken] = getattr(request.state, "token", None)
    token_info = None
    if token is not None:
        token_info = {
            "expires_at": token.expires_at.isoformat(),
            "expires_in": token.time_to_expiration(),
            "is_expired": token.is_expired(),
        }
    return {
        "success": True,
        "data": {"user": user.to_dict(), "token_info": token_info},
    }


# ============================================================================
# CSRF
# ============================================================================


@csrf_router.get("/csrf-token", summary="Issue CSRF Token")
def csrf_token(action: str = "default", csrf: CsrfService = Depends(get_csrf_service)) -> Dict[str, str]:
    return {"csrf_token": csrf.generate_token(action), "action": action}


# ============================================================================
# ADMIN
# ============================================================================


@security_admin_router.get("/statistics", summary="Login Statistics")
def login_statistics(
    user: User = Depends(require_permission("admin.security")),
    throttler: LoginThrottler = Depends(get_login_throttler),
) -> Dict[str, Any]:
    return {"success": True, "data": throttler.get_login_statistics()}
