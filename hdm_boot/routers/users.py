"""
User management API router.

Provides REST API endpoints for:
- Listing users with filters and pagination
- Creating, reading, updating and deleting users
- Changing the caller's own password
- User statistics for administrators

All endpoints need a bearer token. Errors are RFC 7807 problems.
"""

from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, Query, status

from hdm_boot.dependencies import (
    PaginationParams,
    get_authorization_service,
    get_client_ip,
    get_current_user,
    get_pagination_params,
    get_user_agent,
    get_user_service,
    require_permission,
)
from hdm_boot.exceptions import AuthorizationException
from hdm_boot.models.user import (
    ChangePasswordRequest,
    CreateUserRequest,
    PaginationMeta,
    UpdateUserRequest,
    User,
    UserListResponse,
    UserResponse,
)
from hdm_boot.services.authorization_service import AuthorizationService
from hdm_boot.services.user_service import UserService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/users", tags=["Users"])
admin_router = APIRouter(prefix="/api/admin/users", tags=["Users"])

# Fields a user may change on their own account
SELF_EDITABLE_FIELDS = {"name", "email"}


# ============================================================================
# USER ENDPOINTS
# ============================================================================


@router.get("", response_model=UserListResponse, summary="List Users")
def list_users(
    role: Optional[str] = Query(None, description="Filter by role"),
    user_status: Optional[str] = Query(None, alias="status", description="Filter by status"),
    search: Optional[str] = Query(None, description="Substring of name or email"),
    pagination: PaginationParams = Depends(get_pagination_params),
    user: User = Depends(require_permission("user.view", "user.manage")),
    user_service: UserService = Depends(get_user_service),
) -> UserListResponse:
    result = user_service.list_users(
        {"role": role, "status": user_status, "search": search},
        page=pagination.page,
        limit=pagination.limit,
    )
    return UserListResponse(
        data=[UserResponse.from_user(item) for item in result["items"]],
        pagination=PaginationMeta.build(result["page"], result["limit"], result["total"]),
    )


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Create User",
    description="""
    Create a user account.

    **Error Responses:**
    - 403: Missing user.create permission
    - 409: Email already registered
    - 422: Invalid fields (per-field errors in validation_errors)
    """,
)
def create_user(
    payload: CreateUserRequest,
    user: User = Depends(require_permission("user.create")),
    user_service: UserService = Depends(get_user_service),
    client_ip: str = Depends(get_client_ip),
    user_agent: Optional[str] = Depends(get_user_agent),
) -> Dict[str, Any]:
    created = user_service.create_user(payload.model_dump(), client_ip=client_ip, user_agent=user_agent)
    logger.info("user_created_via_api", user_id=created.id, created_by=user.id)
    return {
        "success": True,
        "message": "User created successfully",
        "data": UserResponse.from_user(created).model_dump(),
    }


@router.get("/{user_id}", summary="Get User")
def get_user(
    user_id: str,
    user: User = Depends(get_current_user),
    authorization: AuthorizationService = Depends(get_authorization_service),
    user_service: UserService = Depends(get_user_service),
) -> Dict[str, Any]:
    if not authorization.can_access_user(user, user_id):
        logger.warning("user_access_denied", user_id=user.id, target_user_id=user_id)
        raise AuthorizationException.ownership_required("user")

    target = user_service.get_user_or_fail(user_id)
    return {"success": True, "data": UserResponse.from_user(target).model_dump()}


@router.put("/{user_id}", summary="Update User")
def update_user(
    user_id: str,
    payload: UpdateUserRequest,
    user: User = Depends(get_current_user),
    authorization: AuthorizationService = Depends(get_authorization_service),
    user_service: UserService = Depends(get_user_service),
) -> Dict[str, Any]:
    """
    Update a user.

    Holders of user.edit may change any field. Users without it may change
    the name and email of their own account only.
    """
    data = payload.model_dump(exclude_none=True)

    if not authorization.has_permission(user, "user.edit"):
        if user.id != user_id:
            raise AuthorizationException.insufficient_permissions("user.edit")
        forbidden = sorted(set(data) - SELF_EDITABLE_FIELDS)
        if forbidden:
            logger.warning("user_self_update_denied", user_id=user.id, fields=forbidden)
            raise AuthorizationException.custom(
                f"You may only change these fields: {', '.join(sorted(SELF_EDITABLE_FIELDS))}"
            )

    updated = user_service.update_user(user_id, data)
    return {
        "success": True,
        "message": "User updated successfully",
        "data": UserResponse.from_user(updated).model_dump(),
    }


@router.delete("/{user_id}", summary="Delete User")
def delete_user(
    user_id: str,
    user: User = Depends(require_permission("user.delete")),
    user_service: UserService = Depends(get_user_service),
) -> Dict[str, Any]:
    if user.id == user_id:
        raise AuthorizationException.custom("You cannot delete your own account")

    user_service.delete_user(user_id, deleted_by=user.id)
    return {"success": True, "message": "User deleted successfully"}


@router.post("/{user_id}/password", summary="Change Password")
def change_password(
    user_id: str,
    payload: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    user_service: UserService = Depends(get_user_service),
) -> Dict[str, Any]:
    if user.id != user_id:
        raise AuthorizationException.ownership_required("user")

    user_service.change_password(user_id, payload.current_password, payload.new_password)
    return {"success": True, "message": "Password changed successfully"}


# ============================================================================
# ADMIN ENDPOINTS
# ============================================================================


@admin_router.get("/statistics", summary="User Statistics")
def user_statistics(
    user: User = Depends(require_permission("user.statistics")),
    user_service: UserService = Depends(get_user_service),
) -> Dict[str, Any]:
    return {"success": True, "data": user_service.get_statistics()}
