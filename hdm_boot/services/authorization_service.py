"""
Role-based permission checks.

Each permission lists the roles allowed to use it. Admins hold every
permission, including ones registered later. Unknown permissions are
denied for everyone else.
"""

from typing import Dict, Iterable, List, Optional

import structlog

from hdm_boot.models.user import User, UserRole

logger = structlog.get_logger(__name__)

ALL_ROLES = [UserRole.USER.value, UserRole.EDITOR.value, UserRole.ADMIN.value]
EDITORS = [UserRole.EDITOR.value, UserRole.ADMIN.value]
ADMINS = [UserRole.ADMIN.value]


DEFAULT_PERMISSIONS: Dict[str, List[str]] = {
    # User management
    "user.view": ALL_ROLES,
    "user.create": ADMINS,
    "user.edit": ADMINS,
    "user.delete": ADMINS,
    "user.manage": ADMINS,
    "user.statistics": ADMINS,

    # Administration
    "admin.access": ADMINS,
    "admin.users": ADMINS,
    "admin.security": ADMINS,
    "admin.statistics": ADMINS,

    # Articles
    "article.view": ALL_ROLES,
    "article.create": EDITORS,
    "article.edit": EDITORS,
    "article.delete": ADMINS,
    "article.publish": EDITORS,

    # Security
    "security.login": ALL_ROLES,
    "security.logout": ALL_ROLES,
    "security.refresh": ALL_ROLES,
}


class AuthorizationService:
    """Permission lookups for users and roles."""

    def __init__(self, permissions: Optional[Dict[str, List[str]]] = None):
        source = permissions if permissions is not None else DEFAULT_PERMISSIONS
        self.permissions: Dict[str, List[str]] = {key: list(roles) for key, roles in source.items()}

    def has_permission(self, user: User, permission: str) -> bool:
        role = user.role or UserRole.USER.value

        if role == UserRole.ADMIN.value:
            return True

        allowed_roles = self.permissions.get(permission)
        if allowed_roles is None:
            logger.warning("unknown_permission_requested", permission=permission, user_id=user.id)
            return False

        return role in allowed_roles

    def has_any_permission(self, user: User, permissions: Iterable[str]) -> bool:
        return any(self.has_permission(user, permission) for permission in permissions)

    def has_all_permissions(self, user: User, permissions: Iterable[str]) -> bool:
        return all(self.has_permission(user, permission) for permission in permissions)

    def get_user_permissions(self, user: User) -> List[str]:
        return sorted(
            permission for permission in self.permissions
            if self.has_permission(user, permission)
        )

    def get_all_permissions(self) -> Dict[str, List[str]]:
        return {key: list(roles) for key, roles in self.permissions.items()}

    def get_permissions_by_role(self, role: str) -> List[str]:
        if role == UserRole.ADMIN.value:
            return sorted(self.permissions)
        return sorted(
            permission for permission, roles in self.permissions.items()
            if role in roles
        )

    def can_access_admin(self, user: User) -> bool:
        return self.has_permission(user, "admin.access")

    def can_manage_users(self, user: User) -> bool:
        return self.has_permission(user, "user.manage")

    def can_view_user_statistics(self, user: User) -> bool:
        return self.has_permission(user, "user.statistics")

    def can_access_user(self, user: User, target_user_id: str) -> bool:
        """Users may always read themselves; others need user.view and user.manage."""
        if user.id == target_user_id:
            return True
        return self.has_all_permissions(user, ["user.view", "user.manage"])

    def add_permission(self, permission: str, allowed_roles: List[str]) -> None:
        self.permissions[permission] = list(allowed_roles)
        logger.info("permission_added", permission=permission, roles=allowed_roles)

    def remove_permission(self, permission: str) -> None:
        if self.permissions.pop(permission, None) is not None:
            logger.info("permission_removed", permission=permission)
