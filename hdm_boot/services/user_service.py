"""
User management service.

Business rules for creating, updating, authenticating and listing users.
Input validation collects per-field messages and raises a single
ValidationException so API clients see every problem at once.
"""

import re
from typing import Any, Dict, List, Optional

import structlog

from hdm_boot.exceptions import (
    AuthenticationException,
    ConflictException,
    NotFoundException,
    ValidationException,
)
from hdm_boot.models.events import UserWasDeleted, UserWasRegistered, UserWasUpdated
from hdm_boot.models.security import EMAIL_PATTERN
from hdm_boot.models.user import User, UserRole, UserStatus
from hdm_boot.repositories.user_repo import UserRepository
from hdm_boot.services.event_dispatcher import EventDispatcher
from hdm_boot.services.password import PasswordHasher

logger = structlog.get_logger(__name__)

ALLOWED_ROLES = [role.value for role in UserRole]
ALLOWED_STATUSES = [status.value for status in UserStatus]
UPDATABLE_FIELDS = ("name", "email", "role", "status")


# ============================================================================
# Validation
# ============================================================================


def validate_password(password: Optional[str], min_length: int = 8) -> List[str]:
    """Return password strength violations (empty when acceptable)."""
    if password is None or password == "":
        return ["Password is required"]
    if not isinstance(password, str):
        return ["Password must be a string"]

    errors = []
    if len(password) < min_length:
        errors.append(f"Password must be at least {min_length} characters long")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r"\d", password):
        errors.append("Password must contain at least one number")
    return errors


def validate_user_data(
    data: Dict[str, Any], partial: bool = False, min_password_length: int = 8
) -> Dict[str, List[str]]:
    """
    Validate user fields.

    Args:
        data: Field values (email, name, password, role, status)
        partial: Only validate the fields present (updates)
        min_password_length: Minimum password length

    Returns:
        Mapping of field name to error messages
    """
    errors: Dict[str, List[str]] = {}

    if not partial or "email" in data:
        email = (data.get("email") or "").strip()
        if not email:
            errors["email"] = ["Email is required"]
        elif not EMAIL_PATTERN.match(email):
            errors["email"] = ["Invalid email format"]

    if not partial or "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            errors["name"] = ["Name is required"]
        elif len(name) < 2:
            errors["name"] = ["Name must be at least 2 characters long"]

    if not partial:
        password_errors = validate_password(data.get("password"), min_password_length)
        if password_errors:
            errors["password"] = password_errors

    if "role" in data and data.get("role") is not None and data["role"] not in ALLOWED_ROLES:
        errors["role"] = [f"Invalid role. Allowed roles: {', '.join(ALLOWED_ROLES)}"]

    if "status" in data and data.get("status") is not None and data["status"] not in ALLOWED_STATUSES:
        errors["status"] = [f"Invalid status. Allowed statuses: {', '.join(ALLOWED_STATUSES)}"]

    return errors


# ============================================================================
# Service
# ============================================================================


class UserService:
    """User CRUD and credential checks."""

    def __init__(
        self,
        user_repo: UserRepository,
        hasher: PasswordHasher,
        dispatcher: Optional[EventDispatcher] = None,
        min_password_length: int = 8,
    ):
        self.user_repo = user_repo
        self.hasher = hasher
        self.dispatcher = dispatcher
        self.min_password_length = min_password_length

    def _dispatch(self, event) -> None:
        if self.dispatcher is not None:
            self.dispatcher.dispatch(event)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_user_by_id(self, user_id: str) -> Optional[User]:
        return self.user_repo.get_user_by_id(user_id)

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self.user_repo.get_user_by_email(email)

    def get_user_or_fail(self, user_id: str) -> User:
        user = self.user_repo.get_user_by_id(user_id)
        if user is None:
            raise NotFoundException("User not found")
        return user

    def list_users(
        self,
        filters: Optional[Dict[str, Any]] = None,
        page: int = 1,
        limit: int = 20,
        max_limit: int = 100,
    ) -> Dict[str, Any]:
        """
        List users with pagination.

        Args:
            filters: role, status, search
            page: 1-based page number (values below 1 become 1)
            limit: Page size clamped to 1..max_limit

        Returns:
            {"items": [...], "page": int, "limit": int, "total": int}
        """
        page = max(1, page)
        limit = max(1, min(limit, max_limit))
        clean_filters = {key: value for key, value in (filters or {}).items() if value}

        total = self.user_repo.count_users(clean_filters)
        items = self.user_repo.list_users(clean_filters, limit=limit, offset=(page - 1) * limit)
        return {"items": items, "page": page, "limit": limit, "total": total}

    def get_statistics(self) -> Dict[str, Any]:
        by_role = self.user_repo.count_by("role")
        by_status = self.user_repo.count_by("status")
        total = self.user_repo.count_users()
        active = by_status.get(UserStatus.ACTIVE.value, 0)
        return {
            "total": total,
            "active": active,
            "inactive": total - active,
            "admin": by_role.get(UserRole.ADMIN.value, 0),
            "editor": by_role.get(UserRole.EDITOR.value, 0),
            "user": by_role.get(UserRole.USER.value, 0),
            "by_status": by_status,
            "by_role": by_role,
        }

    # =========================================================================
    # Authentication
    # =========================================================================

    def authenticate(self, email: str, password: str) -> Optional[User]:
        """
        Check credentials.

        Returns:
            The user when the password matches and the account is active
        """
        user = self.user_repo.get_user_by_email(email)
        if user is None:
            logger.warning("authentication_failed_user_not_found", email=email)
            return None

        if not self.hasher.verify_password(password, user.password_hash):
            logger.warning("authentication_failed_invalid_password", email=email)
            return None

        if not user.is_active():
            logger.warning("authentication_failed_user_inactive", email=email, status=user.status)
            return None

        if self.hasher.needs_rehash(user.password_hash):
            self.user_repo.update_user(user, password_hash=self.hasher.hash_password(password))
            logger.info("password_rehashed", user_id=user.id)

        self.user_repo.touch_last_login(user)
        logger.info("user_authenticated", user_id=user.id)
        return user

    # =========================================================================
    # Commands
    # =========================================================================

    def create_user(
        self,
        data: Dict[str, Any],
        client_ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> User:
        """
        Create a user after validating input.

        Raises:
            ValidationException: Invalid fields (422)
            ConflictException: Email already registered (409)
        """
        errors = validate_user_data(data, min_password_length=self.min_password_length)
        if errors:
            raise ValidationException(errors, detail="Validation failed")

        email = data["email"].strip().lower()
        if self.user_repo.email_exists(email):
            logger.warning("user_create_conflict", email=email)
            raise ConflictException("User with this email already exists")

        try:
            user = self.user_repo.create_user(
                email=email,
                name=data["name"].strip(),
                password_hash=self.hasher.hash_password(data["password"]),
                role=data.get("role") or UserRole.USER.value,
                status=data.get("status") or UserStatus.ACTIVE.value,
                email_verified=bool(data.get("email_verified", False)),
            )
        except ValueError as e:
            raise ConflictException(str(e)) from e

        logger.info("user_created", user_id=user.id, email=user.email, role=user.role)
        self._dispatch(UserWasRegistered(
            user_id=user.id,
            email=user.email,
            name=user.name,
            role=user.role,
            client_ip=client_ip,
            user_agent=user_agent,
        ))
        return user

    def update_user(self, user_id: str, data: Dict[str, Any]) -> User:
        """
        Update name, email, role or status.

        Unknown fields are ignored. Email must stay unique.
        """
        user = self.get_user_or_fail(user_id)
        update_data = {
            key: value for key, value in data.items()
            if key in UPDATABLE_FIELDS and value is not None
        }
        if "email" in update_data:
            update_data["email"] = update_data["email"].strip().lower()
        if "name" in update_data:
            update_data["name"] = update_data["name"].strip()

        errors = validate_user_data(update_data, partial=True)
        if errors:
            raise ValidationException(errors, detail="Validation failed")

        if "email" in update_data and update_data["email"] != user.email:
            if self.user_repo.email_exists(update_data["email"], exclude_user_id=user.id):
                raise ConflictException("Email address is already in use")

        previous = {key: getattr(user, key) for key in UPDATABLE_FIELDS}
        event = UserWasUpdated.from_update_data(user.id, previous, update_data)
        if not event.has_changes():
            return user

        try:
            user = self.user_repo.update_user(user, **{key: update_data[key] for key in event.changed_fields})
        except ValueError as e:
            raise ConflictException(str(e)) from e

        logger.info("user_updated", user_id=user.id, changed_fields=event.changed_fields)
        self._dispatch(event)
        return user

    def change_password(self, user_id: str, current_password: str, new_password: str) -> None:
        user = self.get_user_or_fail(user_id)

        if not self.hasher.verify_password(current_password, user.password_hash):
            logger.warning("user_password_change_rejected", user_id=user_id)
            raise AuthenticationException.custom("Current password is incorrect")

        password_errors = validate_password(new_password, self.min_password_length)
        if password_errors:
            raise ValidationException({"new_password": password_errors}, detail="Validation failed")

        self.user_repo.update_user(user, password_hash=self.hasher.hash_password(new_password))
        logger.info("user_password_changed", user_id=user_id)

    def delete_user(self, user_id: str, deleted_by: Optional[str] = None) -> None:
        user = self.get_user_or_fail(user_id)
        email = user.email
        self.user_repo.delete_user(user)
        logger.info("user_deleted", user_id=user_id, deleted_by=deleted_by)
        self._dispatch(UserWasDeleted(user_id=user_id, email=email, deleted_by=deleted_by))

    def ensure_admin(self, email: str, password: str, name: str = "Administrator") -> Optional[User]:
        """Create the seed admin account unless the email is already taken."""
        if self.user_repo.get_user_by_email(email) is not None:
            return None
        user = self.user_repo.create_user(
            email=email.strip().lower(),
            name=name,
            password_hash=self.hasher.hash_password(password),
            role=UserRole.ADMIN.value,
            status=UserStatus.ACTIVE.value,
            email_verified=True,
        )
        logger.info("admin_user_seeded", user_id=user.id, email=user.email)
        return user
