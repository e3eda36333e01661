"""
User repository for database operations.

Provides CRUD operations for users on a SQLAlchemy session bound to the
SQLite database. Every method logs a *_failed event and re-raises on
database errors.
"""

from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from hdm_boot.database import utcnow
from hdm_boot.models.user import User, UserRole, UserStatus

logger = structlog.get_logger(__name__)


class UserRepository:
    """Repository for user database operations."""

    def __init__(self, db: Session):
        """
        Initialize user repository.

        Args:
            db: SQLAlchemy session (request scoped)
        """
        self.db = db

    def create_user(
        self,
        email: str,
        name: str,
        password_hash: str,
        role: str = UserRole.USER.value,
        status: str = UserStatus.ACTIVE.value,
        email_verified: bool = False,
    ) -> User:
        """
        Create a new user.

        Args:
            email: Email address (unique)
            name: Display name
            password_hash: Hashed password
            role: User role
            status: Account status
            email_verified: Whether the email address is verified

        Returns:
            Created user

        Raises:
            ValueError: If the email already exists
        """
        user = User(
            email=email,
            name=name,
            password_hash=password_hash,
            role=role,
            status=status,
            email_verified=email_verified,
        )
        try:
            self.db.add(user)
            self.db.flush()
            logger.info("user_row_created", user_id=user.id, email=email, role=role)
            return user

        except IntegrityError as e:
            self.db.rollback()
            logger.warning("user_create_duplicate", email=email, error=str(e.orig))
            raise ValueError(f"Email '{email}' already exists") from e
        except SQLAlchemyError as e:
            logger.error("user_create_failed", error=str(e), email=email)
            raise

    def get_user_by_id(self, user_id: str) -> Optional[User]:
        try:
            return self.db.get(User, user_id)
        except SQLAlchemyError as e:
            logger.error("user_get_by_id_failed", error=str(e), user_id=user_id)
            raise

    def get_user_by_email(self, email: str) -> Optional[User]:
        try:
            return self.db.scalar(select(User).where(func.lower(User.email) == email.lower()))
        except SQLAlchemyError as e:
            logger.error("user_get_by_email_failed", error=str(e), email=email)
            raise

    def email_exists(self, email: str, exclude_user_id: Optional[str] = None) -> bool:
        try:
            query = select(func.count(User.id)).where(func.lower(User.email) == email.lower())
            if exclude_user_id:
                query = query.where(User.id != exclude_user_id)
            return (self.db.scalar(query) or 0) > 0
        except SQLAlchemyError as e:
            logger.error("user_email_exists_failed", error=str(e), email=email)
            raise

    def update_user(self, user: User, **fields: Any) -> User:
        """
        Update user fields.

        Args:
            user: Loaded user entity
            **fields: Column values to set

        Returns:
            Updated user
        """
        try:
            for key, value in fields.items():
                setattr(user, key, value)
            user.updated_at = utcnow()
            self.db.flush()
            logger.info("user_row_updated", user_id=user.id, fields=sorted(fields))
            return user

        except IntegrityError as e:
            self.db.rollback()
            logger.warning("user_update_duplicate", user_id=user.id, error=str(e.orig))
            raise ValueError("Email already exists") from e
        except SQLAlchemyError as e:
            logger.error("user_update_failed", error=str(e), user_id=user.id)
            raise

    def touch_last_login(self, user: User) -> None:
        try:
            user.last_login_at = utcnow()
            self.db.flush()
        except SQLAlchemyError as e:
            logger.error("user_touch_last_login_failed", error=str(e), user_id=user.id)
            raise

    def delete_user(self, user: User) -> None:
        """Hard delete."""
        try:
            self.db.delete(user)
            self.db.flush()
            logger.info("user_row_deleted", user_id=user.id)
        except SQLAlchemyError as e:
            logger.error("user_delete_failed", error=str(e), user_id=user.id)
            raise

    def _filtered(self, query, filters: Dict[str, Any]):
        if filters.get("role"):
            query = query.where(User.role == filters["role"])
        if filters.get("status"):
            query = query.where(User.status == filters["status"])
        if filters.get("search"):
            pattern = f"%{filters['search'].lower()}%"
            query = query.where(
                or_(func.lower(User.name).like(pattern), func.lower(User.email).like(pattern))
            )
        return query

    def list_users(
        self,
        filters: Optional[Dict[str, Any]] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[User]:
        """
        List users with filters and pagination, newest first.

        Args:
            filters: Optional role, status and search (name/email substring)
            limit: Maximum number of users to return
            offset: Number of users to skip

        Returns:
            List of users
        """
        try:
            query = self._filtered(select(User), filters or {})
            query = query.order_by(User.created_at.desc(), User.email).limit(limit).offset(offset)
            return list(self.db.scalars(query))
        except SQLAlchemyError as e:
            logger.error("user_list_failed", error=str(e), limit=limit, offset=offset)
            raise

    def count_users(self, filters: Optional[Dict[str, Any]] = None) -> int:
        try:
            query = self._filtered(select(func.count(User.id)), filters or {})
            return self.db.scalar(query) or 0
        except SQLAlchemyError as e:
            logger.error("user_count_failed", error=str(e))
            raise

    def count_by(self, column: str) -> Dict[str, int]:
        """Group counts by the role or status column."""
        attribute = {"role": User.role, "status": User.status}[column]
        try:
            rows = self.db.execute(select(attribute, func.count(User.id)).group_by(attribute))
            return {value: count for value, count in rows}
        except SQLAlchemyError as e:
            logger.error("user_count_by_failed", error=str(e), column=column)
            raise
