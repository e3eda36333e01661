"""
User management models.

Provides both the SQLAlchemy ORM model and the Pydantic schemas for:
- User entities (database and API)
- Create / update / password change requests
- Paginated list responses
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field
from sqlalchemy import Boolean, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from hdm_boot.database import Base, utcnow


# ============================================================================
# Enums
# ============================================================================


class UserRole(str, Enum):
    """
    User roles.

    - ADMIN: every permission, user management
    - EDITOR: article authoring and publishing
    - USER: read access
    """
    USER = "user"
    EDITOR = "editor"
    ADMIN = "admin"


class UserStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    PENDING = "pending"


# ============================================================================
# SQLAlchemy Models
# ============================================================================


class User(Base):
    """
    User account.

    Passwords are stored as bcrypt hashes. Timestamps are naive UTC.
    """
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4())
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False
    )
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False
    )
    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False
    )
    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=UserRole.USER.value
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=UserStatus.ACTIVE.value
    )
    email_verified: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False
    )
    last_login_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=utcnow,
        onupdate=utcnow
    )

    __table_args__ = (
        Index("idx_users_email", "email"),
        Index("idx_users_role", "role"),
        Index("idx_users_status", "status"),
    )

    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE.value

    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    def to_dict(self) -> Dict[str, Any]:
        """Public representation (never includes the password hash)."""
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "status": self.status,
            "email_verified": bool(self.email_verified),
            "last_login_at": self.last_login_at.isoformat() if self.last_login_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def to_summary(self) -> Dict[str, Any]:
        return {"id": self.id, "email": self.email, "name": self.name, "role": self.role}

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"


# ============================================================================
# Pydantic Request Models
# ============================================================================


class CreateUserRequest(BaseModel):
    """
    Create user request.

    Business validation (email format, password strength, role) happens in
    UserService so that every caller gets the same per-field errors.
    """
    email: Optional[str] = Field(None, description="Email address")
    name: Optional[str] = Field(None, description="Display name (2+ characters)")
    password: Optional[str] = Field(None, description="Password (8+ chars, upper, lower, digit)")
    role: str = Field(default=UserRole.USER.value, description="user|editor|admin")
    status: str = Field(default=UserStatus.ACTIVE.value, description="Initial status")

    model_config = {
        "json_schema_extra": {
            "example": {
                "email": "jane@example.com",
                "name": "Jane Doe",
                "password": "SecurePass123",
                "role": "editor"
            }
        }
    }


class UpdateUserRequest(BaseModel):
    """Partial update; omitted fields stay unchanged."""
    email: Optional[str] = None
    name: Optional[str] = None
    role: Optional[str] = None
    status: Optional[str] = None

    model_config = {
        "json_schema_extra": {
            "example": {"name": "Jane Smith", "status": "inactive"}
        }
    }


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=1)


# ============================================================================
# Pydantic Response Models
# ============================================================================


class UserResponse(BaseModel):
    """User response schema (without password hash)."""
    id: str
    email: str
    name: str
    role: str
    status: str
    email_verified: bool = False
    last_login_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(**user.to_dict())


class PaginationMeta(BaseModel):
    current_page: int
    per_page: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, page: int, per_page: int, total: int) -> "PaginationMeta":
        total_pages = (total + per_page - 1) // per_page if total else 0
        return cls(
            current_page=page,
            per_page=per_page,
            total=total,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        )


class UserListResponse(BaseModel):
    success: bool = True
    data: List[UserResponse]
    pagination: PaginationMeta
