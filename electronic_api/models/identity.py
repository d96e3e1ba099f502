"""
Identity models: users, roles and the authentication API schemas.

Provides both SQLAlchemy ORM models and Pydantic schemas for:
- User accounts and roles (database)
- Registration, login and password management requests
- JWT token responses and the authenticated principal

Uses SQLAlchemy 2.0 declarative syntax with async compatibility.
"""

from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Table, Uuid, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# SQLAlchemy Base
# ============================================================================


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


# ============================================================================
# SQLAlchemy Models
# ============================================================================


user_roles = Table(
    "user_roles",
    Base.metadata,
    Column(
        "user_id",
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
        nullable=False
    ),
    Column(
        "role_id",
        Uuid,
        ForeignKey("roles.id", ondelete="CASCADE"),
        primary_key=True,
        nullable=False
    ),
    Index("idx_user_roles_role_id", "role_id"),
)


class User(Base):
    """
    User account.

    Stores credentials (bcrypt hash), lockout state and the security stamp
    that invalidates outstanding password reset tokens when it changes.
    """
    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_name: Mapped[str] = mapped_column(String(256), nullable=False)
    normalized_user_name: Mapped[str] = mapped_column(String(256), unique=True, nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    normalized_email: Mapped[Optional[str]] = mapped_column(String(256), nullable=True, index=True)
    email_confirmed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    password_hash: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    security_stamp: Mapped[str] = mapped_column(String(64), nullable=False)
    concurrency_stamp: Mapped[str] = mapped_column(String(64), nullable=False)
    phone_number: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    lockout_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    lockout_end: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    access_failed_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=text("CURRENT_TIMESTAMP")
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        onupdate=utcnow
    )

    roles: Mapped[List["RoleModel"]] = relationship(
        "RoleModel",
        secondary=user_roles,
        back_populates="users",
        lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, user_name='{self.user_name}')>"

    @property
    def role_names(self) -> List[str]:
        return sorted(role.name for role in self.roles)


class RoleModel(Base):
    """Named role; users hold roles through user_roles."""
    __tablename__ = "roles"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    normalized_name: Mapped[str] = mapped_column(String(256), unique=True, nullable=False)
    concurrency_stamp: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    users: Mapped[List[User]] = relationship(
        "User",
        secondary=user_roles,
        back_populates="roles",
        lazy="noload"
    )

    def __repr__(self) -> str:
        return f"<RoleModel(id={self.id}, name='{self.name}')>"


# ============================================================================
# Pydantic Request Models
# ============================================================================


class RegisterRequest(BaseModel):
    """Self-registration request. Password rules are applied by the identity service."""
    user_name: str = Field(..., min_length=3, max_length=256, description="User name")
    email: EmailStr = Field(..., description="Email address")
    password: str = Field(..., min_length=1, max_length=128, description="Password")
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)

    model_config = {
        "json_schema_extra": {
            "example": {
                "user_name": "jane",
                "email": "jane@example.com",
                "password": "Passw0rdX",
                "first_name": "Jane",
                "last_name": "Doe"
            }
        }
    }


class LoginRequest(BaseModel):
    """Login request schema."""
    user_name: str = Field(..., min_length=1, max_length=256, description="User name")
    password: str = Field(..., min_length=1, description="Password")

    model_config = {
        "json_schema_extra": {
            "example": {
                "user_name": "jane",
                "password": "Passw0rdX"
            }
        }
    }


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=1, max_length=128)


class ForgotPasswordRequest(BaseModel):
    user_name: str = Field(..., min_length=1, max_length=256)


class ResetPasswordRequest(BaseModel):
    user_name: str = Field(..., min_length=1, max_length=256)
    token: str = Field(..., min_length=10)
    new_password: str = Field(..., min_length=1, max_length=128)


class UpdateUserRequest(BaseModel):
    """Profile update; omitted fields are left unchanged."""
    email: Optional[EmailStr] = None
    phone_number: Optional[str] = Field(None, max_length=32)
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    address: Optional[str] = Field(None, max_length=500)


# ============================================================================
# Pydantic Response Models
# ============================================================================


class TokenResponse(BaseModel):
    """JWT token response schema."""
    access_token: str = Field(..., min_length=10, description="JWT access token")
    token_type: str = Field(default="Bearer", description="Token type")
    expires_in: int = Field(..., gt=0, description="Token lifetime in seconds")
    expires_at: datetime = Field(..., description="Expiry timestamp (UTC)")

    model_config = {
        "json_schema_extra": {
            "example": {
                "access_token": "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9...",
                "token_type": "Bearer",
                "expires_in": 3600,
                "expires_at": "2025-01-15T11:30:00Z"
            }
        }
    }


class PasswordResetTokenResponse(BaseModel):
    """Issued reset token; only returned to the caller in development."""
    message: str
    reset_token: Optional[str] = None


class UserResponse(BaseModel):
    """User information response schema."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_name: str
    email: Optional[str] = None
    phone_number: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    address: Optional[str] = None
    roles: List[str] = Field(default_factory=list)
    created_at: datetime

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            user_name=user.user_name,
            email=user.email,
            phone_number=user.phone_number,
            first_name=user.first_name,
            last_name=user.last_name,
            address=user.address,
            roles=user.role_names,
            created_at=user.created_at,
        )


class ErrorResponse(BaseModel):
    """Error response schema."""
    detail: str = Field(..., min_length=1, description="Error message")
    errors: Optional[List[str]] = Field(None, description="Individual rule violations")


# ============================================================================
# Authenticated Principal
# ============================================================================


class TokenPrincipal(BaseModel):
    """
    Identity carried by a validated bearer token.

    Built from the token claims alone; set on request.state.user by the
    authentication middleware.
    """
    model_config = ConfigDict(frozen=True)

    id: UUID
    user_name: str
    email: Optional[str] = None
    roles: List[str] = Field(default_factory=list)
    token_id: Optional[str] = None
    expires_at: datetime

    def has_role(self, role: str) -> bool:
        """Role comparison is case-insensitive."""
        wanted = role.upper()
        return any(r.upper() == wanted for r in self.roles)

    def has_any_role(self, roles: List[str]) -> bool:
        return any(self.has_role(role) for role in roles)
