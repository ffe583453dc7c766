"""
API request and response models for the marketplace auth endpoints.

These Pydantic v2 models define the HTTP transport contract. They are kept
separate from the dataclasses in auth/models.py, which own the internal
domain shape. Route handlers map between the two with UserResponse.from_user.

Role is validated here, at deserialization, so nothing past the route layer
ever sees a free-form role string. password_hash never appears in any
response model.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from auth.credentials import MAX_PASSWORD_BYTES
from auth.models import Role, User


def _check_password_bytes(value: str) -> str:
    if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes when UTF-8 encoded")
    return value


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: EmailStr = Field(max_length=255)
    password: str = Field(min_length=8, max_length=64)
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    role: Role = Role.customer

    @field_validator("role")
    @classmethod
    def reject_admin_self_registration(cls, value: Role) -> Role:
        """Admins are provisioned out of band, never through the public form."""
        if value == Role.admin:
            raise ValueError("role must be 'customer' or 'supplier'")
        return value

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        """bcrypt compares 72 bytes at most; multi-byte characters count in full."""
        return _check_password_bytes(value)


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: EmailStr = Field(max_length=255)
    password: str = Field(min_length=1, max_length=64)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return _check_password_bytes(value)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of a user. Excludes the password hash and token epoch."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    role: Role
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_active: bool
    is_approved: bool
    last_login: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            role=user.role,
            first_name=user.first_name,
            last_name=user.last_name,
            is_active=user.is_active,
            is_approved=user.is_approved,
            last_login=user.last_login,
            created_at=user.created_at,
        )


class RegisterResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    user: UserResponse
    token: str
    requires_approval: bool


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    user: UserResponse
    token: str


class MeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user: UserResponse


class MessageResponse(BaseModel):
    """Plain {"message": ...} body, also the shape of every error response."""

    model_config = ConfigDict(frozen=True)

    message: str


class PendingSuppliersResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    suppliers: list[UserResponse]


class SupplierApprovedResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    supplier: UserResponse


class UserDeactivatedResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    user: UserResponse


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
