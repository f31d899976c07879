"""
API request and response models for the auth server REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Mobile clients speak camelCase (accessToken, refreshToken, emailVerified), so
fields carry camelCase aliases. populate_by_name lets tests and internal code
build models with the snake_case names.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from auth.models import User

_CAMEL = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v2/auth/register."""

    model_config = _CAMEL

    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    name: str = Field(min_length=1, max_length=100)


class LoginRequest(BaseModel):
    """Request body for POST /api/v2/auth/login."""

    model_config = _CAMEL

    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class RefreshRequest(BaseModel):
    """Request body for POST /api/v2/auth/refresh."""

    model_config = _CAMEL

    refresh_token: str = Field(alias="refreshToken", min_length=1, max_length=4096)


class VerifyEmailRequest(BaseModel):
    """Request body for POST /api/v2/auth/verify-email. token is the JWT from the email link."""

    model_config = _CAMEL

    token: str = Field(min_length=1, max_length=4096)


class SendOTPRequest(BaseModel):
    model_config = _CAMEL

    email: EmailStr


class VerifyOTPRequest(BaseModel):
    model_config = _CAMEL

    email: EmailStr
    otp: str = Field(min_length=4, max_length=10, pattern=r"^[0-9]+$")


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v2/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "UP"
    message: str = "Auth Server is running"
    components: dict[str, str] = Field(default_factory=dict)


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class UserResponse(BaseModel):
    """Public view of a user. Never includes the password hash."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    email: str
    name: Optional[str] = None
    image: Optional[str] = None
    email_verified: Optional[str] = Field(default=None, alias="emailVerified")
    created_at: Optional[str] = Field(default=None, alias="createdAt")

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            image=user.image,
            email_verified=user.email_verified,
            created_at=user.created_at,
        )


class TokenPair(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    access_token: str = Field(alias="accessToken")
    refresh_token: str = Field(alias="refreshToken")


class LoginResponse(BaseModel):
    """Response for a successful password, OTP or Google login."""

    model_config = ConfigDict(frozen=True)

    message: str = "Login successful"
    tokens: TokenPair
    user: UserResponse


class RegisterResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    user: UserResponse


class RefreshResponse(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    message: str = "Token refreshed successfully"
    access_token: str = Field(alias="accessToken")


class SessionResponse(BaseModel):
    """Response for GET /api/v2/session and /api/v2/profile."""

    model_config = ConfigDict(frozen=True)

    success: bool = True
    user: UserResponse
