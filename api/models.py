"""
API request and response models for CourseGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
catalog/models.py, which own the internal domain representation. Route
handlers map between the two.

Input rules mirror the platform's registration form: passwords need 8-128
characters with at least one lowercase letter, one uppercase letter and one
digit; names allow letters, spaces, hyphens and apostrophes.
"""

import re
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from auth.models import SessionResult, TokenPair, User

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
NAME_PATTERN = r"^[a-zA-Z\s'-]+$"

_LOWER = re.compile(r"[a-z]")
_UPPER = re.compile(r"[A-Z]")
_DIGIT = re.compile(r"\d")


def _check_password_strength(value: str) -> str:
    if not (_LOWER.search(value) and _UPPER.search(value) and _DIGIT.search(value)):
        raise ValueError("Password must contain at least one lowercase letter, one uppercase letter, and one number")
    return value


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RegistrationRoleEnum(str, Enum):
    """Roles open to self-registration. Admins are created via the CLI."""

    student = "student"
    instructor = "instructor"


class RoleEnum(str, Enum):
    admin = "admin"
    instructor = "instructor"
    student = "student"


# ---------------------------------------------------------------------------
# Auth request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=8, max_length=128)
    first_name: str = Field(min_length=2, max_length=100, pattern=NAME_PATTERN)
    last_name: str = Field(min_length=2, max_length=100, pattern=NAME_PATTERN)
    role: RegistrationRoleEnum = RegistrationRoleEnum.student

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, value: str) -> str:
        return value.lower()

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        return _check_password_strength(value)


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    # No strength rules here: login must not reveal the password policy.
    password: str = Field(min_length=1, max_length=255)


class RefreshRequest(BaseModel):
    """Request body for POST /api/v1/auth/refresh.

    refresh_token is optional: browser clients send it as a cookie instead.
    """

    refresh_token: Optional[str] = Field(default=None, max_length=4096)


class ChangePasswordRequest(BaseModel):
    """Request body for POST /api/v1/auth/change-password."""

    current_password: str = Field(min_length=1, max_length=255)
    new_password: str = Field(min_length=8, max_length=128)
    confirm_password: str

    @field_validator("new_password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        return _check_password_strength(value)

    @model_validator(mode="after")
    def passwords_match(self) -> "ChangePasswordRequest":
        if self.confirm_password != self.new_password:
            raise ValueError("Password confirmation does not match")
        return self


# ---------------------------------------------------------------------------
# Auth response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of a user. Never includes the password hash or refresh token."""

    model_config = ConfigDict(frozen=True)

    id: int
    uuid: str
    email: str
    first_name: str
    last_name: str
    role: str
    is_active: bool
    created_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            uuid=user.uuid or "",
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            role=user.role,
            is_active=user.is_active,
            created_at=user.created_at or "",
        )


class TokenPairResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    refresh_expires_in: int

    @classmethod
    def from_pair(cls, tokens: TokenPair) -> "TokenPairResponse":
        return cls(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_in=tokens.access_expires_in,
            refresh_expires_in=tokens.refresh_expires_in,
        )


class SessionResponse(TokenPairResponse):
    """Response for register and login: the user plus a fresh token pair."""

    user: UserResponse

    @classmethod
    def from_result(cls, result: SessionResult) -> "SessionResponse":
        tokens = result.tokens
        return cls(
            user=UserResponse.from_user(result.user),
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_in=tokens.access_expires_in,
            refresh_expires_in=tokens.refresh_expires_in,
        )


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


# ---------------------------------------------------------------------------
# User management (admin)
# ---------------------------------------------------------------------------


class UserPatch(BaseModel):
    """Request body for PATCH /api/v1/users/{id}. All fields optional."""

    role: Optional[RoleEnum] = None
    is_active: Optional[bool] = None


# ---------------------------------------------------------------------------
# Courses
# ---------------------------------------------------------------------------


class CourseCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=5, max_length=255)


class CourseResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    uuid: str
    title: str
    instructor_id: int
    created_at: str
    # Personalization for logged-in callers; None for anonymous requests.
    is_enrolled: Optional[bool] = None


class EnrollmentResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    course_id: int
    user_id: int
    status: str
    enrolled_at: str


class CourseContentResponse(BaseModel):
    """Protected course content, annotated with how access was granted."""

    model_config = ConfigDict(frozen=True)

    course_id: int
    title: str
    view_mode: str
    can_edit: bool


# ---------------------------------------------------------------------------
# Errors and health
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
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
