"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic beyond trivial
conversions). Stores, the session manager and routes do the work.

Layer rule: no imports from api/ or catalog/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    admin = "admin"
    instructor = "instructor"
    student = "student"


class ViewMode(str, Enum):
    """How a caller is allowed to see a course's protected content.

    Produced by auth.policy.require_enrolled_or_instructor and consumed by
    content filtering downstream (e.g. whether full lesson URLs are revealed).
    """

    admin = "admin"
    instructor = "instructor"
    enrolled = "enrolled"


@dataclass
class User:
    """A persisted account.

    email is stored lower-cased; the store compares case-insensitively and the
    UNIQUE index on the column is the last line of defence against duplicates.

    refresh_token holds the single refresh token currently accepted for this
    user. None means no session can be refreshed (logged out, password changed,
    or never logged in).
    """

    email: str
    role: str  # "admin", "instructor", "student"
    id: int | None = None
    uuid: str | None = None
    hashed_password: str | None = None
    first_name: str = ""
    last_name: str = ""
    is_active: bool = True
    refresh_token: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class Identity:
    """The authenticated caller for the lifetime of one request. Never persisted."""

    id: int
    uuid: str
    email: str
    role: str
    is_active: bool

    @classmethod
    def from_user(cls, user: User) -> Identity:
        return cls(
            id=user.id,
            uuid=user.uuid or "",
            email=user.email,
            role=user.role,
            is_active=user.is_active,
        )


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    access_expires_in: int  # seconds
    refresh_expires_in: int  # seconds


@dataclass(frozen=True)
class SessionResult:
    """Success payload of register, login and refresh."""

    user: User
    tokens: TokenPair
