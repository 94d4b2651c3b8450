"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and authorization.

Token extraction order:
  1. Authorization: Bearer <token> header -- API clients.
  2. Same-named cookie ("access_token" / "refresh_token") -- browser clients,
     set httpOnly by the login/register/refresh routes.

The helpers raise AuthError subclasses, never HTTPException. api/main.py owns
the single mapping from error class to status code, so every gate produces
the same envelope.

try_get_current_identity() is the soft variant (None on any auth failure).
get_current_identity() is the hard gate.
require_roles() / require_min_role() build role gates.
require_course_owner_or_admin / require_enrolled_or_instructor add ownership
checks against the resource-ownership store on app.state.catalog, reading the
course reference from the "course_id" path parameter.

Layer rule: this module may import fastapi because it is part of the FastAPI
dependency injection system. It reaches collaborators only through
request.app.state.
"""

from __future__ import annotations

from fastapi import Depends, Request

from auth.authenticator import Authenticator
from auth.errors import ForbiddenError
from auth.models import Identity, Role, ViewMode
from auth.policy import (
    ResourceOwnership,
    require_enrolled_or_instructor as _enrolled_or_instructor,
    require_min_role as _min_role,
    require_owner_or_admin as _owner_or_admin,
    require_role,
)

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"


def extract_token(request: Request, cookie_name: str = ACCESS_COOKIE) -> str | None:
    """Return the bearer token from the Authorization header, else the named cookie."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        if token:
            return token
    return request.cookies.get(cookie_name) or None


def _authenticator(request: Request) -> Authenticator:
    return request.app.state.authenticator


def try_get_current_identity(request: Request) -> Identity | None:
    """Attach the caller's identity if a valid access token is present; never raises AuthError.

    For endpoints that personalize output for logged-in users without
    requiring login.
    """
    return _authenticator(request).authenticate_optional(extract_token(request))


def get_current_identity(request: Request) -> Identity:
    """Require authentication.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(identity: Identity = Depends(get_current_identity)): ...
    """
    identity = _authenticator(request).authenticate(extract_token(request))
    request.state.identity = identity
    return identity


def require_roles(*roles: str):
    """Dependency factory: caller's role must be one of `roles`."""

    def dependency(identity: Identity = Depends(get_current_identity)) -> Identity:
        require_role(identity, *roles)
        return identity

    return dependency


def require_min_role(min_role: str):
    """Dependency factory: caller's role must rank at least `min_role`."""

    def dependency(identity: Identity = Depends(get_current_identity)) -> Identity:
        _min_role(identity, min_role)
        return identity

    return dependency


def require_course_owner_or_admin(
    request: Request,
    course_id: str,
    identity: Identity = Depends(get_current_identity),
) -> Identity:
    """Allow admins, or the course's instructor while they still hold the instructor role."""
    if identity.role not in (Role.admin.value, Role.instructor.value):
        raise ForbiddenError("Only instructors and admins can perform this action.")
    catalog: ResourceOwnership = request.app.state.catalog
    _owner_or_admin(identity, course_id, catalog)
    return identity


def require_enrolled_or_instructor(
    request: Request,
    course_id: str,
    identity: Identity = Depends(get_current_identity),
) -> ViewMode:
    """Allow admins, the course instructor, or enrolled students.

    Returns the ViewMode and also stores it on request.state.view_mode for
    handlers that filter content further down the stack.
    """
    catalog: ResourceOwnership = request.app.state.catalog
    view_mode = _enrolled_or_instructor(identity, course_id, catalog)
    request.state.view_mode = view_mode
    return view_mode
