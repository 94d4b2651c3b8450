"""
api/routes/v1/auth.py -- Session lifecycle REST endpoints.

Routes:
  POST /api/v1/auth/register         -- create account; returns user + token pair, sets cookies
  POST /api/v1/auth/login            -- password login; returns user + token pair, sets cookies
  POST /api/v1/auth/refresh          -- rotate refresh token (body or cookie); sets cookies
  POST /api/v1/auth/logout           -- revoke refresh token; clears cookies (requires auth)
  GET  /api/v1/auth/me               -- current user profile (requires auth)
  POST /api/v1/auth/change-password  -- new password, revokes all sessions (requires auth)

Security:
  Register and login are rate limited per IP (AUTH_RATE_LIMIT, default 10/minute).
  Login uses SessionManager.login(), which equalizes timing for unknown emails.
  Responses that carry tokens set Cache-Control: no-store.

Errors are raised as AuthError subclasses and rendered by the handler in
api/main.py; routes never build error responses themselves.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import auth_rate_limit, limiter
from api.models import (
    ChangePasswordRequest,
    LoginRequest,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    SessionResponse,
    TokenPairResponse,
    UserResponse,
)
from auth.dependencies import REFRESH_COOKIE, extract_token, get_current_identity
from auth.errors import UserGoneError
from auth.models import Identity
from auth.sessions import SessionManager
from auth.store import UserStore
from auth.tokens import clear_session_cookies, set_session_cookies
from core.config import get_settings

# Auth policy:
# - POST /api/v1/auth/register:        public, rate limited
# - POST /api/v1/auth/login:           public, rate limited
# - POST /api/v1/auth/refresh:         refresh token only (no access token needed)
# - POST /api/v1/auth/logout:          requires auth (get_current_identity)
# - GET  /api/v1/auth/me:              requires auth (get_current_identity)
# - POST /api/v1/auth/change-password: requires auth (get_current_identity)
router = APIRouter()


def _token_response(status_code: int, body: TokenPairResponse, tokens) -> JSONResponse:
    resp = JSONResponse(status_code=status_code, content=body.model_dump())
    set_session_cookies(resp, tokens, secure=get_settings().secure_cookies)
    resp.headers["Cache-Control"] = "no-store"
    return resp


def _cleared_response(message: str) -> JSONResponse:
    resp = JSONResponse(content=MessageResponse(message=message).model_dump())
    clear_session_cookies(resp, secure=get_settings().secure_cookies)
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(auth_rate_limit)
@router.post("/auth/register", response_model=SessionResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create an account and open its first session.

    Duplicate email (any case) -> 400 email_exists.
    """
    sessions: SessionManager = request.app.state.sessions
    result = sessions.register(
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
        role=body.role.value,
    )
    return _token_response(201, SessionResponse.from_result(result), result.tokens)


@limiter.limit(auth_rate_limit)
@router.post("/auth/login", response_model=SessionResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password.

    Unknown email and wrong password return the same invalid_credentials
    error; a deactivated account returns account_deactivated.
    """
    sessions: SessionManager = request.app.state.sessions
    result = sessions.login(body.email, body.password)
    return _token_response(200, SessionResponse.from_result(result), result.tokens)


@router.post("/auth/refresh", response_model=TokenPairResponse)
def refresh(request: Request, body: RefreshRequest | None = None) -> JSONResponse:
    """Exchange the current refresh token for a new pair.

    The token is read from the JSON body first, then the refresh_token
    cookie, then the Authorization header, so an access bearer header sent
    alongside the cookie is ignored. The presented token is dead once this
    returns; presenting it again yields token_mismatch.
    """
    sessions: SessionManager = request.app.state.sessions
    presented = (
        (body.refresh_token if body else None)
        or request.cookies.get(REFRESH_COOKIE)
        or extract_token(request, REFRESH_COOKIE)
    )
    result = sessions.refresh(presented)
    return _token_response(200, TokenPairResponse.from_pair(result.tokens), result.tokens)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request, identity: Identity = Depends(get_current_identity)) -> JSONResponse:
    """Revoke the stored refresh token and clear both cookies."""
    sessions: SessionManager = request.app.state.sessions
    sessions.logout(identity.id)
    return _cleared_response("Logout successful.")


@router.get("/auth/me", response_model=UserResponse)
def me(request: Request, identity: Identity = Depends(get_current_identity)) -> UserResponse:
    """Return the profile of the currently authenticated user."""
    user_store: UserStore = request.app.state.user_store
    user = user_store.find_by_id(identity.id)
    if user is None:
        raise UserGoneError()
    return UserResponse.from_user(user)


@router.post("/auth/change-password", response_model=MessageResponse)
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    identity: Identity = Depends(get_current_identity),
) -> JSONResponse:
    """Change the password and force re-login on every device."""
    sessions: SessionManager = request.app.state.sessions
    sessions.change_password(identity.id, body.current_password, body.new_password)
    return _cleared_response("Password changed successfully. Please login with your new password.")
