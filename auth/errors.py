"""
auth/errors.py -- Closed error taxonomy for the session and authorization core.

Every failure the auth layer reports to a client is one of the classes below.
Each carries a stable machine-readable `code` and a default human message;
call sites may override the message but never the code. Mapping to HTTP
status codes happens at the transport boundary (api/main.py), which keeps
auth/ free of FastAPI imports.

Anything that is not an AuthError (store connectivity failure, programming
error) is an internal error and must propagate untouched.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for expected, client-recoverable auth failures."""

    code: str = "auth_error"
    default_message: str = "Authentication failed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ConflictError(AuthError):
    code = "email_exists"
    default_message = "Email already registered."


class InvalidCredentialsError(AuthError):
    # Identical wording for "unknown email" and "wrong password" so the
    # response does not reveal whether an account exists.
    code = "invalid_credentials"
    default_message = "Invalid email or password."


class AccountDeactivatedError(AuthError):
    code = "account_deactivated"
    default_message = "Your account has been deactivated. Please contact support."


class UnauthenticatedError(AuthError):
    code = "unauthenticated"
    default_message = "Authentication required. Please log in."


class TokenExpiredError(AuthError):
    code = "token_expired"
    default_message = "Token expired. Please refresh or log in again."


class InvalidTokenError(AuthError):
    code = "invalid_token"
    default_message = "Invalid token. Please log in again."


class UserGoneError(InvalidTokenError):
    code = "user_gone"
    default_message = "User no longer exists."


class TokenMismatchError(AuthError):
    code = "token_mismatch"
    default_message = "Invalid refresh token. Please log in again."


class ForbiddenError(AuthError):
    code = "forbidden"
    default_message = "Access denied. Insufficient permissions."


class ResourceNotFoundError(AuthError):
    code = "not_found"
    default_message = "Resource not found."
