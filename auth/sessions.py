"""
auth/sessions.py -- Session lifecycle: register, login, refresh, logout, change password.

Per-user state machine:

    Anonymous --register/login--> Authenticated(T1)
    Authenticated(T1) --refresh(T1)--> Authenticated(T2)   (T1 now dead)
    Authenticated(Tn) --logout / change_password--> Revoked (no stored token)
    Revoked --login--> Authenticated(T')

The stored refresh token is the whole session state. "One active refresh
token per user" holds because every issuing path overwrites it and every
revoking path clears it. Rotation is strict: there is no grace window, and a
token presented after it was exchanged fails with TokenMismatchError.

Timing equalization: login runs bcrypt even for unknown emails, against a
dummy hash computed once with the configured cost, so response time does not
reveal which emails are registered.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from auth.authenticator import Authenticator
from auth.errors import (
    AccountDeactivatedError,
    ConflictError,
    InvalidCredentialsError,
    TokenMismatchError,
    UserGoneError,
)
from auth.models import Role, SessionResult, User
from auth.store import UserStore, normalize_email
from auth.tokens import TokenIssuer, hash_password, verify_password

logger = logging.getLogger("coursegate.auth.sessions")


class SessionManager:
    """Orchestrates the credential store, password hashing and token issuer.

    Usage:
        sessions = SessionManager(store, issuer, authenticator, bcrypt_rounds=12)
        result = sessions.login("alice@x.com", "Secret123")
        result = sessions.refresh(result.tokens.refresh_token)
        sessions.logout(result.user.id)
    """

    def __init__(
        self,
        store: UserStore,
        issuer: TokenIssuer,
        authenticator: Authenticator,
        bcrypt_rounds: int = 12,
    ) -> None:
        self._store = store
        self._issuer = issuer
        self._authenticator = authenticator
        self._rounds = bcrypt_rounds
        self._dummy_hash = hash_password("coursegate_timing_dummy", rounds=bcrypt_rounds)

    def register(
        self,
        email: str,
        password: str,
        first_name: str = "",
        last_name: str = "",
        role: str = Role.student.value,
    ) -> SessionResult:
        """Create an account and open its first session.

        Raises ConflictError if the email (any case) is already registered.
        """
        email = normalize_email(email)
        if self._store.find_by_email(email) is not None:
            raise ConflictError()

        user = User(
            email=email,
            role=Role(role).value,
            hashed_password=hash_password(password, rounds=self._rounds),
            first_name=first_name,
            last_name=last_name,
        )
        try:
            user_id = self._store.insert_user(user)
        except IntegrityError as exc:
            # A concurrent registration won the race past the lookup above.
            raise ConflictError() from exc

        result = self._open_session(user_id)
        logger.info("Registered user_id=%d role=%s", user_id, user.role)
        return result

    def login(self, email: str, password: str) -> SessionResult:
        """Check credentials and open a new session, superseding any previous one.

        Raises:
            InvalidCredentialsError: unknown email or wrong password (same message).
            AccountDeactivatedError: the account exists but is disabled.
        """
        user = self._store.find_by_email(email)
        if user is None:
            verify_password(password, self._dummy_hash)
            raise InvalidCredentialsError()
        if not user.is_active:
            raise AccountDeactivatedError()
        if not verify_password(password, user.hashed_password or ""):
            logger.info("Failed login for user_id=%d", user.id)
            raise InvalidCredentialsError()

        result = self._open_session(user.id)
        logger.info("Login user_id=%d", user.id)
        return result

    def refresh(self, presented_token: str | None) -> SessionResult:
        """Exchange a refresh token for a new pair; the presented token dies.

        Raises UnauthenticatedError, InvalidTokenError or TokenMismatchError
        (see Authenticator.authenticate_refresh). A concurrent refresh that
        rotated the same token first also yields TokenMismatchError.
        """
        identity = self._authenticator.authenticate_refresh(presented_token)
        tokens = self._issuer.issue_token_pair(identity.id)
        if not self._store.swap_refresh_token(identity.id, presented_token, tokens.refresh_token):
            logger.warning("Refresh race lost for user_id=%d", identity.id)
            raise TokenMismatchError()
        user = self._store.find_by_id(identity.id)
        if user is None:
            raise UserGoneError()
        logger.info("Rotated refresh token for user_id=%d", identity.id)
        return SessionResult(user=user, tokens=tokens)

    def logout(self, user_id: int) -> None:
        """Clear the stored refresh token. Safe to call repeatedly."""
        self._store.update_refresh_token(user_id, None)
        logger.info("Logout user_id=%d", user_id)

    def change_password(self, user_id: int, current_password: str, new_password: str) -> None:
        """Replace the password and revoke the refresh token on every device.

        Issues no new tokens; the caller must log in again.
        """
        user = self._store.find_by_id(user_id)
        if user is None:
            raise UserGoneError()
        if not verify_password(current_password, user.hashed_password or ""):
            raise InvalidCredentialsError("Current password is incorrect.")
        self._store.update_password_hash(user_id, hash_password(new_password, rounds=self._rounds))
        logger.info("Password changed for user_id=%d; sessions revoked", user_id)

    def _open_session(self, user_id: int) -> SessionResult:
        tokens = self._issuer.issue_token_pair(user_id)
        self._store.update_refresh_token(user_id, tokens.refresh_token)
        user = self._store.find_by_id(user_id)
        if user is None:
            raise UserGoneError()
        return SessionResult(user=user, tokens=tokens)
