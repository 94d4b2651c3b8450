"""
auth/authenticator.py -- Per-request token verification.

Authenticator turns a raw token string into an Identity or a typed AuthError.
It knows nothing about HTTP: extracting the token from headers/cookies is
auth/dependencies.py's job. Keeping it transport-agnostic lets the session
manager reuse the refresh variant directly and keeps the unit tests free of
request objects.

Three variants:
  authenticate()          -- hard gate for protected operations.
  authenticate_optional() -- same checks, but any AuthError means "anonymous".
  authenticate_refresh()  -- refresh secret + stored-token equality check.

Every variant re-reads the user from the store, so deactivation, deletion and
role changes take effect on the very next request.
"""

from __future__ import annotations

import hmac
import logging

from auth.errors import (
    AccountDeactivatedError,
    AuthError,
    InvalidTokenError,
    TokenMismatchError,
    UnauthenticatedError,
    UserGoneError,
)
from auth.models import Identity
from auth.store import UserStore
from auth.tokens import TokenIssuer

logger = logging.getLogger("coursegate.auth.authenticator")


class Authenticator:
    def __init__(self, store: UserStore, issuer: TokenIssuer) -> None:
        self._store = store
        self._issuer = issuer

    def authenticate(self, token: str | None) -> Identity:
        """Verify an access token and return the caller's Identity.

        Raises:
            UnauthenticatedError:    no token presented.
            TokenExpiredError:       signature valid but past exp.
            InvalidTokenError:       malformed or signed with the wrong key.
            UserGoneError:           token valid but the user was deleted.
            AccountDeactivatedError: user exists but is_active is False.
        """
        if not token:
            raise UnauthenticatedError()
        user_id = self._issuer.decode_access(token)
        user = self._store.find_by_id(user_id)
        if user is None:
            raise UserGoneError()
        if not user.is_active:
            raise AccountDeactivatedError()
        return Identity.from_user(user)

    def authenticate_optional(self, token: str | None) -> Identity | None:
        """Like authenticate(), but returns None instead of raising AuthError.

        Only auth failures are swallowed; a store outage still propagates.
        """
        try:
            return self.authenticate(token)
        except AuthError:
            return None

    def authenticate_refresh(self, token: str | None) -> Identity:
        """Verify a refresh token against the refresh secret and the stored value.

        Expiry is not distinguished from other failures here: a client holding
        an unusable refresh token has only one option, which is to log in.

        Raises:
            UnauthenticatedError: no token presented.
            InvalidTokenError:    bad/expired token, user gone or deactivated.
            TokenMismatchError:   token is genuine but no longer the stored one
                                  (already rotated, logged out, or replayed).
        """
        if not token:
            raise UnauthenticatedError("Refresh token required.")
        try:
            user_id = self._issuer.decode_refresh(token)
        except AuthError as exc:
            raise InvalidTokenError("Invalid or expired refresh token.") from exc
        user = self._store.find_by_id(user_id)
        if user is None:
            raise InvalidTokenError("Invalid refresh token.")
        if not user.is_active:
            raise InvalidTokenError("Account is deactivated.")
        if user.refresh_token is None or not hmac.compare_digest(
            user.refresh_token.encode("utf-8"), token.encode("utf-8")
        ):
            logger.warning("Stale refresh token presented for user_id=%d", user.id)
            raise TokenMismatchError()
        return Identity.from_user(user)
