"""
auth/tokens.py -- JWT issuance/verification and password hashing.

Security design decisions:
  JWT: python-jose with HS256. Two token classes, two secrets:
       access tokens are signed with JWT_SECRET, refresh tokens with
       JWT_REFRESH_SECRET. Each token carries only user_id plus iat/exp and a
       random jti. The jti makes every issued token unique even when two are
       minted for the same user within the same second, which refresh-token
       rotation relies on (a rotated token must never equal its predecessor).

  Verification raises typed errors instead of returning None: the caller must
       be able to tell an expired token (client should refresh) from a forged
       or malformed one (client must log in again).

  Passwords: bcrypt directly (no passlib wrapper). Cost factor comes from
       Settings.bcrypt_rounds; 12 by default.

  Secrets: TokenIssuer is constructed once at startup from an explicit
       Settings value. Nothing in this module reads the environment.

Layer rule: no imports from api/ or catalog/.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from auth.errors import InvalidTokenError, TokenExpiredError
from auth.models import TokenPair
from core.config import Settings

logger = logging.getLogger("coursegate.auth.tokens")

_ALGORITHM = "HS256"

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str, rounds: int = 12) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt truncates input beyond 72 bytes. The API layer caps passwords at
    128 characters; callers needing more should pre-hash.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash counts as a mismatch rather than an error.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# ---------------------------------------------------------------------------
# Token issuer
# ---------------------------------------------------------------------------


class TokenIssuer:
    """Creates and verifies access/refresh JWTs for a user id.

    Usage:
        issuer = TokenIssuer(get_settings())
        pair = issuer.issue_token_pair(user.id)
        user_id = issuer.decode_access(pair.access_token)
    """

    def __init__(self, settings: Settings) -> None:
        self._access_secret = settings.jwt_secret
        self._refresh_secret = settings.jwt_refresh_secret
        self.access_ttl = settings.access_token_expire_seconds
        self.refresh_ttl = settings.refresh_token_expire_seconds

    def issue_token_pair(self, user_id: int, now: datetime | None = None) -> TokenPair:
        """Mint a fresh access + refresh token pair bound to user_id.

        Pure: no store writes. Persisting the refresh token is the session
        manager's job. `now` exists so tests can mint already-expired tokens.
        """
        issued_at = now or datetime.now(timezone.utc)
        return TokenPair(
            access_token=_encode(user_id, self._access_secret, issued_at, self.access_ttl),
            refresh_token=_encode(user_id, self._refresh_secret, issued_at, self.refresh_ttl),
            access_expires_in=self.access_ttl,
            refresh_expires_in=self.refresh_ttl,
        )

    def decode_access(self, token: str) -> int:
        """Verify an access token and return the embedded user id.

        Raises TokenExpiredError or InvalidTokenError.
        """
        return _decode(token, self._access_secret)

    def decode_refresh(self, token: str) -> int:
        """Verify a refresh token and return the embedded user id.

        Raises TokenExpiredError or InvalidTokenError.
        """
        return _decode(token, self._refresh_secret)


def _encode(user_id: int, secret: str, issued_at: datetime, ttl: int) -> str:
    payload = {
        "user_id": user_id,
        "iat": issued_at,
        "exp": issued_at + timedelta(seconds=ttl),
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(payload, secret, algorithm=_ALGORITHM)


def _decode(token: str, secret: str) -> int:
    try:
        payload = jwt.decode(token, secret, algorithms=[_ALGORITHM])
    except ExpiredSignatureError as exc:
        raise TokenExpiredError() from exc
    except JWTError as exc:
        logger.debug("Rejected token: %s", exc)
        raise InvalidTokenError() from exc
    user_id = payload.get("user_id")
    # bool is an int subclass; a forged {"user_id": true} must not map to id 1.
    if not isinstance(user_id, int) or isinstance(user_id, bool):
        raise InvalidTokenError()
    return user_id


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookies(response, tokens: TokenPair, secure: bool = True) -> None:
    """Write both tokens as httpOnly, SameSite=Strict cookies on the response.

    httponly=True: JS cannot read the cookies (XSS mitigation).
    samesite="strict": never sent on cross-site requests (CSRF mitigation).
    secure: only sent over HTTPS; SECURE_COOKIES=false for plain-HTTP dev.
    max_age: matches each token's expiry so cookie and token die together.

    Cookie names match the ones auth/dependencies.py falls back to when no
    Authorization header is present.
    """
    for name, value, max_age in (
        ("access_token", tokens.access_token, tokens.access_expires_in),
        ("refresh_token", tokens.refresh_token, tokens.refresh_expires_in),
    ):
        response.set_cookie(
            name,
            value=value,
            httponly=True,
            samesite="strict",
            secure=secure,
            max_age=max_age,
        )


def clear_session_cookies(response, secure: bool = True) -> None:
    for name in ("access_token", "refresh_token"):
        response.delete_cookie(name, httponly=True, samesite="strict", secure=secure)
