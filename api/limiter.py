"""
api/limiter.py -- Shared slowapi rate limiter instance.

Imported by api/main.py (mounted as middleware) and api/routes/v1/auth.py
(per-route limits on register and login via @limiter.limit()).

A single shared instance means all routes share the same in-memory counter
store; per-module instances would each count separately and never trigger.

RATE_LIMIT_ENABLED=false turns every limit into a no-op (used by the test
suite, which logs in far more often than a real client would).
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
    enabled=get_settings().rate_limit_enabled,
)


def auth_rate_limit() -> str:
    """Limit string for credential-accepting endpoints, read from settings."""
    return get_settings().auth_rate_limit
