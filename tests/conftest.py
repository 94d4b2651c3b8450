"""
tests/conftest.py -- Shared fixtures for CourseGate unit and integration tests.

This module provides:
  - settings / user_store / catalog / issuer / authenticator / sessions:
    function-scoped components over private in-memory SQLite DBs (unit tests)
  - api_client: module-scoped TestClient over the real FastAPI app with a
    patched lifespan wiring isolated stores into app.state
  - make_user / login: helpers for arranging accounts in integration tests

Design: the API stores use named shared-memory SQLite URIs (not plain
:memory:) because TestClient runs sync route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. Unit-test stores run on one thread, so plain :memory: is fine.

Environment must be set before any api/ import: DEBUG lets get_settings()
auto-generate signing secrets, RATE_LIMIT_ENABLED=false stops the login
limiter from tripping, BCRYPT_ROUNDS=4 keeps hashing fast, and ALLOWED_HOSTS
admits TestClient's "testserver" host.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager

# CRITICAL: before any api/ or core/ import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
# TestClient sends Host: testserver, which TrustedHostMiddleware must accept.
os.environ.setdefault("ALLOWED_HOSTS", '["localhost", "127.0.0.1", "testserver"]')

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.authenticator import Authenticator
from auth.models import Role, User
from auth.sessions import SessionManager
from auth.store import UserStore
from auth.tokens import TokenIssuer, hash_password
from catalog.store import CatalogStore
from core.config import Settings

TEST_ACCESS_SECRET = "test-access-secret-" + "a" * 32
TEST_REFRESH_SECRET = "test-refresh-secret-" + "b" * 32
TEST_PASSWORD = "Secret123"


def _test_settings() -> Settings:
    return Settings(
        _env_file=None,
        jwt_secret=TEST_ACCESS_SECRET,
        jwt_refresh_secret=TEST_REFRESH_SECRET,
        bcrypt_rounds=4,
    )


def unique_email(prefix: str = "user") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:10]}@example.com"


# ---------------------------------------------------------------------------
# Unit-test components
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return _test_settings()


@pytest.fixture
def user_store() -> Generator[UserStore, None, None]:
    store = UserStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def catalog() -> Generator[CatalogStore, None, None]:
    store = CatalogStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def issuer(settings: Settings) -> TokenIssuer:
    return TokenIssuer(settings)


@pytest.fixture
def authenticator(user_store: UserStore, issuer: TokenIssuer) -> Authenticator:
    return Authenticator(user_store, issuer)


@pytest.fixture
def sessions(user_store: UserStore, issuer: TokenIssuer, authenticator: Authenticator) -> SessionManager:
    return SessionManager(user_store, issuer, authenticator, bcrypt_rounds=4)


@pytest.fixture
def add_user(user_store: UserStore) -> Callable[..., User]:
    """Insert a user straight into the unit-test store and return the stored record."""

    def _add(email: str | None = None, role: str = Role.student.value, active: bool = True) -> User:
        user_id = user_store.insert_user(
            User(
                email=email or unique_email(role),
                role=role,
                hashed_password=hash_password(TEST_PASSWORD, rounds=4),
                first_name="Test",
                last_name="User",
                is_active=active,
            )
        )
        return user_store.find_by_id(user_id)

    return _add


# ---------------------------------------------------------------------------
# Integration: TestClient with patched lifespan
# ---------------------------------------------------------------------------


def _patch_lifespan(user_store: UserStore, catalog: CatalogStore, settings: Settings):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores and components built from test settings
    into app.state so routes never touch the on-disk database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        issuer = TokenIssuer(settings)
        authenticator = Authenticator(user_store, issuer)
        app.state.user_store = user_store
        app.state.catalog = catalog
        app.state.issuer = issuer
        app.state.authenticator = authenticator
        app.state.sessions = SessionManager(user_store, issuer, authenticator, bcrypt_rounds=settings.bcrypt_rounds)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[TestClient, None, None]:
    """Yield a TestClient for one test module, backed by that module's own DBs."""
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    db_url = f"sqlite:///file:test_{suffix}?mode=memory&cache=shared&uri=true"
    user_store = UserStore(db_url)
    catalog = CatalogStore(db_url)

    app.router.lifespan_context = _patch_lifespan(user_store, catalog, _test_settings())

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client

    catalog.close()
    user_store.close()


@pytest.fixture
def make_user(api_client: TestClient) -> Callable[..., User]:
    """Create an account directly in the API's user store (any role, incl. admin)."""
    store: UserStore = api_client.app.state.user_store

    def _make(role: str = Role.student.value, email: str | None = None, password: str = TEST_PASSWORD) -> User:
        user_id = store.insert_user(
            User(
                email=email or unique_email(role),
                role=role,
                hashed_password=hash_password(password, rounds=4),
                first_name="Test",
                last_name="User",
            )
        )
        return store.find_by_id(user_id)

    return _make


@pytest.fixture
def login(api_client: TestClient) -> Callable[[str, str], dict]:
    """POST /auth/login and return the JSON body; asserts success."""

    def _login(email: str, password: str = TEST_PASSWORD) -> dict:
        resp = api_client.post("/api/v1/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.text
        return resp.json()

    return _login
