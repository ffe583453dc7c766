"""
tests/conftest.py -- Shared test fixtures for the marketplace auth tests.

This module provides:
  - make_settings(): Settings with a test SECRET_KEY, minimum bcrypt rounds
    and a unique named shared-memory SQLite database
  - store / credentials / tokens: unit-level components
  - client: TestClient over a fresh create_app() per test, so rate-limit
    counters and users never leak between tests
  - make_user: insert a user straight into the store and return it

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync dependencies in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Generator

import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from auth.credentials import CredentialStore
from auth.models import Role, User
from auth.store import UserStore
from auth.tokens import TokenService
from core.config import Settings

TEST_SECRET = "test-secret-key-that-is-long-enough-for-hs256"
TEST_PASSWORD = "correct-horse-battery"


def _memory_db_url() -> str:
    return f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


def make_settings(**overrides) -> Settings:
    values = {
        "secret_key": TEST_SECRET,
        "bcrypt_rounds": 4,
        "hash_workers": 2,
        "database_url": _memory_db_url(),
    }
    values.update(overrides)
    return Settings(**values)


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Unit-level components
# ---------------------------------------------------------------------------


@pytest.fixture()
def store() -> Generator[UserStore, None, None]:
    user_store = UserStore(_memory_db_url())
    yield user_store
    user_store.close()


@pytest.fixture(scope="session")
def credentials() -> Generator[CredentialStore, None, None]:
    cred = CredentialStore(rounds=4, workers=2)
    yield cred
    cred.close()


@pytest.fixture()
def tokens(store: UserStore) -> TokenService:
    return TokenService(TEST_SECRET, 3600, store)


@pytest.fixture()
def make_user(store: UserStore, credentials: CredentialStore) -> Callable[..., User]:
    """Factory that inserts a user with TEST_PASSWORD and returns the stored record."""

    def _make(email: str, role: Role = Role.customer, **fields) -> User:
        user = User(email=email, role=role, password_hash=credentials.hash(TEST_PASSWORD), **fields)
        return store.get_by_id(store.create_user(user))

    return _make


# ---------------------------------------------------------------------------
# HTTP client -- fresh app per test
# ---------------------------------------------------------------------------


@pytest.fixture()
def client() -> Generator[TestClient, None, None]:
    """Yield a TestClient over a brand-new app with its own DB and limiter.

    The real lifespan runs, so the components under test are wired exactly
    as in production; only the Settings differ.
    """
    app = create_app(make_settings())
    with TestClient(app, raise_server_exceptions=True) as test_client:
        yield test_client


@pytest.fixture()
def seed_user(client: TestClient) -> Callable[..., User]:
    """Insert a user directly into the running app's store (e.g. an admin)."""

    def _seed(email: str, role: Role = Role.customer, **fields) -> User:
        app_state = client.app.state
        user = User(email=email, role=role, password_hash=app_state.credentials.hash(TEST_PASSWORD), **fields)
        return app_state.user_store.get_by_id(app_state.user_store.create_user(user))

    return _seed


@pytest.fixture()
def admin_token(client: TestClient, seed_user) -> str:
    admin = seed_user("admin@marketplace.io", Role.admin)
    return client.app.state.tokens.issue(admin, admin.token_version)
