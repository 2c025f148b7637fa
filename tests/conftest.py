"""
tests/conftest.py -- Shared test fixtures for the auth service.

This module provides:
  - engine / user_store / ledger: plain in-memory SQLite for unit tests
  - signer / hasher / service: an AuthService wired to those stores
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: TestClient plus an admin access token for API integration tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
for the API fixture because TestClient runs sync route handlers in a thread
pool. Plain :memory: DBs are per-connection and would present a blank schema
to each worker thread. Unit tests call the stores from one thread, so plain
:memory: is enough there.

DEBUG, LOGIN_RATE_LIMIT and ALLOWED_HOSTS must be set before any api/ import:
the routes read the rate limit and the app reads allowed hosts at import.
"""

from __future__ import annotations

import asyncio
import base64
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager, suppress

# CRITICAL: Set before any api/core import so get_settings() auto-generates
# SECRET_KEY in dev mode and the rate limiter does not throttle the suite.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select

from api.main import app, wire_state
from auth.ledger import RefreshTokenLedger
from auth.passwords import BcryptPasswordHasher
from auth.service import AuthService
from auth.store import UserStore, create_store_engine, refresh_tokens
from auth.tokens import TokenSigner
from core.config import Settings

TEST_KEY = b"4c0ef79a25ea6979814b3341c3529484fd8168b831f58fac"
ACCESS_TTL = 60
REFRESH_TTL = 120
PASSWORD = "Passw0rdOK"

# ---------------------------------------------------------------------------
# Unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def engine():
    eng = create_store_engine("sqlite:///:memory:")
    yield eng
    eng.dispose()


@pytest.fixture
def user_store(engine) -> UserStore:
    return UserStore(engine)


@pytest.fixture
def ledger(engine) -> RefreshTokenLedger:
    return RefreshTokenLedger(engine)


@pytest.fixture
def signer() -> TokenSigner:
    return TokenSigner(TEST_KEY)


@pytest.fixture(scope="session")
def hasher() -> BcryptPasswordHasher:
    # Minimum cost keeps the suite fast; production uses the default 12 rounds.
    return BcryptPasswordHasher(rounds=4)


@pytest.fixture
def service(user_store, ledger, signer, hasher) -> AuthService:
    return AuthService(
        users=user_store,
        ledger=ledger,
        signer=signer,
        hasher=hasher,
        token_hash_key=TEST_KEY,
        access_ttl=ACCESS_TTL,
        refresh_ttl=REFRESH_TTL,
        default_role="ROLE_USER",
    )


def new_id() -> str:
    return str(uuid.uuid4())


@pytest.fixture
def count_tokens(engine):
    """Return a callable counting a user's ledger rows, revoked or not."""

    def _count(user_id: str) -> int:
        with engine.connect() as conn:
            return conn.execute(
                select(func.count()).select_from(refresh_tokens).where(refresh_tokens.c.user_id == user_id)
            ).scalar_one()

    return _count


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(settings: Settings, user_store: UserStore, ledger: RefreshTokenLedger, hasher):
    """Return an async context manager that replaces the real lifespan.

    The reaper_task is a long-sleeping coroutine that keeps asyncio happy
    (a real asyncio.Task is required; MagicMock would fail on .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        wire_state(app, settings, user_store, ledger, hasher=hasher)
        app.state.reaper_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.reaper_task.cancel()
        with suppress(asyncio.CancelledError):
            await app.state.reaper_task

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(hasher) -> Generator[tuple[TestClient, str], None, None]:
    """Yield (client, admin_access_token) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers but use an isolated in-memory store.
    """
    eng = create_store_engine(f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true")
    user_store = UserStore(eng)
    ledger = RefreshTokenLedger(eng)
    settings = Settings(
        debug=True,
        secret_key=base64.b64encode(TEST_KEY).decode("ascii"),
        access_token_ttl_seconds=ACCESS_TTL,
        refresh_token_ttl_seconds=REFRESH_TTL,
    )

    app.router.lifespan_context = _patch_lifespan(settings, user_store, ledger, hasher)

    with TestClient(app, raise_server_exceptions=True) as client:
        admin_service: AuthService = app.state.auth_service
        admin_id = new_id()
        admin_service.register(admin_id, "admin@example.com", PASSWORD, role=settings.admin_role)
        token = admin_service.login("admin@example.com", PASSWORD).access_token
        yield client, token

    eng.dispose()
