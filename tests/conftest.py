"""
tests/conftest.py -- Shared test fixtures for authgate unit and integration tests.

This module provides:
  - FakeClock: a controllable time source injected wherever a Clock is taken
  - clock / engine / member_store / session_store / codec / verifier / service:
    function-scoped building blocks on a temp-file SQLite DB
  - _make_test_service(): assembles an AuthService on a named in-memory DB
  - _patch_lifespan(): wires a test service into app.state, bypassing real startup
  - api_client: TestClient with an admin access token for API integration tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
for the API fixture because TestClient runs route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to each
worker thread. Unit fixtures use a file under tmp_path instead, which also
gives the concurrency tests real SQLite locking.

DEBUG, SIGN_IN_RATE_LIMIT and BCRYPT_ROUNDS must be set before any api/auth
import so get_settings() auto-generates SECRET_KEY, the sign-in limit does not
trip during ordinary tests, and bcrypt stays fast.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path

# CRITICAL: Set these before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SIGN_IN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

from api.limiter import limiter
from api.main import app
from auth.db import create_db_engine
from auth.models import Member, MemberRole, MemberStatus
from auth.passwords import CredentialVerifier
from auth.service import AuthService
from auth.sessions import SessionStore
from auth.store import MemberStore
from auth.tokens import TokenCodec

TEST_SECRET = "test-secret-key-that-is-at-least-32-chars-long"
ADMIN_PASSWORD = "Adm1n!pass"


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Frozen wall clock. Call advance() to move time forward."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 1, 9, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


# ---------------------------------------------------------------------------
# Unit fixtures -- fresh temp-file DB per test
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def db_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'auth.db'}"


@pytest.fixture
def engine(db_url: str) -> Generator[Engine, None, None]:
    eng = create_db_engine(db_url)
    yield eng
    eng.dispose()


@pytest.fixture
def member_store(engine: Engine, clock: FakeClock) -> MemberStore:
    return MemberStore(engine=engine, clock=clock)


@pytest.fixture
def session_store(engine: Engine, clock: FakeClock) -> SessionStore:
    return SessionStore(engine=engine, clock=clock)


@pytest.fixture
def verifier() -> CredentialVerifier:
    return CredentialVerifier(rounds=4)


@pytest.fixture
def secret_key() -> str:
    return TEST_SECRET


@pytest.fixture
def codec(secret_key: str, clock: FakeClock) -> TokenCodec:
    return TokenCodec(secret_key, clock=clock)


@pytest.fixture
def service(
    member_store: MemberStore,
    session_store: SessionStore,
    codec: TokenCodec,
    verifier: CredentialVerifier,
    clock: FakeClock,
) -> AuthService:
    return AuthService(member_store, session_store, codec, verifier, clock=clock)


# ---------------------------------------------------------------------------
# API helpers
# ---------------------------------------------------------------------------


def _make_test_service(db_suffix: str) -> tuple[AuthService, MemberStore]:
    """Create an AuthService on an isolated named shared-memory SQLite DB.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state (e.g. 'api', 'health').
    """
    url = f"sqlite:///file:test_authgate_{db_suffix}?mode=memory&cache=shared&uri=true"
    eng = create_db_engine(url)
    members = MemberStore(engine=eng)
    sessions = SessionStore(engine=eng)
    service = AuthService(members, sessions, TokenCodec(TEST_SECRET), CredentialVerifier(rounds=4))
    return service, members


def _patch_lifespan(service: AuthService, members: MemberStore):
    """Return an async context manager that replaces the real lifespan.

    The sweep_task is a long-sleeping coroutine so shutdown has a real
    asyncio.Task to cancel.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.member_store = members
        app.state.auth_service = service
        app.state.sweep_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.sweep_task.cancel()

    return test_lifespan


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client(request: pytest.FixtureRequest) -> Generator[tuple[TestClient, str, int], None, None]:
    """Yield (client, admin_access_token, admin_id) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers and middleware but use an isolated in-memory DB.
    """
    service, members = _make_test_service(request.module.__name__.rsplit(".", 1)[-1])
    verifier = CredentialVerifier(rounds=4)
    admin_id = members.create_member(
        Member(
            username="testadmin",
            password_hash=verifier.hash(ADMIN_PASSWORD),
            member_name="Admin",
            phone_number="010-0000-0000",
            role=MemberRole.ADMIN,
            status=MemberStatus.ACTIVE,
        )
    )
    token = service.sign_in("testadmin", ADMIN_PASSWORD).access_token

    app.router.lifespan_context = _patch_lifespan(service, members)
    limiter.reset()

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, admin_id

    members.engine.dispose()
