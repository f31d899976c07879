"""
tests/conftest.py -- Shared test fixtures for auth server tests.

This module provides:
  - auth_config / store / session_manager / one_time: unit-level collaborators
    built directly, no FastAPI involved
  - FakeClock: a settable clock for expiry tests
  - _patch_lifespan(): wires test collaborators into app.state, bypassing real startup
  - api_client: TestClient against the real app with an in-memory store and a
    MagicMock mailer that records every code and link it was asked to send

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the API client because TestClient runs sync route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread.

The DEBUG env var must be set before any api/ import so get_settings()
auto-generates the secrets in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import asyncio
import itertools
import os
from collections.abc import Generator
from contextlib import asynccontextmanager, suppress
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

# CRITICAL: Set DEBUG before any api/core import.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.errors import Result
from auth.models import User
from auth.one_time import OneTimeCredentialManager
from auth.sessions import SessionTokenManager
from auth.store import CredentialStore
from auth.tokens import hash_password
from core.config import AuthConfig, get_settings

_db_counter = itertools.count()

ACCESS_SECRET = "a" * 32 + "-access-secret"
REFRESH_SECRET = "r" * 32 + "-refresh-secret"
VERIFICATION_SECRET = "v" * 32 + "-verification-secret"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def auth_config() -> AuthConfig:
    return AuthConfig(
        access_secret=ACCESS_SECRET,
        refresh_secret=REFRESH_SECRET,
        verification_secret=VERIFICATION_SECRET,
    )


@pytest.fixture
def store() -> Generator[CredentialStore, None, None]:
    s = CredentialStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def session_manager(auth_config: AuthConfig) -> SessionTokenManager:
    return SessionTokenManager(auth_config)


@pytest.fixture
def one_time(auth_config: AuthConfig, store: CredentialStore, clock: FakeClock) -> OneTimeCredentialManager:
    return OneTimeCredentialManager(auth_config, store, clock=clock)


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _make_mailer() -> MagicMock:
    mailer = MagicMock()
    mailer.send_verification_email.return_value = Result.success()
    mailer.send_otp_email.return_value = Result.success()
    return mailer


def _patch_lifespan(store: CredentialStore, mailer: MagicMock):
    """Return an async context manager that replaces the real lifespan.

    Uses the real managers with the app's (auto-generated) secrets so tokens
    minted by the routes verify against app.state.session_manager.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        settings = get_settings()
        config = AuthConfig.from_settings(settings)
        app.state.settings = settings
        app.state.store = store
        app.state.session_manager = SessionTokenManager(config)
        app.state.one_time = OneTimeCredentialManager(config, store)
        app.state.mailer = mailer
        app.state.oauth = MagicMock()
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()
        with suppress(asyncio.CancelledError):
            await app.state.purge_task

    return test_lifespan


class ApiHarness:
    """Everything an API test needs: the client, the store behind it, and the mailer mock."""

    def __init__(self, client: TestClient, store: CredentialStore, mailer: MagicMock) -> None:
        self.client = client
        self.store = store
        self.mailer = mailer

    def create_user(self, email: str, password: str = "correct-horse", verified: bool = True) -> str:
        return self.store.create_user(
            User(
                email=email,
                name="Test User",
                hashed_password=hash_password(password),
                email_verified=datetime.now(timezone.utc).isoformat() if verified else None,
            )
        )

    def last_otp(self) -> str:
        return self.mailer.send_otp_email.call_args.args[1]

    def last_verification_token(self) -> str:
        return self.mailer.send_verification_email.call_args.args[2]


@pytest.fixture
def api() -> Generator[ApiHarness, None, None]:
    """Yield an ApiHarness backed by a fresh named in-memory DB per test."""
    db_url = f"sqlite:///file:test_auth_{next(_db_counter)}?mode=memory&cache=shared&uri=true"
    store = CredentialStore(db_url=db_url)
    mailer = _make_mailer()
    app.router.lifespan_context = _patch_lifespan(store, mailer)
    limiter.enabled = False

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiHarness(client, store, mailer)

    limiter.enabled = True
    store.close()
