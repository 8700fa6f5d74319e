"""
tests/conftest.py -- Shared test fixtures for the auth service.

This module provides:
  - RecordingNotifier: captures OTP and reset emails instead of sending them
  - store / engine / tokens: unit-level fixtures over a private in-memory DB
  - api: ApiHarness (TestClient over the real app with a patched lifespan)

Design: the API fixture uses a named shared-memory SQLite URI (not plain
:memory:) because TestClient runs sync route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread.

Environment must be set before any app import: DEBUG lets get_settings()
auto-generate the three signing keys, RATE_LIMIT_ENABLED=false keeps the
login limiter from tripping across tests, ALLOWED_HOSTS admits TestClient's
"testserver" host, and BCRYPT_ROUNDS=4 keeps hashing fast.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

# CRITICAL: Set before any auth/core/api import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("CLIENT_URL", "http://client.test")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.engine import AuthEngine
from auth.notifier import NotificationError
from auth.store import UserStore
from auth.tokens import TokenService
from core.config import Settings, get_settings

# ---------------------------------------------------------------------------
# Notifier double
# ---------------------------------------------------------------------------


@dataclass
class RecordingNotifier:
    """Notifier that remembers what it was asked to send.

    Set fail=True to make every send raise NotificationError, the same way
    SmtpNotifier reports an SMTP failure.
    """

    otps: dict[str, str] = field(default_factory=dict)
    reset_links: dict[str, str] = field(default_factory=dict)
    fail: bool = False

    def send_otp(self, to: str, otp: str) -> None:
        if self.fail:
            raise NotificationError("smtp down")
        self.otps[to] = otp

    def send_password_reset(self, to: str, reset_link: str) -> None:
        if self.fail:
            raise NotificationError("smtp down")
        self.reset_links[to] = reset_link

    def reset_token_for(self, email: str) -> str:
        """Pull the reset token out of the last link sent to email."""
        return self.reset_links[email].rsplit("/reset-password/", 1)[1]


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest.fixture
def tokens(settings: Settings) -> TokenService:
    return TokenService.from_settings(settings)


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def engine(store: UserStore, tokens: TokenService, notifier: RecordingNotifier, settings: Settings) -> AuthEngine:
    return AuthEngine(store, tokens, notifier, settings)


# ---------------------------------------------------------------------------
# API fixture
# ---------------------------------------------------------------------------


def _patch_lifespan(store: UserStore, notifier: RecordingNotifier):
    """Return a lifespan that wires the test store and notifier into app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        settings = get_settings()
        tokens = TokenService.from_settings(settings)
        app.state.settings = settings
        app.state.user_store = store
        app.state.tokens = tokens
        app.state.engine = AuthEngine(store, tokens, notifier, settings)
        yield

    return test_lifespan


@dataclass
class ApiHarness:
    client: TestClient
    notifier: RecordingNotifier
    store: UserStore
    tokens: TokenService

    def register(self, email: str, device_id: str = "d1", password: str = "abcd1234", username: str | None = None):
        return self.client.post(
            "/auth/register",
            json={
                "username": username or email.split("@")[0],
                "email": email,
                "password": password,
                "deviceId": device_id,
            },
        )

    def login(self, email: str, password: str = "abcd1234", otp: str | None = None, device_id: str | None = None):
        body = {
            "email": email,
            "otpInput": otp if otp is not None else self.notifier.otps[email],
            "password": password,
        }
        if device_id is not None:
            body["deviceId"] = device_id
        return self.client.post("/auth/verifyOTPAndLogin", json=body)


@pytest.fixture(scope="module")
def api() -> Generator[ApiHarness, None, None]:
    """Yield an ApiHarness over the real app with an isolated store.

    One store per test module; tests use distinct emails so they do not
    depend on each other's records.
    """
    store = UserStore(f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true")
    notifier = RecordingNotifier()
    app.router.lifespan_context = _patch_lifespan(store, notifier)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiHarness(client=client, notifier=notifier, store=store, tokens=app.state.tokens)

    store.close()
