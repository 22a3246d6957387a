"""
tests/conftest.py -- Shared test fixtures for the account service.

This module provides:
  - policy / clock: a fixed signing key, bcrypt at minimum cost, and a
    manually advanced clock so expiry windows can be crossed on demand
  - store: an isolated in-memory SqlAccountStore per test
  - mailer: a RecordingMailer that captures (to, template, params) and can be
    told to fail specific templates
  - service: an AuthService wired from the above
  - api_client: TestClient over create_app() with the same injected parts

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the API client because TestClient runs sync route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread. Each test gets its own uuid-suffixed database name.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator

# Set DEBUG before any project import so get_settings() never refuses to
# start for lack of a SECRET_KEY.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from auth.codec import CredentialCodec
from auth.machine import AuthService
from auth.store import SqlAccountStore
from auth.tokens import SessionTokenIssuer
from core.config import AuthPolicy, Settings
from mail.notifier import Notifier
from tests.doubles import FixedClock

TEST_SECRET = "test-secret-key-0123456789abcdef0123456789"


# ---------------------------------------------------------------------------
# Collaborator doubles
# ---------------------------------------------------------------------------


class RecordingMailer:
    """Mailer double: records every send; templates in `failing` return False."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, dict]] = []
        self.failing: set[str] = set()
        self.raising: set[str] = set()

    def send(self, to: str, template: str, params: dict) -> bool:
        if template in self.raising:
            raise ConnectionError(f"transport down for {template}")
        if template in self.failing:
            return False
        self.sent.append((to, template, dict(params)))
        return True

    def last(self, template: str) -> tuple[str, str, dict]:
        matches = [entry for entry in self.sent if entry[1] == template]
        assert matches, f"no {template!r} email was sent; sent={self.sent}"
        return matches[-1]


def _shared_memory_url() -> str:
    return f"sqlite:///file:accounts_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def policy() -> AuthPolicy:
    return AuthPolicy(secret_key=TEST_SECRET, bcrypt_rounds=4, client_url="http://frontend.test")


@pytest.fixture
def store(clock: FixedClock) -> Generator[SqlAccountStore, None, None]:
    s = SqlAccountStore(_shared_memory_url(), clock=clock)
    yield s
    s.close()


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def issuer(policy: AuthPolicy, clock: FixedClock) -> SessionTokenIssuer:
    return SessionTokenIssuer(policy, clock=clock)


@pytest.fixture
def service(
    store: SqlAccountStore,
    policy: AuthPolicy,
    issuer: SessionTokenIssuer,
    mailer: RecordingMailer,
    clock: FixedClock,
) -> AuthService:
    return AuthService(
        store=store,
        codec=CredentialCodec(policy),
        issuer=issuer,
        notifier=Notifier(mailer, verification_ttl=policy.verification_ttl, reset_ttl=policy.reset_ttl),
        policy=policy,
        clock=clock,
    )


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    """Settings for TestClient runs.

    secure_cookies is off because TestClient talks plain http://testserver and
    the cookie jar would otherwise refuse to send the session cookie back.
    """
    return Settings(
        debug=True,
        secret_key=TEST_SECRET,
        secure_cookies=False,
        cookie_samesite="lax",
        bcrypt_rounds=4,
        client_url="http://frontend.test",
        mail_backend="console",
        allowed_hosts=["testserver"],
    )


@pytest.fixture
def api_client(
    settings: Settings,
    store: SqlAccountStore,
    mailer: RecordingMailer,
    clock: FixedClock,
) -> Generator[TestClient, None, None]:
    """Yield a TestClient over the real app with injected store, mailer and clock.

    Background email tasks run before TestClient returns the response, so
    tests can assert on mailer.sent right after a request.
    """
    app = create_app(settings, store=store, mailer=mailer, clock=clock)
    with TestClient(app, raise_server_exceptions=True) as client:
        yield client
