"""
tests/conftest.py -- Shared test fixtures for PushGate.

This module provides:
  - fast_params: cheap Argon2 parameters so hashing does not dominate test time
  - breach_session(): a MagicMock requests.Session answering range lookups
  - _patch_lifespan(): wires a test store into app.state, bypassing real startup
  - api_client: TestClient over the real app with an admin and a regular user

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.

Environment must be set before any core/auth import so get_settings() picks it
up: DEBUG auto-generates SECRET_KEY, the ARGON2_* values keep hashing fast and
TOKEN_RATE_LIMIT keeps the token endpoint from throttling the suite.
"""

from __future__ import annotations

import base64
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from unittest.mock import MagicMock

# CRITICAL: Set before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ARGON2_MEMORY", "256")
os.environ.setdefault("ARGON2_ITERATIONS", "1")
os.environ.setdefault("ARGON2_PARALLELISM", "1")
os.environ.setdefault("TOKEN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("CHECK_BREACHED_PASSWORDS", "false")

import pytest
from fastapi.testclient import TestClient

from api.main import app, init_state
from auth.breach import BreachChecker
from auth.models import User
from auth.passwords import Argon2Params, hash_password
from auth.store import CredentialStore
from core.config import get_settings
from core.relay import LogDispatcher

ADMIN_NAME = "testadmin"
ADMIN_PASSWORD = "testpass123"
USER_NAME = "alice"
USER_PASSWORD = "correct horse battery staple"

FAST_PARAMS = Argon2Params(memory_cost=256, time_cost=1, parallelism=1)


@pytest.fixture
def fast_params() -> Argon2Params:
    return FAST_PARAMS


def basic_header(name: str, password: str) -> dict[str, str]:
    """Build an Authorization: Basic header for name/password."""
    raw = base64.b64encode(f"{name}:{password}".encode()).decode()
    return {"Authorization": f"Basic {raw}"}


def breach_session(body: str = "", status_code: int = 200) -> MagicMock:
    """Return a MagicMock session whose get() answers with body/status_code."""
    session = MagicMock()
    session.get.return_value = MagicMock(status_code=status_code, text=body)
    return session


# ---------------------------------------------------------------------------
# App fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(store: CredentialStore, breach_checker: BreachChecker, dispatcher: LogDispatcher):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        init_state(app, store, get_settings(), breach_checker=breach_checker, dispatcher=dispatcher)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, CredentialStore], None, None]:
    """Yield (client, store) for API integration tests.

    Two accounts exist before the client starts:
      testadmin / testpass123                   (admin)
      alice     / correct horse battery staple  (regular user)

    The breach checker's session is a MagicMock that never touches the
    network; tests that need breach behaviour swap app.state.breach_checker.
    """
    db_name = f"test_pushgate_{os.getpid()}_{uuid.uuid4().hex[:8]}"
    store = CredentialStore(db_url=f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true")
    store.create_user(User(name=ADMIN_NAME, password_hash=hash_password(ADMIN_PASSWORD, FAST_PARAMS), is_admin=True))
    store.create_user(
        User(name=USER_NAME, password_hash=hash_password(USER_PASSWORD, FAST_PARAMS), matrix_id="@alice:example.org")
    )

    checker = BreachChecker(session=breach_session())
    app.router.lifespan_context = _patch_lifespan(store, checker, LogDispatcher())

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, store

    store.close()
