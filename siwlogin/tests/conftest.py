"""
Shared fixtures for the login service tests.
"""

from typing import Dict, Optional
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from siwlogin.auth.session import SessionStore
from siwlogin.auth.utils import clear_jwks_cache
from siwlogin.config import Settings
from siwlogin.main import create_app
from siwlogin.models import AuthSession
from siwlogin.tests.helpers import CLIENT_ID, CLIENT_SECRET, ISSUER, REDIRECT_URI, FakeProvider


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def reset_jwks_cache():
    clear_jwks_cache()
    yield
    clear_jwks_cache()


@pytest.fixture
def test_settings() -> Settings:
    """Settings that ignore any .env file on the machine running the tests."""
    return Settings(
        _env_file=None,
        CLIENT_ID=CLIENT_ID,
        CLIENT_SECRET=CLIENT_SECRET,
        ISSUER=ISSUER,
        SCOPES="openid,profile,email",
        REDIRECT_URI=REDIRECT_URI,
        SESSION_SECRET="test-session-secret-1234567890123456",
    )


@pytest.fixture
def session_store(test_settings) -> SessionStore:
    return SessionStore.from_settings(test_settings)


@pytest.fixture
def mock_httpx_client():
    """Mock httpx AsyncClient usable as an async context manager"""
    client = AsyncMock()
    client.__aenter__.return_value = client
    client.__aexit__.return_value = False
    return client


@pytest.fixture
def provider():
    """Fake identity provider patched in place of httpx.AsyncClient"""
    fake = FakeProvider()
    with patch("httpx.AsyncClient", return_value=fake):
        yield fake


@pytest.fixture
def app(test_settings):
    return create_app(test_settings)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def read_session(session_store):
    """Decode the session cookie currently held by a test client."""

    def _read(test_client: TestClient) -> AuthSession:
        return session_store.decode(test_client.cookies.get(session_store.cookie_name))

    return _read


@pytest.fixture
def session_cookie(session_store):
    """Build a Cookie header carrying the given session."""

    def _cookie(session: AuthSession, store: Optional[SessionStore] = None) -> Dict[str, str]:
        store = store or session_store
        return {"Cookie": f"{store.cookie_name}={store.encode(session)}"}

    return _cookie
