"""
Login Flow Route Tests

Drives the login page, callback, logout and profile endpoints through the
FastAPI test client against a fake identity provider.
"""

import base64
import hashlib
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from fastapi.testclient import TestClient

from siwlogin.auth.pkce import generate_pkce
from siwlogin.models import AuthSession, VerifiedClaims
from siwlogin.tests.helpers import (
    CLIENT_ID,
    ISSUER,
    OTHER_PRIVATE_KEY,
    REDIRECT_URI,
    create_id_token,
    create_mock_jwks,
    extract_bootstrap,
)

INTERACT_PATH = "/oauth2/v1/interact"
TOKEN_PATH = "/oauth2/v1/token"
KEYS_PATH = "/oauth2/v1/keys"
USERINFO_PATH = "/oauth2/v1/userinfo"

MARY = {"sub": "00u-mary-smith", "email": "mary@example.com", "name": "Mary Smith"}


def s256(verifier):
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


@pytest.fixture
def fixed_state():
    with patch("siwlogin.auth.routes.generate_state", return_value="ApplicationState"):
        yield "ApplicationState"


@pytest.fixture
def interacting_provider(provider):
    provider.add("POST", INTERACT_PATH, httpx.Response(200, json={"interaction_handle": "IH1"}))
    return provider


# ============================================================================
# Login Page
# ============================================================================

class TestLoginPage:
    """Test the widget bootstrap page"""

    def test_bootstrap_data(self, client, interacting_provider, fixed_state, read_session):
        response = client.get("/login")

        assert response.status_code == 200
        assert response.headers["cache-control"] == "no-cache"

        bootstrap = extract_bootstrap(response.text)
        session = read_session(client)

        assert bootstrap["interaction_handle"] == "IH1"
        assert bootstrap["state"] == "ApplicationState"
        assert bootstrap["client_id"] == CLIENT_ID
        assert bootstrap["issuer"] == ISSUER
        assert bootstrap["base_url"] == ISSUER
        assert bootstrap["redirect_uri"] == REDIRECT_URI
        assert bootstrap["scopes"] == ["openid", "profile", "email"]
        assert bootstrap["code_challenge_method"] == "S256"
        assert bootstrap["code_challenge"] == s256(session.pkce.code_verifier)
        assert bootstrap["nonce"] == session.nonce
        assert bootstrap["is_authenticated"] is False
        assert session.state == "ApplicationState"

    def test_interact_request_uses_session_challenge(self, client, interacting_provider, read_session):
        client.get("/login")

        session = read_session(client)
        (call,) = interacting_provider.calls("POST", INTERACT_PATH)
        assert call["data"]["code_challenge"] == session.pkce.code_challenge
        assert call["data"]["state"] == session.state
        assert call["data"]["scope"] == "openid profile email"

    def test_reload_keeps_pkce_and_refreshes_nonce(self, client, interacting_provider):
        first = extract_bootstrap(client.get("/login").text)
        second = extract_bootstrap(client.get("/login").text)

        assert first["code_challenge"] == second["code_challenge"]
        assert first["state"] == second["state"]
        assert first["nonce"] != second["nonce"]

    def test_provider_failure_renders_empty_handle(self, client, provider):
        provider.add("POST", INTERACT_PATH, httpx.Response(500, json={"error": "server_error"}))

        response = client.get("/login")

        assert response.status_code == 200
        assert extract_bootstrap(response.text)["interaction_handle"] == ""

    def test_unreachable_provider_renders_empty_handle(self, client, provider):
        response = client.get("/login")

        assert response.status_code == 200
        assert extract_bootstrap(response.text)["interaction_handle"] == ""


# ============================================================================
# Callback
# ============================================================================

class TestCallback:
    """Test interaction code redemption"""

    def test_state_mismatch(self, client, interacting_provider, fixed_state):
        client.get("/login")
        cookie_before = client.cookies.get("okta-self-hosted-session-store")

        response = client.get(
            "/login/callback",
            params={"interaction_code": "abc123", "state": "WrongState"},
            follow_redirects=False,
        )

        assert response.status_code == 400
        assert response.text == "The state was not as expected"
        assert "set-cookie" not in response.headers
        assert client.cookies.get("okta-self-hosted-session-store") == cookie_before
        assert interacting_provider.calls("POST", TOKEN_PATH) == []

    def test_missing_interaction_code(self, client, interacting_provider, fixed_state):
        client.get("/login")

        response = client.get("/login/callback", params={"state": "ApplicationState"})

        assert response.status_code == 400
        assert response.text == "The interaction_code was not returned or is not accessible"

    def test_missing_pkce(self, app, provider, session_cookie):
        fresh_client = TestClient(app)
        response = fresh_client.get(
            "/login/callback",
            params={"interaction_code": "abc123", "state": "s1"},
            headers=session_cookie(AuthSession(state="s1")),
        )

        assert response.status_code == 400
        assert response.text == "Could not get PKCE Data from session"
        assert provider.calls("POST", TOKEN_PATH) == []

    @pytest.mark.parametrize(
        "params",
        [
            {"interaction_code": "abc123", "state": "ApplicationState"},
            {"interaction_code": "abc123"},
            {"state": "ApplicationState"},
            {},
        ],
    )
    def test_without_session_cookie(self, client, provider, read_session, params):
        response = client.get("/login/callback", params=params, follow_redirects=False)

        assert response.status_code == 400
        assert response.text == "The state was not as expected"
        assert "set-cookie" not in response.headers
        assert not read_session(client).is_authenticated
        assert provider.calls("POST", TOKEN_PATH) == []

    def test_provider_error_parameter(self, client, provider):
        response = client.get(
            "/login/callback",
            params={"error": "access_denied", "error_description": "User is not assigned"},
        )

        assert response.status_code == 400
        assert "User is not assigned" in response.text

    def test_error_payload_never_authenticates(
        self, client, interacting_provider, fixed_state, read_session
    ):
        interacting_provider.add(
            "POST",
            TOKEN_PATH,
            httpx.Response(
                200,
                json={
                    "access_token": "AT1",
                    "id_token": "IDT1",
                    "error": "invalid_grant",
                    "error_description": "The interaction code is invalid",
                },
            ),
        )
        client.get("/login")

        response = client.get(
            "/login/callback",
            params={"interaction_code": "abc123", "state": "ApplicationState"},
            follow_redirects=False,
        )

        assert response.status_code == 502
        assert "The interaction code is invalid" in response.text
        assert not read_session(client).is_authenticated
        assert interacting_provider.calls("GET", KEYS_PATH) == []

    def test_wrongly_signed_id_token(self, client, interacting_provider, fixed_state, read_session):
        interacting_provider.add(
            "POST",
            TOKEN_PATH,
            httpx.Response(
                200,
                json={
                    "access_token": "AT1",
                    "id_token": create_id_token(private_key=OTHER_PRIVATE_KEY),
                    "token_type": "Bearer",
                    "expires_in": 3600,
                },
            ),
        )
        interacting_provider.add("GET", KEYS_PATH, httpx.Response(200, json=create_mock_jwks()))
        client.get("/login")

        response = client.get(
            "/login/callback",
            params={"interaction_code": "abc123", "state": "ApplicationState"},
            follow_redirects=False,
        )

        assert response.status_code == 401
        assert response.text == "The id_token could not be verified"
        assert not read_session(client).is_authenticated

        session = read_session(client)
        assert session.pkce is None
        assert session.state is None
        assert session.nonce is None

    def test_rejected_exchange_ends_flow(self, client, interacting_provider, fixed_state, read_session):
        interacting_provider.add(
            "POST",
            TOKEN_PATH,
            httpx.Response(
                400,
                json={"error": "invalid_grant", "error_description": "The interaction code is invalid"},
            ),
        )
        first = extract_bootstrap(client.get("/login").text)

        response = client.get(
            "/login/callback",
            params={"interaction_code": "abc123", "state": "ApplicationState"},
            follow_redirects=False,
        )

        assert response.status_code == 502
        session = read_session(client)
        assert session.pkce is None
        assert session.state is None
        assert session.nonce is None

        second = extract_bootstrap(client.get("/login").text)
        assert second["code_challenge"] != first["code_challenge"]

    def test_failed_exchange_keeps_existing_tokens(self, app, provider, session_cookie, session_store):
        provider.add("POST", TOKEN_PATH, httpx.ReadTimeout("timed out"))
        session = AuthSession(pkce=generate_pkce(), state="s1", id_token="IDT0", access_token="AT0")

        response = TestClient(app).get(
            "/login/callback",
            params={"interaction_code": "abc123", "state": "s1"},
            headers=session_cookie(session),
            follow_redirects=False,
        )

        assert response.status_code == 502
        saved = session_store.decode(response.cookies.get(session_store.cookie_name))
        assert saved.pkce is None
        assert saved.id_token == "IDT0"
        assert saved.access_token == "AT0"

    def test_signed_id_token_with_session_nonce(
        self, client, interacting_provider, fixed_state, read_session
    ):
        nonce = extract_bootstrap(client.get("/login").text)["nonce"]
        interacting_provider.add(
            "POST",
            TOKEN_PATH,
            httpx.Response(
                200,
                json={"access_token": "AT1", "id_token": create_id_token(nonce=nonce)},
            ),
        )
        interacting_provider.add("GET", KEYS_PATH, httpx.Response(200, json=create_mock_jwks()))

        response = client.get(
            "/login/callback",
            params={"interaction_code": "abc123", "state": "ApplicationState"},
            follow_redirects=False,
        )

        assert response.status_code == 302
        session = read_session(client)
        assert session.is_authenticated
        assert session.access_token == "AT1"

    def test_stale_nonce_rejected(self, client, interacting_provider, fixed_state, read_session):
        stale_nonce = extract_bootstrap(client.get("/login").text)["nonce"]
        client.get("/login")
        interacting_provider.add(
            "POST",
            TOKEN_PATH,
            httpx.Response(
                200,
                json={"access_token": "AT1", "id_token": create_id_token(nonce=stale_nonce)},
            ),
        )
        interacting_provider.add("GET", KEYS_PATH, httpx.Response(200, json=create_mock_jwks()))

        response = client.get(
            "/login/callback",
            params={"interaction_code": "abc123", "state": "ApplicationState"},
            follow_redirects=False,
        )

        assert response.status_code == 401
        assert not read_session(client).is_authenticated


# ============================================================================
# End To End
# ============================================================================

class TestLoginFlow:
    """Test a full login, profile view and logout"""

    def test_login_profile_logout(self, client, interacting_provider, fixed_state, read_session):
        interacting_provider.add(
            "POST",
            TOKEN_PATH,
            httpx.Response(
                200,
                json={"access_token": "AT1", "id_token": "IDT1", "token_type": "Bearer", "expires_in": 3600},
            ),
        )
        interacting_provider.add(
            "GET", USERINFO_PATH, httpx.Response(200, json={**MARY, "email_verified": True})
        )
        claims = VerifiedClaims(iss=ISSUER, aud=CLIENT_ID, sub=MARY["sub"], exp=2000000000, iat=1700000000)

        bootstrap = extract_bootstrap(client.get("/login").text)
        verifier = read_session(client).pkce.code_verifier
        assert bootstrap["code_challenge"] == s256(verifier)

        with patch("siwlogin.auth.routes.verify_id_token", AsyncMock(return_value=claims)) as verifier_mock:
            response = client.get(
                "/login/callback",
                params={"interaction_code": "abc123", "state": "ApplicationState"},
                follow_redirects=False,
            )

        assert response.status_code == 302
        assert response.headers["location"] == "/"

        (token_call,) = interacting_provider.calls("POST", TOKEN_PATH)
        assert token_call["params"]["interaction_code"] == "abc123"
        assert token_call["params"]["code_verifier"] == verifier
        assert token_call["params"]["grant_type"] == "interaction_code"
        assert verifier_mock.call_args[0][0] == "IDT1"
        assert verifier_mock.call_args.kwargs["access_token"] == "AT1"

        session = read_session(client)
        assert session.is_authenticated
        assert session.id_token == "IDT1"
        assert session.access_token == "AT1"
        assert session.pkce is None
        assert session.state is None

        profile_page = client.get("/profile")
        assert profile_page.status_code == 200
        assert "mary@example.com" in profile_page.text
        assert "Mary Smith" in profile_page.text
        (userinfo_call,) = interacting_provider.calls("GET", USERINFO_PATH)
        assert userinfo_call["headers"]["Authorization"] == "Bearer AT1"

        home_page = client.get("/")
        assert "Mary Smith" in home_page.text

        response = client.post("/logout", follow_redirects=False)
        assert response.status_code == 302
        assert response.headers["location"] == "/"
        assert not read_session(client).is_authenticated

        userinfo_calls = len(interacting_provider.calls("GET", USERINFO_PATH))
        profile_page = client.get("/profile")
        assert "mary@example.com" not in profile_page.text
        assert len(interacting_provider.calls("GET", USERINFO_PATH)) == userinfo_calls

    def test_login_page_after_authentication(self, client, interacting_provider, session_cookie):
        session = AuthSession(id_token="IDT1", access_token="AT1")

        bootstrap = extract_bootstrap(client.get("/login", headers=session_cookie(session)).text)

        assert bootstrap["is_authenticated"] is True

    def test_logout_without_session(self, client, read_session):
        response = client.post("/logout", follow_redirects=False)

        assert response.status_code == 302
        assert read_session(client) == AuthSession()

    def test_logout_keeps_flow_in_progress(self, app, session_cookie, session_store):
        pkce = generate_pkce()
        fresh_client = TestClient(app)
        response = fresh_client.post(
            "/logout",
            headers=session_cookie(AuthSession(pkce=pkce, state="s1", id_token="IDT1", access_token="AT1")),
            follow_redirects=False,
        )

        session = session_store.decode(response.cookies.get(session_store.cookie_name))
        assert not session.is_authenticated
        assert session.pkce == pkce
        assert session.state == "s1"


class TestAnonymousPages:
    """Test pages without a session"""

    def test_home_page(self, client, provider):
        response = client.get("/")

        assert response.status_code == 200
        assert "/login" in response.text
        assert provider.requests == []

    def test_profile_page(self, client, provider):
        response = client.get("/profile")

        assert response.status_code == 200
        assert provider.requests == []

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"
