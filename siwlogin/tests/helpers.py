"""
Test helpers: provider constants, RSA signing keys with their JWKS, ID token
factory and a fake identity provider that replaces ``httpx.AsyncClient``.
"""

import json
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Tuple
from urllib.parse import urlparse

import httpx
import jwt
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.algorithms import RSAAlgorithm


ISSUER = "https://dev-123456.okta.com"
CLIENT_ID = "0oa-test-client-id"
CLIENT_SECRET = "test-client-secret"
REDIRECT_URI = "http://localhost:8080/login/callback"
TEST_KID = "test-key-id-2024"


# Generate test keys once for reuse
TEST_PRIVATE_KEY = rsa.generate_private_key(public_exponent=65537, key_size=2048)
OTHER_PRIVATE_KEY = rsa.generate_private_key(public_exponent=65537, key_size=2048)


def create_mock_jwks(kid: str = TEST_KID, private_key=TEST_PRIVATE_KEY) -> Dict[str, Any]:
    """
    Create mock JWKS response with the public half of ``private_key``.
    """
    public_jwk = RSAAlgorithm.to_jwk(private_key.public_key(), as_dict=True)
    public_jwk["kid"] = kid
    public_jwk["use"] = "sig"
    public_jwk["alg"] = "RS256"
    return {"keys": [public_jwk]}


def create_id_token(
    kid: str = TEST_KID,
    private_key=TEST_PRIVATE_KEY,
    exp_delta_minutes: int = 60,
    iat_delta_minutes: int = 0,
    **claim_overrides: Any,
) -> str:
    """
    Create an ID token signed with ``private_key``.

    Args:
        kid: Key ID for JWKS matching
        private_key: Signing key
        exp_delta_minutes: Token expiry in minutes (negative for expired)
        iat_delta_minutes: Offset applied to the issued-at time
        **claim_overrides: Claims to add or replace (None removes a claim)

    Returns:
        Encoded JWT string
    """
    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        "iss": ISSUER,
        "sub": "00u-mary-smith",
        "aud": CLIENT_ID,
        "exp": now + timedelta(minutes=exp_delta_minutes),
        "iat": now + timedelta(minutes=iat_delta_minutes),
        "name": "Mary Smith",
        "email": "mary@example.com",
    }
    for claim, value in claim_overrides.items():
        if value is None:
            payload.pop(claim, None)
        else:
            payload[claim] = value

    return jwt.encode(payload, private_key, algorithm="RS256", headers={"kid": kid})


def extract_bootstrap(html: str) -> Dict[str, Any]:
    """Pull the widget bootstrap JSON out of the login page."""
    match = re.search(
        r'<script id="siw-bootstrap" type="application/json">(.*?)</script>', html, re.S
    )
    assert match, "login page has no bootstrap block"
    return json.loads(match.group(1))


# ============================================================================
# Fake identity provider
# ============================================================================

class FakeProvider:
    """
    Stand-in for ``httpx.AsyncClient`` that answers by HTTP method and path.

    Routes map to an ``httpx.Response`` or to an exception to raise. Every
    call is recorded as ``(method, url, kwargs)``.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], Any] = {}
        self.requests: List[Tuple[str, str, Dict[str, Any]]] = []

    def add(self, method: str, path: str, result: Any) -> None:
        self.routes[(method, path)] = result

    def calls(self, method: str, path: str) -> List[Dict[str, Any]]:
        return [
            kwargs for m, url, kwargs in self.requests
            if m == method and urlparse(url).path == path
        ]

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def post(self, url: str, **kwargs):
        return self._dispatch("POST", url, kwargs)

    async def get(self, url: str, **kwargs):
        return self._dispatch("GET", url, kwargs)

    def _dispatch(self, method: str, url: str, kwargs: Dict[str, Any]):
        self.requests.append((method, url, kwargs))
        result = self.routes.get((method, urlparse(url).path))
        if result is None:
            raise httpx.ConnectError(f"No route for {method} {url}")
        if isinstance(result, Exception):
            raise result
        return result

