"""
Authentication utilities for ID token verification and JWKS management.

This module handles:
- Fetching and caching the identity provider JWKS (JSON Web Key Set)
- Verifying ID tokens returned by the interaction_code grant
- Validating state and nonce values against the session
"""

import logging
import secrets
import time
from typing import Any, Dict, Optional, Tuple

import httpx
from jose import JWTError, jwk, jwt
from jose.exceptions import JOSEError
from pydantic import ValidationError

from siwlogin.errors import ProviderCommunicationError, TokenInvalid
from siwlogin.models import VerifiedClaims

logger = logging.getLogger(__name__)

CLOCK_SKEW_SECONDS = 10


# =============================================================================
# JWKS Cache
# =============================================================================

# issuer -> (jwks document, fetch time)
_jwks_cache: Dict[str, Tuple[Dict[str, Any], float]] = {}


def clear_jwks_cache() -> None:
    _jwks_cache.clear()


async def fetch_jwks(
    issuer: str,
    force_refresh: bool = False,
    cache_seconds: int = 3600,
    timeout: float = 10.0,
) -> Dict[str, Any]:
    """
    Fetch the issuer's JWKS with caching.

    The JWKS endpoint provides public keys used to verify ID token
    signatures. Results are cached per issuer for ``cache_seconds``.

    Args:
        issuer: Identity provider base URL
        force_refresh: If True, bypass cache and fetch fresh JWKS
        cache_seconds: Cache lifetime
        timeout: Request timeout in seconds

    Returns:
        JWKS document containing keys

    Raises:
        ProviderCommunicationError: If the JWKS endpoint is unreachable or
            returns an invalid document
    """
    issuer = issuer.rstrip("/")
    current_time = time.time()

    cached = _jwks_cache.get(issuer)
    if not force_refresh and cached and (current_time - cached[1]) < cache_seconds:
        return cached[0]

    jwks_uri = f"{issuer}/oauth2/v1/keys"

    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(
                jwks_uri,
                headers={"Accept": "application/json"},
                timeout=timeout,
            )
    except httpx.HTTPError as e:
        raise ProviderCommunicationError(f"JWKS request failed: {e}") from e

    if not response.is_success:
        raise ProviderCommunicationError(
            f"JWKS request failed with HTTP {response.status_code}",
            status_code=response.status_code,
        )

    try:
        jwks_data = response.json()
    except ValueError as e:
        raise ProviderCommunicationError("Invalid JWKS response: malformed JSON") from e

    if not isinstance(jwks_data, dict) or not isinstance(jwks_data.get("keys"), list):
        raise ProviderCommunicationError("Invalid JWKS response: missing 'keys' field")

    _jwks_cache[issuer] = (jwks_data, current_time)
    logger.debug(f"Fetched {len(jwks_data['keys'])} signing keys from {jwks_uri}")

    return jwks_data


def get_signing_key(token: str, jwks: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Extract the public key from JWKS that matches the token's kid.

    Args:
        token: JWT token string
        jwks: JWKS document containing keys

    Returns:
        Matching key from JWKS, or None if not found

    Raises:
        JWTError: If token header is malformed or has no kid
    """
    unverified_header = jwt.get_unverified_header(token)

    kid = unverified_header.get("kid")
    if not kid:
        raise JWTError("Token header missing 'kid' (Key ID)")

    for key in jwks.get("keys", []):
        if key.get("kid") == kid:
            return key

    return None


# =============================================================================
# ID Token Verification
# =============================================================================

async def verify_id_token(
    id_token: str,
    expected_audience: str,
    expected_issuer: str,
    expected_nonce: Optional[str] = None,
    access_token: Optional[str] = None,
    cache_seconds: int = 3600,
    timeout: float = 10.0,
) -> VerifiedClaims:
    """
    Verify and decode an ID token.

    This function performs comprehensive validation:
    1. Fetches JWKS and finds the key matching the token's kid
       (refreshing once if the key is unknown, to follow key rotation)
    2. Verifies the RS256 signature
    3. Validates iss, aud, exp, nbf, iat and, when an access token is
       given, at_hash
    4. Checks the nonce claim against the nonce stored in the session

    Every failure raises the same TokenInvalid error; the specific reason is
    only logged.

    Args:
        id_token: JWT ID token string
        expected_audience: Client ID the token must be issued to
        expected_issuer: Issuer the token must come from
        expected_nonce: Nonce handed to the widget for this session
        access_token: Access token issued alongside the ID token
        cache_seconds: JWKS cache lifetime
        timeout: JWKS request timeout

    Returns:
        Verified claims

    Raises:
        TokenInvalid: If the token is malformed, wrongly signed, expired or
            issued for someone else
        ProviderCommunicationError: If the JWKS endpoint is unreachable
    """
    expected_issuer = expected_issuer.rstrip("/")

    jwks = await fetch_jwks(expected_issuer, cache_seconds=cache_seconds, timeout=timeout)

    try:
        signing_key = get_signing_key(id_token, jwks)
        if not signing_key:
            jwks = await fetch_jwks(
                expected_issuer, force_refresh=True, cache_seconds=cache_seconds, timeout=timeout
            )
            signing_key = get_signing_key(id_token, jwks)
    except JWTError as e:
        logger.warning(f"Malformed ID token header: {e}")
        raise TokenInvalid() from e

    if not signing_key:
        logger.warning("Unable to find matching signing key in JWKS")
        raise TokenInvalid()

    try:
        public_key = jwk.construct(signing_key, algorithm="RS256")
        claims = jwt.decode(
            id_token,
            public_key.to_pem().decode('utf-8'),
            algorithms=["RS256"],
            audience=expected_audience,
            issuer=expected_issuer,
            access_token=access_token,
            options={
                "verify_signature": True,
                "verify_aud": True,
                "verify_iat": True,
                "verify_exp": True,
                "verify_nbf": True,
                "verify_iss": True,
                "verify_sub": True,
                "verify_jti": False,
                "verify_at_hash": True,
                "require_exp": True,
                "require_iat": True,
                "leeway": CLOCK_SKEW_SECONDS,
            },
        )
    except JWTError as e:
        logger.warning(f"ID token verification failed: {e}")
        raise TokenInvalid() from e
    except JOSEError as e:
        logger.warning(f"Unusable signing key in JWKS: {e}")
        raise TokenInvalid() from e

    try:
        verified = VerifiedClaims.model_validate(claims)
    except ValidationError as e:
        logger.warning(f"ID token is missing required claims: {e.error_count()} errors")
        raise TokenInvalid() from e

    if verified.iat > time.time() + CLOCK_SKEW_SECONDS:
        logger.warning("ID token issued in the future")
        raise TokenInvalid()

    if not validate_nonce(claims, expected_nonce):
        logger.warning("ID token nonce does not match the session nonce")
        raise TokenInvalid()

    logger.debug("ID token verified", extra={"subject": verified.sub})
    return verified


# =============================================================================
# Token Validation Helpers
# =============================================================================

def _constant_time_equals(received: str, expected: str) -> bool:
    return secrets.compare_digest(received.encode("utf-8"), expected.encode("utf-8"))


def validate_nonce(claims: Dict[str, Any], expected_nonce: Optional[str]) -> bool:
    """
    Validate nonce claim if present.

    The interact request carries no nonce, so tokens without one are
    accepted. A token that does carry one must match the session.

    Args:
        claims: Token claims
        expected_nonce: Expected nonce value from session

    Returns:
        True if nonce is valid or not present, False if mismatch
    """
    token_nonce = claims.get("nonce")

    if token_nonce is None:
        return True

    if not isinstance(token_nonce, str) or not expected_nonce:
        return False

    return _constant_time_equals(token_nonce, expected_nonce)


def validate_state(received_state: Optional[str], expected_state: Optional[str]) -> bool:
    """
    Validate OAuth state parameter.

    Args:
        received_state: State from callback
        expected_state: State from session

    Returns:
        True if both are present and match
    """
    if not received_state or not expected_state:
        return False
    return _constant_time_equals(received_state, expected_state)
