"""
PKCE, nonce and state generation.

Every value here comes from the ``secrets`` module. A failing random source
is reported as ConfigurationError and never retried.
"""

import base64
import hashlib
import secrets

from siwlogin.errors import ConfigurationError
from siwlogin.models import PkceMaterial


# 86 random bytes encode to a 115 character verifier (RFC 7636 allows 43-128)
CODE_VERIFIER_BYTES = 86
NONCE_BYTES = 32
STATE_BYTES = 32


def _random_bytes(size: int) -> bytes:
    try:
        return secrets.token_bytes(size)
    except (NotImplementedError, OSError) as e:
        raise ConfigurationError(f"Secure random source unavailable: {e}") from e


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode('utf-8').rstrip('=')


def generate_code_verifier() -> str:
    """
    Generate a cryptographically random code verifier for PKCE.

    Returns:
        Base64-URL-encoded random string (43-128 characters)
    """
    return _b64url(_random_bytes(CODE_VERIFIER_BYTES))


def generate_code_challenge(verifier: str) -> str:
    """
    Generate code challenge from verifier using S256 method.

    Args:
        verifier: Code verifier string

    Returns:
        Base64-URL-encoded SHA256 hash of verifier
    """
    digest = hashlib.sha256(verifier.encode('utf-8')).digest()
    return _b64url(digest)


def generate_pkce() -> PkceMaterial:
    """
    Create the PKCE data for one login attempt.

    The challenge is sent when requesting an interaction handle; the verifier
    stays in the session until the interaction code is exchanged.
    """
    verifier = generate_code_verifier()
    return PkceMaterial(
        code_verifier=verifier,
        code_challenge=generate_code_challenge(verifier),
        code_challenge_method="S256",
    )


def generate_nonce() -> str:
    """Generate the nonce used to initialize the sign-in widget."""
    return _b64url(_random_bytes(NONCE_BYTES))


def generate_state() -> str:
    """Generate the anti-CSRF state for one login attempt."""
    return _b64url(_random_bytes(STATE_BYTES))
