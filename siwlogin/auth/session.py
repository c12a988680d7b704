"""
Cookie Session Management Module
================================

Persists the per-browser AuthSession in a single signed cookie.

The cookie value is an HS256 JWT whose payload holds the session fields
(PKCE material in flight, and/or the tokens once authenticated). Nothing is
kept server side: every request decodes its cookie, mutates the session and
re-signs it onto the response.

A cookie that is missing, tampered with, expired or structurally invalid
yields a fresh empty session rather than an error.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import Request, Response
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError
from pydantic import ValidationError

from siwlogin.config import Settings
from siwlogin.errors import ConfigurationError
from siwlogin.models import AuthSession

logger = logging.getLogger(__name__)

SESSION_ISSUER = "siwlogin-session"
SESSION_ALGORITHM = "HS256"


class SessionStore:
    """
    Signed-cookie store for AuthSession.

    Attributes:
        cookie_name: Name of the session cookie
        max_age: Cookie and signature lifetime in seconds
        secure: Whether the cookie is restricted to HTTPS
    """

    def __init__(
        self,
        secret: str,
        cookie_name: str = "okta-self-hosted-session-store",
        max_age: int = 28800,
        secure: bool = False,
    ):
        if not secret:
            raise ConfigurationError("Session secret not configured")
        self._secret = secret
        self.cookie_name = cookie_name
        self.max_age = max_age
        self.secure = secure

    @classmethod
    def from_settings(cls, settings: Settings) -> "SessionStore":
        return cls(
            secret=settings.SESSION_SECRET,
            cookie_name=settings.SESSION_COOKIE_NAME,
            max_age=settings.SESSION_MAX_AGE_SECONDS,
            secure=settings.SESSION_COOKIE_SECURE,
        )

    # =========================================================================
    # Encoding
    # =========================================================================

    def encode(self, session: AuthSession) -> str:
        """
        Sign a session into a cookie value.

        Args:
            session: Session to serialize

        Returns:
            Encoded JWT string
        """
        now = datetime.now(timezone.utc)
        payload: Dict[str, Any] = {
            "session": session.model_dump(mode="json", exclude_none=True),
            "iat": now,
            "exp": now + timedelta(seconds=self.max_age),
            "iss": SESSION_ISSUER,
        }
        return jwt.encode(payload, self._secret, algorithm=SESSION_ALGORITHM)

    def decode(self, value: Optional[str]) -> AuthSession:
        """
        Verify a cookie value and rebuild the session.

        Args:
            value: Raw cookie value, if any

        Returns:
            Decoded session, or an empty session if the value is unusable
        """
        if not value:
            return AuthSession()

        try:
            decoded = jwt.decode(
                value,
                self._secret,
                algorithms=[SESSION_ALGORITHM],
                issuer=SESSION_ISSUER,
                options={
                    "verify_signature": True,
                    "verify_exp": True,
                    "verify_iat": True,
                    "require": ["exp", "iat", "iss"],
                },
            )
            return AuthSession.model_validate(decoded.get("session") or {})
        except ExpiredSignatureError:
            logger.info("Session cookie expired, starting a new session")
        except InvalidTokenError as e:
            logger.warning(f"Invalid session cookie: {e}")
        except ValidationError as e:
            logger.warning(f"Session cookie failed validation: {e.error_count()} errors")

        return AuthSession()

    # =========================================================================
    # Request / Response
    # =========================================================================

    def get(self, request: Request) -> AuthSession:
        """Load the session of the browser that sent ``request``."""
        return self.decode(request.cookies.get(self.cookie_name))

    def save(self, session: AuthSession, response: Response) -> None:
        """Sign ``session`` and attach it to ``response`` as the session cookie."""
        response.set_cookie(
            key=self.cookie_name,
            value=self.encode(session),
            max_age=self.max_age,
            path="/",
            httponly=True,
            secure=self.secure,
            samesite="lax",
        )

    @staticmethod
    def is_authenticated(session: AuthSession) -> bool:
        return session.is_authenticated


__all__ = [
    "SessionStore",
    "SESSION_ISSUER",
]
