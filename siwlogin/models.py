"""
Data Models Module

This module defines Pydantic models for the login flow state, provider
responses and the data handed to the sign-in widget.

Models are organized by functional area:
- Flow models (PKCE material, per-browser session)
- Provider models (token exchange result, verified ID token claims)
- Page models (widget bootstrap data)
- Service models (health, errors)
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ============================================================================
# Flow Models
# ============================================================================

class PkceMaterial(BaseModel):
    """PKCE verifier/challenge pair for one login attempt."""

    model_config = ConfigDict(frozen=True)

    code_verifier: str = Field(..., description="High-entropy secret", min_length=43, max_length=128)
    code_challenge: str = Field(..., description="base64url(sha256(code_verifier)) without padding")
    code_challenge_method: Literal["S256"] = Field(default="S256", description="Challenge method")


class AuthSession(BaseModel):
    """
    Per-browser session carried in the signed session cookie.

    ``pkce``, ``state`` and ``nonce`` only exist while a login is in flight.
    ``id_token`` and ``access_token`` are written together after a verified
    token exchange and removed together on logout.
    """

    pkce: Optional[PkceMaterial] = Field(None, description="PKCE material of the login in flight")
    state: Optional[str] = Field(None, description="State issued with the PKCE material")
    nonce: Optional[str] = Field(None, description="Nonce last handed to the widget")
    id_token: Optional[str] = Field(None, description="Verified identity token")
    access_token: Optional[str] = Field(None, description="Access token for provider resources")

    @field_validator("state", "nonce", "id_token", "access_token")
    @classmethod
    def empty_as_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    @model_validator(mode="after")
    def check_token_pair(self) -> "AuthSession":
        if (self.id_token is None) != (self.access_token is None):
            raise ValueError("id_token and access_token must be set together")
        return self

    @property
    def is_authenticated(self) -> bool:
        return bool(self.id_token)

    def begin_flow(self, pkce: PkceMaterial, state: str) -> None:
        """Store the PKCE material and state of a new login attempt."""
        self.pkce = pkce
        self.state = state

    def authenticate(self, id_token: str, access_token: str) -> None:
        """Promote the session after a verified exchange, consuming the flow."""
        if not id_token or not access_token:
            raise ValueError("Both id_token and access_token are required")
        self.id_token = id_token
        self.access_token = access_token
        self.end_flow()

    def end_flow(self) -> None:
        """Drop the login attempt in flight. Tokens are left alone."""
        self.pkce = None
        self.state = None
        self.nonce = None

    def logout(self) -> None:
        self.id_token = None
        self.access_token = None


# ============================================================================
# Provider Models
# ============================================================================

class TokenExchangeResult(BaseModel):
    """Token endpoint response for the interaction_code grant."""

    model_config = ConfigDict(extra="ignore")

    access_token: Optional[str] = None
    id_token: Optional[str] = None
    token_type: Optional[str] = None
    expires_in: Optional[int] = None
    scope: Optional[str] = None
    error: Optional[str] = None
    error_description: Optional[str] = None


class VerifiedClaims(BaseModel):
    """Claims of an ID token that passed verification. Custom claims are kept."""

    model_config = ConfigDict(extra="allow")

    iss: str
    aud: Union[str, List[str]]
    sub: str
    exp: int
    iat: int
    nonce: Optional[str] = None


# ============================================================================
# Page Models
# ============================================================================

class WidgetBootstrap(BaseModel):
    """Everything the sign-in widget needs to start an interaction."""

    base_url: str = Field(..., description="Origin of the identity provider")
    client_id: str
    issuer: str
    redirect_uri: str
    scopes: List[str]
    state: str
    nonce: str
    code_challenge: str
    code_challenge_method: str = "S256"
    interaction_handle: str = Field("", description="Empty when the provider could not be reached")
    is_authenticated: bool = False


# ============================================================================
# Service Models
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service health status")
    service: str = Field(..., description="Service name")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), description="Check timestamp"
    )


class ErrorResponse(BaseModel):
    """Standardized error response model."""
    error: str = Field(..., description="Error type or code")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")
