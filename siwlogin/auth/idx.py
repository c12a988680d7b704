"""
Identity Engine (IDX) calls for the embedded sign-in widget flow.

This module talks to two provider endpoints:
- ``/oauth2/v1/interact``: trades a PKCE challenge for an interaction handle
  that bootstraps the widget
- ``/oauth2/v1/token``: redeems the interaction code returned to the callback,
  together with the PKCE verifier, for an access token and an ID token
"""

import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from siwlogin.errors import ProviderCommunicationError
from siwlogin.models import TokenExchangeResult

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


def _error_payload(response: httpx.Response) -> Dict[str, Any]:
    """Best-effort decode of an OAuth error body."""
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _raise_for_provider_status(response: httpx.Response, operation: str) -> None:
    if response.is_success:
        return

    error_data = _error_payload(response)
    error = error_data.get("error") or error_data.get("errorCode")
    description = error_data.get("error_description") or error_data.get("errorSummary")
    logger.warning(
        f"{operation} rejected by identity provider",
        extra={
            "status_code": response.status_code,
            "error": error,
            "error_description": description,
        },
    )
    raise ProviderCommunicationError(
        f"{operation} failed with HTTP {response.status_code}: {description or error or 'no details'}",
        error=error,
        error_description=description,
        status_code=response.status_code,
    )


def _json_object(response: httpx.Response, operation: str) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError as e:
        raise ProviderCommunicationError(
            f"{operation} returned a malformed JSON body",
            status_code=response.status_code,
        ) from e

    if not isinstance(data, dict):
        raise ProviderCommunicationError(
            f"{operation} returned an unexpected JSON payload",
            status_code=response.status_code,
        )
    return data


# =============================================================================
# Interaction Handle
# =============================================================================

async def initiate_interaction(
    code_challenge: str,
    client_id: str,
    scopes: List[str],
    redirect_uri: str,
    state: str,
    issuer: str,
    timeout: float = DEFAULT_TIMEOUT,
) -> str:
    """
    Get the interaction handle that begins the flow.

    The handle is used when initializing the sign-in widget and is scoped to
    the given PKCE challenge.

    Args:
        code_challenge: S256 challenge of the verifier stored in the session
        client_id: OAuth client ID
        scopes: Requested scopes, sent space-joined
        redirect_uri: Registered callback URI
        state: State issued for this login attempt
        issuer: Identity provider base URL
        timeout: Request timeout in seconds

    Returns:
        Interaction handle string

    Raises:
        ProviderCommunicationError: On network failure, non-2xx response or a
            body without an interaction handle
    """
    endpoint = f"{issuer.rstrip('/')}/oauth2/v1/interact"

    payload = {
        "client_id": client_id,
        "scope": " ".join(scopes),
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
        "redirect_uri": redirect_uri,
        "state": state,
    }

    try:
        async with httpx.AsyncClient() as client:
            response = await client.post(
                endpoint,
                data=payload,
                headers={
                    "Content-Type": "application/x-www-form-urlencoded",
                    "Accept": "application/json",
                },
                timeout=timeout,
            )
    except httpx.HTTPError as e:
        raise ProviderCommunicationError(f"Interact request failed: {e}") from e

    _raise_for_provider_status(response, "Interact request")

    data = _json_object(response, "Interact request")
    interaction_handle = data.get("interaction_handle")
    if not isinstance(interaction_handle, str) or not interaction_handle:
        raise ProviderCommunicationError(
            "Interact response missing interaction_handle",
            status_code=response.status_code,
        )

    return interaction_handle


# =============================================================================
# Token Exchange
# =============================================================================

async def exchange_interaction_code(
    interaction_code: str,
    code_verifier: str,
    client_id: str,
    client_secret: str,
    issuer: str,
    timeout: float = DEFAULT_TIMEOUT,
) -> TokenExchangeResult:
    """
    Exchange an interaction code for access and ID tokens.

    The grant parameters travel in the query string of an empty-bodied POST.

    Args:
        interaction_code: Code returned to the callback endpoint
        code_verifier: PKCE verifier stored when the flow began
        client_id: OAuth client ID
        client_secret: OAuth client secret
        issuer: Identity provider base URL
        timeout: Request timeout in seconds

    Returns:
        Token response containing id_token, access_token, etc.

    Raises:
        ProviderCommunicationError: On network failure, non-2xx response,
            malformed JSON, an ``error`` field, or missing tokens
    """
    token_endpoint = f"{issuer.rstrip('/')}/oauth2/v1/token"

    params = {
        "grant_type": "interaction_code",
        "interaction_code": interaction_code,
        "client_id": client_id,
        "client_secret": client_secret,
        "code_verifier": code_verifier,
    }

    try:
        async with httpx.AsyncClient() as client:
            response = await client.post(
                token_endpoint,
                params=params,
                content=b"",
                headers={
                    "Content-Type": "application/x-www-form-urlencoded",
                    "Accept": "application/json",
                },
                timeout=timeout,
            )
    except httpx.HTTPError as e:
        raise ProviderCommunicationError(f"Token request failed: {e}") from e

    _raise_for_provider_status(response, "Token exchange")

    data = _json_object(response, "Token exchange")
    try:
        result = TokenExchangeResult.model_validate(data)
    except ValidationError as e:
        raise ProviderCommunicationError(
            "Token exchange returned an unexpected payload",
            status_code=response.status_code,
        ) from e

    if result.error:
        logger.warning(
            "Token exchange returned an error payload",
            extra={"error": result.error, "error_description": result.error_description},
        )
        raise ProviderCommunicationError(
            f"Token exchange failed: {result.error_description or result.error}",
            error=result.error,
            error_description=result.error_description,
            status_code=response.status_code,
        )

    if not result.id_token or not result.access_token:
        raise ProviderCommunicationError(
            "Token response missing id_token or access_token",
            status_code=response.status_code,
        )

    logger.info(
        "Exchanged interaction code for tokens",
        extra={"token_type": result.token_type, "expires_in": result.expires_in},
    )
    return result


def describe_provider_error(error: ProviderCommunicationError) -> Optional[str]:
    """User-facing detail from a provider error, if the provider sent one."""
    return error.error_description or error.error
