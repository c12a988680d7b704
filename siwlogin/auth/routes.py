"""
Authentication routes for the embedded sign-in widget flow.

This module implements the interaction code flow with PKCE:
- GET /login renders the widget, bootstrapped with an interaction handle
- GET /login/callback redeems the interaction code and verifies the ID token
- POST /logout drops the tokens from the session
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse

from siwlogin.auth.idx import (
    describe_provider_error,
    exchange_interaction_code,
    initiate_interaction,
)
from siwlogin.auth.pkce import generate_nonce, generate_pkce, generate_state
from siwlogin.auth.session import SessionStore
from siwlogin.auth.utils import validate_state, verify_id_token
from siwlogin.config import Settings
from siwlogin.dependencies import get_app_settings, get_session_store
from siwlogin.errors import FlowStateError, ProviderCommunicationError, TokenInvalid
from siwlogin.models import AuthSession, PkceMaterial, WidgetBootstrap
from siwlogin.templates import render_login_page

logger = logging.getLogger(__name__)


# =============================================================================
# Router Setup
# =============================================================================

auth_router = APIRouter(tags=["authentication"])

STATE_MISMATCH_MESSAGE = "The state was not as expected"
MISSING_CODE_MESSAGE = "The interaction_code was not returned or is not accessible"
MISSING_PKCE_MESSAGE = "Could not get PKCE Data from session"
EXCHANGE_FAILED_MESSAGE = "The interaction_code could not be exchanged for tokens"


# =============================================================================
# Login Endpoint
# =============================================================================

@auth_router.get("/login", response_class=HTMLResponse)
async def login(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    store: SessionStore = Depends(get_session_store),
):
    """
    Render the sign-in widget.

    This endpoint:
    1. Reuses the PKCE material and state of a login already in flight, or
       starts a new attempt
    2. Generates a fresh nonce and remembers it in the session
    3. Requests an interaction handle for the PKCE challenge
    4. Renders the widget bootstrap data

    A provider failure leaves the interaction handle empty; the widget reports
    the problem itself, so the page still renders.
    """
    session = store.get(request)

    if session.pkce is None or session.state is None:
        session.begin_flow(generate_pkce(), generate_state())
        logger.debug("Started a new login attempt")

    session.nonce = generate_nonce()

    try:
        interaction_handle = await initiate_interaction(
            code_challenge=session.pkce.code_challenge,
            client_id=settings.CLIENT_ID,
            scopes=settings.scopes_list,
            redirect_uri=settings.REDIRECT_URI,
            state=session.state,
            issuer=settings.issuer_url,
            timeout=settings.PROVIDER_TIMEOUT_SECONDS,
        )
    except ProviderCommunicationError as e:
        logger.error(f"Could not get interaction handle: {e}")
        interaction_handle = ""

    bootstrap = WidgetBootstrap(
        base_url=settings.base_url,
        client_id=settings.CLIENT_ID,
        issuer=settings.issuer_url,
        redirect_uri=settings.REDIRECT_URI,
        scopes=settings.scopes_list,
        state=session.state,
        nonce=session.nonce,
        code_challenge=session.pkce.code_challenge,
        code_challenge_method=session.pkce.code_challenge_method,
        interaction_handle=interaction_handle,
        is_authenticated=store.is_authenticated(session),
    )

    response = HTMLResponse(content=render_login_page(bootstrap))
    response.headers["Cache-Control"] = "no-cache"
    store.save(session, response)
    return response


# =============================================================================
# Callback Endpoint
# =============================================================================

def check_callback_preconditions(
    session: AuthSession,
    state: Optional[str],
    interaction_code: Optional[str],
) -> PkceMaterial:
    """
    Make sure the callback belongs to the login attempt stored in the session.

    Args:
        session: Session of the calling browser
        state: ``state`` query parameter
        interaction_code: ``interaction_code`` query parameter

    Returns:
        PKCE material to redeem the interaction code with

    Raises:
        FlowStateError: If the state does not match, the code is missing, or
            the session holds no PKCE material
    """
    if not validate_state(state, session.state):
        raise FlowStateError(STATE_MISMATCH_MESSAGE)

    if not interaction_code:
        raise FlowStateError(MISSING_CODE_MESSAGE)

    pkce = session.pkce
    if pkce is None or not pkce.code_verifier or not pkce.code_challenge:
        raise FlowStateError(MISSING_PKCE_MESSAGE)

    return pkce


def _end_failed_flow(
    session: AuthSession,
    store: SessionStore,
    message: str,
    status_code: int,
) -> PlainTextResponse:
    """Answer a failed exchange and drop the PKCE material it consumed."""
    session.end_flow()
    response = PlainTextResponse(message, status_code=status_code)
    store.save(session, response)
    return response


@auth_router.get("/login/callback")
async def login_callback(
    request: Request,
    state: Optional[str] = Query(None, description="State issued on the login page"),
    interaction_code: Optional[str] = Query(None, description="Interaction code from the provider"),
    error: Optional[str] = Query(None, description="Error code if authentication failed"),
    error_description: Optional[str] = Query(None, description="Error description"),
    settings: Settings = Depends(get_app_settings),
    store: SessionStore = Depends(get_session_store),
):
    """
    Handle the redirect from the sign-in widget.

    This endpoint:
    1. Rejects provider-reported errors
    2. Validates state, interaction code and the PKCE material in the session
    3. Exchanges the interaction code for tokens
    4. Verifies the ID token
    5. Stores the tokens and redirects home

    Any failure answers with a plain text message. Failures before the
    exchange leave the session cookie untouched; once the interaction code
    has been spent, a failure ends the login attempt.
    """
    if error:
        logger.warning("Identity provider reported an error on callback", extra={"error": error})
        return PlainTextResponse(
            f"Unable to authenticate: {error_description or error}",
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    session = store.get(request)

    try:
        pkce = check_callback_preconditions(session, state, interaction_code)
    except FlowStateError as e:
        logger.warning(f"Rejected login callback: {e}")
        return PlainTextResponse(str(e), status_code=status.HTTP_400_BAD_REQUEST)

    try:
        result = await exchange_interaction_code(
            interaction_code=interaction_code,
            code_verifier=pkce.code_verifier,
            client_id=settings.CLIENT_ID,
            client_secret=settings.CLIENT_SECRET,
            issuer=settings.issuer_url,
            timeout=settings.PROVIDER_TIMEOUT_SECONDS,
        )

        await verify_id_token(
            result.id_token,
            expected_audience=settings.CLIENT_ID,
            expected_issuer=settings.issuer_url,
            expected_nonce=session.nonce,
            access_token=result.access_token,
            cache_seconds=settings.JWKS_CACHE_SECONDS,
            timeout=settings.PROVIDER_TIMEOUT_SECONDS,
        )
    except TokenInvalid as e:
        return _end_failed_flow(session, store, str(e), status.HTTP_401_UNAUTHORIZED)
    except ProviderCommunicationError as e:
        logger.error(f"Login callback failed: {e}")
        detail = describe_provider_error(e)
        message = f"{EXCHANGE_FAILED_MESSAGE}: {detail}" if detail else EXCHANGE_FAILED_MESSAGE
        return _end_failed_flow(session, store, message, status.HTTP_502_BAD_GATEWAY)

    session.authenticate(result.id_token, result.access_token)
    logger.info("Login completed")

    response = RedirectResponse(url="/", status_code=status.HTTP_302_FOUND)
    store.save(session, response)
    return response


# =============================================================================
# Logout Endpoint
# =============================================================================

@auth_router.post("/logout")
async def logout(
    request: Request,
    store: SessionStore = Depends(get_session_store),
):
    """Remove the tokens from the session and go home."""
    session = store.get(request)
    session.logout()

    response = RedirectResponse(url="/", status_code=status.HTTP_302_FOUND)
    store.save(session, response)
    return response
