"""
Pages that show the authentication state and the user's profile.
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse

from siwlogin.auth.session import SessionStore
from siwlogin.config import Settings
from siwlogin.dependencies import get_app_settings, get_session_store
from siwlogin.profile.userinfo import fetch_profile
from siwlogin.templates import render_home_page, render_profile_page

logger = logging.getLogger(__name__)

profile_router = APIRouter(tags=["profile"])


@profile_router.get("/", response_class=HTMLResponse)
async def home(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    store: SessionStore = Depends(get_session_store),
):
    session = store.get(request)
    is_authenticated = store.is_authenticated(session)

    profile = {}
    if is_authenticated:
        profile = await fetch_profile(
            session.access_token,
            settings.issuer_url,
            timeout=settings.PROVIDER_TIMEOUT_SECONDS,
        )

    return HTMLResponse(content=render_home_page(is_authenticated, profile))


@profile_router.get("/profile", response_class=HTMLResponse)
async def profile(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    store: SessionStore = Depends(get_session_store),
):
    """
    Render the profile attributes returned by the userinfo endpoint.

    Unauthenticated browsers get the page without attributes.
    """
    session = store.get(request)
    is_authenticated = store.is_authenticated(session)

    attributes = {}
    if is_authenticated:
        attributes = await fetch_profile(
            session.access_token,
            settings.issuer_url,
            timeout=settings.PROVIDER_TIMEOUT_SECONDS,
        )

    return HTMLResponse(content=render_profile_page(is_authenticated, attributes))
