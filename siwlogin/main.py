"""
FastAPI Application Factory
===========================

Main entry point for the login service that backs the embedded sign-in
widget.

Architecture:
    Browser (sign-in widget) → this service → Identity provider (IDX, token,
    keys and userinfo endpoints)

Routers:
    - /login, /login/callback, /logout : Authentication flow
    - /, /profile                       : Landing and profile pages
    - /health                           : Health check endpoint

Environment Variables Required (prefix OKTA_IDX_, or a .env file):
    - OKTA_IDX_CLIENT_ID
    - OKTA_IDX_CLIENT_SECRET
    - OKTA_IDX_ISSUER
    - OKTA_IDX_SCOPES
    - OKTA_IDX_REDIRECT_URI
    - OKTA_IDX_SESSION_SECRET (recommended)
    - OKTA_IDX_LOG_LEVEL (default: INFO)

Running the Service:
    Development:
        uvicorn siwlogin.main:create_app --factory --reload --port 8080

    Direct:
        python -m siwlogin.main
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from siwlogin import __version__
from siwlogin.auth.pkce import generate_nonce, generate_pkce
from siwlogin.auth.routes import auth_router
from siwlogin.auth.session import SessionStore
from siwlogin.auth.utils import clear_jwks_cache
from siwlogin.config import Settings, get_settings
from siwlogin.models import ErrorResponse, HealthResponse
from siwlogin.profile import profile_router


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup tasks:
        - Check that the secure random source works (PKCE and nonce
          generation raise ConfigurationError otherwise)
        - Log service startup information

    Shutdown tasks:
        - Clear the JWKS cache
    """
    settings: Settings = app.state.settings
    logger = logging.getLogger("siwlogin.main")

    generate_pkce()
    generate_nonce()

    logger.info(
        "Starting login service",
        extra={
            "issuer": settings.issuer_url,
            "redirect_uri": settings.REDIRECT_URI,
            "scopes": settings.scopes_list,
        }
    )

    yield

    clear_jwks_cache()
    logger.info("Login service shutdown complete")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Application factory function.

    Creates and configures the FastAPI application instance with:
        - Settings and the session store on app.state
        - Request logging middleware
        - Route handlers
        - Exception handlers

    Args:
        settings: Settings to use instead of loading them from the
            environment (used by tests)

    Returns:
        FastAPI: Configured application instance

    Raises:
        ConfigurationError: If the configuration is missing or invalid
    """
    if settings is None:
        settings = get_settings()

    setup_logging(settings.LOG_LEVEL)
    logger = logging.getLogger("siwlogin.main")

    app = FastAPI(
        title="Sign-In Widget Login Service",
        description="Interaction code + PKCE login backend for the embedded sign-in widget",
        version=__version__,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
    )

    app.state.settings = settings
    app.state.session_store = SessionStore.from_settings(settings)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info(f"{request.method}: {request.url.path}")
        return await call_next(request)

    app.include_router(auth_router)
    app.include_router(profile_router)

    @app.get("/health", tags=["System"], response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        return HealthResponse(status="ok", service="siwlogin")

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Global exception handler for unhandled errors.

        Logs the error and returns a standardized error response.
        """
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__
            },
            exc_info=True
        )

        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="internal_server_error",
                message="An unexpected error occurred",
            ).model_dump(),
        )

    return app


if __name__ == "__main__":
    settings = get_settings()

    uvicorn.run(
        create_app(settings),
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
        timeout_keep_alive=15,
    )
