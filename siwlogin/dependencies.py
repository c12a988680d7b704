from fastapi import HTTPException, Request, status

from siwlogin.auth.session import SessionStore
from siwlogin.config import Settings


def get_app_settings(request: Request) -> Settings:
    """
    Dependency returning the settings loaded when the application was created.
    """
    settings = getattr(request.app.state, "settings", None)
    if settings is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Settings not initialized"
        )
    return settings


def get_session_store(request: Request) -> SessionStore:
    """
    Dependency returning the signed-cookie session store built at startup.
    """
    store = getattr(request.app.state, "session_store", None)
    if store is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Session store not initialized"
        )
    return store
