"""
Profile Package

Landing and profile pages, and retrieval of the signed-in user's attributes
from the identity provider's userinfo endpoint.
"""

from .routes import profile_router

__all__ = [
    "profile_router",
]
