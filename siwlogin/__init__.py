"""
Embedded Sign-In Widget login service.

Backend for a browser login page that hosts the identity provider's sign-in
widget. The service owns the PKCE interaction code exchange, verifies the
returned ID token and keeps the per-browser session in a signed cookie.
"""

__version__ = "1.0.0"
